"""subnetctl constants - network configs, fee tables, protocol limits."""

import os
from typing import TypedDict

# Length of every chain identifier (subnet, blockchain, asset, tx, utxo, vm)
ID_LEN = 32

# Algorand-format address validation regex (58 character base32 with checksum)
ADDRESS_REGEX = r"^[A-Z2-7]{58}$"

# Chain IDs render as unpadded base32 of 32 bytes
ID_REGEX = r"^[A-Z2-7]{52}$"

NODE_ID_PREFIX = "NodeID-"

# Domain separator prefixed to the unsigned bytes before hashing or signing
TX_SIGN_PREFIX = b"TX"

# Wire codec version for serialized transactions and partial artifacts
CODEC_VERSION = 0

# Chain aliases
P_CHAIN = "P"
X_CHAIN = "X"
CHAIN_ALIASES = [P_CHAIN, X_CHAIN]

# The primary network is a subnet with the all-zero ID
PRIMARY_NETWORK_ID = "A" * 52

# Native asset denomination (1 token = 10^9 base units)
NATIVE_DENOMINATION = 9

# Percentages (consumption rates, delegation fee, uptime) are parts per million
PERCENT_DENOMINATOR = 1_000_000

# Asset creation limits
MAX_ASSET_NAME_LEN = 128
MAX_ASSET_SYMBOL_LEN = 4
MAX_DENOMINATION = 32

# Blockchain creation limits
MAX_CHAIN_NAME_LEN = 128
MAX_VM_NAME_LEN = ID_LEN
MAX_GENESIS_LEN = 1024 * 1024

# Validator timing limits (seconds)
MIN_STAKE_DURATION = 24 * 60 * 60
MAX_STAKE_DURATION = 365 * 24 * 60 * 60

# Transaction type identifiers
TXN_TYPE_CREATE_SUBNET = "create_subnet"
TXN_TYPE_ADD_VALIDATOR = "add_subnet_validator"
TXN_TYPE_REMOVE_VALIDATOR = "remove_subnet_validator"
TXN_TYPE_CREATE_BLOCKCHAIN = "create_chain"
TXN_TYPE_TRANSFORM_SUBNET = "transform_subnet"
TXN_TYPE_EXPORT = "export"
TXN_TYPE_IMPORT = "import"
TXN_TYPE_CREATE_ASSET = "create_asset"

# ============================================================================
# API Endpoints
# ============================================================================

FALLBACK_MAINNET_API = "https://api.avax.network"
FALLBACK_FUJI_API = "https://api.avax-test.network"
FALLBACK_LOCAL_API = "http://127.0.0.1:9650"

# API URLs - check environment variables first, fall back to public endpoints
# Set MAINNET_API_URL, FUJI_API_URL or LOCAL_API_URL to use custom endpoints
MAINNET_API_URL = os.environ.get("MAINNET_API_URL", FALLBACK_MAINNET_API)
FUJI_API_URL = os.environ.get("FUJI_API_URL", FALLBACK_FUJI_API)
LOCAL_API_URL = os.environ.get("LOCAL_API_URL", FALLBACK_LOCAL_API)

NETWORK_MAINNET = "mainnet"
NETWORK_FUJI = "fuji"
NETWORK_LOCAL = "local"

# Short names accepted on the command line
NETWORK_ALIASES: dict[str, str] = {
    "testnet": NETWORK_FUJI,
    "main": NETWORK_MAINNET,
}

# Default timeouts (seconds)
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_ACCEPTANCE_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 1.0

# Worker pool defaults
DEFAULT_MAX_WORKERS = 8
DEFAULT_MAX_RETRIES = 2


class FeeSchedule(TypedDict):
    """Flat fee per transaction type, in native base units."""

    tx_fee: int
    create_subnet_fee: int
    create_blockchain_fee: int
    add_subnet_validator_fee: int
    transform_subnet_fee: int
    create_asset_fee: int


class NetworkConfig(TypedDict):
    """Configuration for a target network."""

    network_id: int
    api_url: str
    native_asset_id: str
    fees: FeeSchedule


_MAINNET_FEES: FeeSchedule = {
    "tx_fee": 1_000_000,
    "create_subnet_fee": 1_000_000_000,
    "create_blockchain_fee": 1_000_000_000,
    "add_subnet_validator_fee": 1_000_000,
    "transform_subnet_fee": 10_000_000_000,
    "create_asset_fee": 10_000_000,
}

_FUJI_FEES: FeeSchedule = {
    "tx_fee": 1_000_000,
    "create_subnet_fee": 100_000_000,
    "create_blockchain_fee": 100_000_000,
    "add_subnet_validator_fee": 1_000_000,
    "transform_subnet_fee": 1_000_000_000,
    "create_asset_fee": 10_000_000,
}

# Network configurations
NETWORK_CONFIGS: dict[str, NetworkConfig] = {
    NETWORK_MAINNET: {
        "network_id": 1,
        "api_url": MAINNET_API_URL,
        "native_asset_id": "BBNWPNKNBZ43DAJ5JTDY6ERBIUUKLJMTJZKSHOW3DRMGAAT2XGKQ",
        "fees": _MAINNET_FEES,
    },
    NETWORK_FUJI: {
        "network_id": 5,
        "api_url": FUJI_API_URL,
        "native_asset_id": "E3MUHGGVNEEWIWIKA7SGBGTIR4XDZU6T3ZQZROZ2DQZEEUOSYWRQ",
        "fees": _FUJI_FEES,
    },
    NETWORK_LOCAL: {
        "network_id": 12345,
        "api_url": LOCAL_API_URL,
        "native_asset_id": "JPNCWVIC4MDAAW3LRK5XMDOMBH5D7MSVEPQLKVJYYMVFKTZBBIQA",
        "fees": _FUJI_FEES,
    },
}

SUPPORTED_NETWORKS = list(NETWORK_CONFIGS)
