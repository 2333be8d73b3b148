"""Shared fixtures: deterministic accounts and an in-memory chain."""

import base64
import hashlib
import threading

import pytest
from algosdk import encoding
from nacl.signing import SigningKey

from subnetctl.config import CoordinatorConfig
from subnetctl.constants import NETWORK_CONFIGS, NETWORK_FUJI, P_CHAIN, PRIMARY_NETWORK_ID, X_CHAIN
from subnetctl.errors import SubmissionRejected
from subnetctl.signers import KeychainSigner
from subnetctl.transaction import PartiallySignedTransaction
from subnetctl.types import AssetInfo, BlockchainInfo, SubnetInfo, UTXO, ValidatorInfo
from subnetctl.utils import encode_id

NATIVE_ASSET_ID = NETWORK_CONFIGS[NETWORK_FUJI]["native_asset_id"]
FEES = NETWORK_CONFIGS[NETWORK_FUJI]["fees"]

# Primary network validation period every test node has
PRIMARY_START = 1_700_000_000
PRIMARY_END = PRIMARY_START + 180 * 24 * 60 * 60

START_TIME = PRIMARY_START + 3600
DURATION = 14 * 24 * 60 * 60


def make_id(label: str) -> str:
    return encode_id(hashlib.sha256(label.encode()).digest())


def make_account(label: str) -> tuple[str, str]:
    """Deterministic account: (address, base64 private key)."""
    key = SigningKey(hashlib.sha256(label.encode()).digest())
    public = bytes(key.verify_key)
    return encoding.encode_address(public), base64.b64encode(bytes(key) + public).decode()


ADDR_X, KEY_X = make_account("signer-x")
ADDR_Y, KEY_Y = make_account("signer-y")
ADDR_Z, KEY_Z = make_account("signer-z")

SUBNET_SOLO = make_id("subnet-solo")  # control keys {X}, threshold 1
SUBNET_PAIR = make_id("subnet-pair")  # control keys {X, Y}, threshold 2
SUBNET_TRIO = make_id("subnet-trio")  # control keys {X, Y, Z}, threshold 2
CUSTOM_ASSET_ID = make_id("asset-gold")

NODE_IDS = [f"NodeID-node{i}" for i in range(12)]


class FakeChain:
    """In-memory ChainClient.

    Applies the effects of issued transactions (subnets, validators, chains)
    and rejects a transaction ID it has already seen. It does not track
    spent UTXOs.
    """

    def __init__(self):
        self.blockchain_ids = {P_CHAIN: make_id("chain-P"), X_CHAIN: make_id("chain-X")}
        self.subnets: dict[str, SubnetInfo] = {}
        self.blockchains: list[BlockchainInfo] = []
        self.assets: dict[str, AssetInfo] = {}
        self.validators: dict[str, list[ValidatorInfo]] = {PRIMARY_NETWORK_ID: []}
        self.utxos: dict[str, list[UTXO]] = {P_CHAIN: [], X_CHAIN: []}
        self.atomic_utxos: dict[str, list[UTXO]] = {P_CHAIN: [], X_CHAIN: []}
        self.issued: list[PartiallySignedTransaction] = []
        self.accepted: list[str] = []
        self.calls: dict[str, int] = {}
        self.issue_errors: list[Exception] = []
        self.accept_errors: list[Exception] = []
        # When set, issued transactions take effect only once waited on
        self.defer_acceptance = False
        self.pending: dict[str, PartiallySignedTransaction] = {}
        self._lock = threading.Lock()

    def _count(self, name: str) -> None:
        with self._lock:
            self.calls[name] = self.calls.get(name, 0) + 1

    # -- setup helpers --------------------------------------------------

    def add_subnet(self, subnet_id, control_keys, threshold, transformed=False):
        self.subnets[subnet_id] = SubnetInfo(subnet_id, tuple(control_keys), threshold, transformed)
        self.validators.setdefault(subnet_id, [])

    def add_primary_validator(self, node_id, start=PRIMARY_START, end=PRIMARY_END):
        self.validators[PRIMARY_NETWORK_ID].append(
            ValidatorInfo(node_id, PRIMARY_NETWORK_ID, start, end, 2000)
        )

    def fund(self, chain, owner, amount, asset_id=NATIVE_ASSET_ID, label=None):
        utxo_id = make_id(label or f"{chain}-{owner}-{asset_id}-{amount}-{len(self.utxos[chain])}")
        self.utxos[chain].append(UTXO(utxo_id, asset_id, amount, owner))

    # -- ChainClient ----------------------------------------------------

    def get_blockchain_id(self, chain):
        self._count("get_blockchain_id")
        return self.blockchain_ids[chain]

    def get_subnet(self, subnet_id):
        self._count("get_subnet")
        return self.subnets.get(subnet_id)

    def get_blockchains(self, subnet_id):
        self._count("get_blockchains")
        return [chain for chain in self.blockchains if chain.subnet_id == subnet_id]

    def get_asset(self, asset_id):
        self._count("get_asset")
        return self.assets.get(asset_id)

    def get_current_validators(self, subnet_id):
        self._count("get_current_validators")
        return list(self.validators.get(subnet_id, []))

    def get_utxos(self, chain, addresses):
        self._count("get_utxos")
        return [utxo for utxo in self.utxos[chain] if utxo.owner in addresses]

    def get_atomic_utxos(self, chain, source_chain, addresses):
        self._count("get_atomic_utxos")
        return [utxo for utxo in self.atomic_utxos[chain] if utxo.owner in addresses]

    def issue_tx(self, chain, tx_bytes):
        self._count("issue_tx")
        ptx = PartiallySignedTransaction.from_bytes(tx_bytes)
        with self._lock:
            if self.issue_errors:
                raise self.issue_errors.pop(0)
            if not ptx.is_complete():
                raise SubmissionRejected(-32000, "missing signatures")
            if any(seen.tx_id == ptx.tx_id for seen in self.issued):
                raise SubmissionRejected(-32000, f"duplicate transaction {ptx.tx_id}")
            self.issued.append(ptx)
            if self.defer_acceptance:
                self.pending[ptx.tx_id] = ptx
            else:
                self._apply(ptx)
        return ptx.tx_id

    def _apply(self, ptx):
        unsigned = ptx.unsigned
        body = unsigned.body
        if unsigned.type == "create_subnet":
            owner = body["owner"]
            self.add_subnet(ptx.tx_id, owner["addrs"], owner["t"])
        elif unsigned.type == "add_subnet_validator":
            self.validators.setdefault(body["subnet"], []).append(
                ValidatorInfo(body["node"], body["subnet"], body["start"], body["end"], body["weight"])
            )
        elif unsigned.type == "remove_subnet_validator":
            self.validators[body["subnet"]] = [
                v for v in self.validators[body["subnet"]] if v.node_id != body["node"]
            ]
        elif unsigned.type == "create_chain":
            self.blockchains.append(
                BlockchainInfo(ptx.tx_id, body["name"], body["subnet"], body["vm"])
            )

    def wait_for_acceptance(self, chain, tx_id, timeout):
        self._count("wait_for_acceptance")
        with self._lock:
            if self.accept_errors:
                raise self.accept_errors.pop(0)
            if tx_id in self.pending:
                self._apply(self.pending.pop(tx_id))
            self.accepted.append(tx_id)


@pytest.fixture
def chain():
    """Chain with three subnets, funded signers and primary validators."""
    fake = FakeChain()
    fake.add_subnet(SUBNET_SOLO, [ADDR_X], 1)
    fake.add_subnet(SUBNET_PAIR, [ADDR_X, ADDR_Y], 2)
    fake.add_subnet(SUBNET_TRIO, [ADDR_X, ADDR_Y, ADDR_Z], 2)
    for node_id in NODE_IDS:
        fake.add_primary_validator(node_id)
    fake.validators[SUBNET_PAIR].append(
        ValidatorInfo(NODE_IDS[0], SUBNET_PAIR, START_TIME, START_TIME + DURATION, 20)
    )
    fake.validators[SUBNET_SOLO].append(
        ValidatorInfo(NODE_IDS[0], SUBNET_SOLO, START_TIME, START_TIME + DURATION, 20)
    )
    fake.assets[CUSTOM_ASSET_ID] = AssetInfo(CUSTOM_ASSET_ID, "Gold", "GLD", 2)
    for address in (ADDR_X, ADDR_Y):
        fake.fund(P_CHAIN, address, 5_000_000_000)
        fake.fund(X_CHAIN, address, 5_000_000_000)
    fake.fund(P_CHAIN, ADDR_X, 10_000_000, asset_id=CUSTOM_ASSET_ID)
    fake.fund(X_CHAIN, ADDR_X, 10_000_000, asset_id=CUSTOM_ASSET_ID)
    return fake


@pytest.fixture
def config():
    return CoordinatorConfig(network=NETWORK_FUJI, max_workers=4, max_retries=2)


@pytest.fixture
def signer_x():
    return KeychainSigner().add_account(KEY_X)


@pytest.fixture
def signer_y():
    return KeychainSigner().add_account(KEY_Y)


@pytest.fixture
def signer_z():
    return KeychainSigner().add_account(KEY_Z)
