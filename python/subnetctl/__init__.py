"""subnetctl - threshold co-signing transaction coordinator for subnet governance.

Issues subnet governance transactions (create subnets and blockchains, add
and remove validators, make subnets elastic, create and move assets). When
an action needs more than one control-key signature, the local wallet signs
what it can and returns a partially-signed artifact that co-signers complete
out of band.

Environment Variables:
    SUBNETCTL_NETWORK: Target network (mainnet, fuji, local).
    SUBNETCTL_API_URL: Custom node API URL.
    SUBNETCTL_USE_LEDGER: "1" to confirm each signature on a hardware device.
    MAINNET_API_URL / FUJI_API_URL / LOCAL_API_URL: Per-network endpoints.

Usage:
    ```python
    from subnetctl import (
        Coordinator,
        CoordinatorConfig,
        JsonRpcChainClient,
        KeychainSigner,
    )

    config = CoordinatorConfig.from_env()
    signer = KeychainSigner().add_account_from_mnemonic(os.environ["SUBNETCTL_MNEMONIC"])
    coordinator = Coordinator(signer, JsonRpcChainClient(config), config)

    outcome = coordinator.add_validator(node_id, subnet_id, weight=20,
                                        start_time=start, duration=14 * 86400)
    if not outcome.submitted:
        Path("tx.json").write_text(outcome.transaction.to_json())
    ```
"""

# Constants
from .constants import (
    NETWORK_CONFIGS,
    NETWORK_FUJI,
    NETWORK_LOCAL,
    NETWORK_MAINNET,
    P_CHAIN,
    PRIMARY_NETWORK_ID,
    SUPPORTED_NETWORKS,
    X_CHAIN,
)

# Types
from .types import (
    ACTION_TYPES,
    AddValidator,
    AssetHolder,
    AssetInfo,
    AuthorizedSignerSet,
    BlockchainInfo,
    CreateAsset,
    CreateBlockchain,
    CreateSubnet,
    ExportAsset,
    GovernanceAction,
    ImportAsset,
    OutputOwners,
    RemoveValidator,
    SubmissionReceipt,
    SubnetInfo,
    TransferOutput,
    TransformSubnet,
    UTXO,
    ValidatorInfo,
)

# Errors
from .errors import (
    AcceptanceTimeout,
    ChainStatePrecondition,
    ChainTimeout,
    CoordinatorError,
    InsufficientSignatures,
    InvalidActionParameters,
    MalformedTransaction,
    NoAuthorizedSignerInWallet,
    SigningCancelled,
    SigningFailed,
    SubmissionRejected,
)

# Collaborator protocols and implementations
from .signer import ChainClient, KeySigner
from .signers import KeychainSigner
from .rpc import JsonRpcChainClient

# Transactions
from .transaction import PartiallySignedTransaction, UnsignedTransaction, verify_signature

# Configuration and batch execution
from .config import CoordinatorConfig
from .batch import TaskResult, run_batch

# Coordinator
from .coordinator import (
    ChainSnapshot,
    ChangeRouting,
    Coordinator,
    CoordinatorOutcome,
    CoordinatorState,
    build,
)

__all__ = [
    # Constants
    "NETWORK_CONFIGS",
    "NETWORK_FUJI",
    "NETWORK_LOCAL",
    "NETWORK_MAINNET",
    "P_CHAIN",
    "PRIMARY_NETWORK_ID",
    "SUPPORTED_NETWORKS",
    "X_CHAIN",
    # Types
    "ACTION_TYPES",
    "AddValidator",
    "AssetHolder",
    "AssetInfo",
    "AuthorizedSignerSet",
    "BlockchainInfo",
    "CreateAsset",
    "CreateBlockchain",
    "CreateSubnet",
    "ExportAsset",
    "GovernanceAction",
    "ImportAsset",
    "OutputOwners",
    "RemoveValidator",
    "SubmissionReceipt",
    "SubnetInfo",
    "TransferOutput",
    "TransformSubnet",
    "UTXO",
    "ValidatorInfo",
    # Errors
    "AcceptanceTimeout",
    "ChainStatePrecondition",
    "ChainTimeout",
    "CoordinatorError",
    "InsufficientSignatures",
    "InvalidActionParameters",
    "MalformedTransaction",
    "NoAuthorizedSignerInWallet",
    "SigningCancelled",
    "SigningFailed",
    "SubmissionRejected",
    # Protocols and implementations
    "ChainClient",
    "KeySigner",
    "KeychainSigner",
    "JsonRpcChainClient",
    # Transactions
    "PartiallySignedTransaction",
    "UnsignedTransaction",
    "verify_signature",
    # Configuration and batch
    "CoordinatorConfig",
    "TaskResult",
    "run_batch",
    # Coordinator
    "ChainSnapshot",
    "ChangeRouting",
    "Coordinator",
    "CoordinatorOutcome",
    "CoordinatorState",
    "build",
]
