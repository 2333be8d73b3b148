"""subnetctl types - dataclasses for signer sets, outputs, chain state and actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from .constants import P_CHAIN, X_CHAIN
from .errors import InvalidActionParameters


def _dedupe(addresses: Any) -> tuple[str, ...]:
    seen: list[str] = []
    for address in addresses:
        if address not in seen:
            seen.append(address)
    return tuple(seen)


@dataclass(frozen=True)
class OutputOwners:
    """Owners of an output: any ``threshold`` of ``addresses`` may spend it.

    Addresses are stored sorted and deduplicated so that equal owner sets
    always encode to identical bytes.

    Attributes:
        threshold: Signatures required to spend.
        addresses: Owner addresses.
        locktime: Unix time before which the output cannot be spent.
    """

    threshold: int
    addresses: tuple[str, ...]
    locktime: int = 0

    def __post_init__(self) -> None:
        addresses = tuple(sorted(set(self.addresses)))
        object.__setattr__(self, "addresses", addresses)
        if not addresses:
            raise InvalidActionParameters("output owners must name at least one address")
        if not 1 <= self.threshold <= len(addresses):
            raise InvalidActionParameters(
                f"threshold {self.threshold} out of range for {len(addresses)} owner(s)"
            )
        if self.locktime < 0:
            raise InvalidActionParameters("locktime must not be negative")

    @classmethod
    def single(cls, address: str) -> "OutputOwners":
        """Owners consisting of one address with threshold 1."""
        return cls(threshold=1, addresses=(address,))

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.threshold, "addrs": list(self.addresses), "lock": self.locktime}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OutputOwners":
        return cls(
            threshold=data["t"],
            addresses=tuple(data["addrs"]),
            locktime=data.get("lock", 0),
        )


@dataclass(frozen=True)
class AuthorizedSignerSet:
    """Ordered, deduplicated signer identities plus a signature threshold.

    Order is significant: it is the order the resolver reports the
    intersection in, and the order signatures are serialized in.

    Attributes:
        addresses: Signer addresses in authorization order.
        threshold: Minimum number of signatures required.
    """

    addresses: tuple[str, ...]
    threshold: int = 1

    def __post_init__(self) -> None:
        addresses = _dedupe(self.addresses)
        object.__setattr__(self, "addresses", addresses)
        if not addresses:
            raise InvalidActionParameters("authorized signer set must not be empty")
        if not 1 <= self.threshold <= len(addresses):
            raise InvalidActionParameters(
                f"threshold {self.threshold} out of range for {len(addresses)} signer(s)"
            )

    @classmethod
    def single(cls, address: str) -> "AuthorizedSignerSet":
        return cls(addresses=(address,), threshold=1)

    @property
    def is_multisig(self) -> bool:
        """True when more than one identity is named (partial-signature path)."""
        return len(self.addresses) > 1

    def __contains__(self, address: object) -> bool:
        return address in self.addresses

    def __len__(self) -> int:
        return len(self.addresses)

    def to_owners(self) -> OutputOwners:
        """The signer set expressed as output owners."""
        return OutputOwners(threshold=self.threshold, addresses=self.addresses)

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.threshold, "addrs": list(self.addresses)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthorizedSignerSet":
        return cls(addresses=tuple(data["addrs"]), threshold=data["t"])


@dataclass(frozen=True)
class UTXO:
    """An unspent output held by a single address."""

    utxo_id: str
    asset_id: str
    amount: int
    owner: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "utxo": self.utxo_id,
            "asset": self.asset_id,
            "amt": self.amount,
            "owner": self.owner,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UTXO":
        return cls(
            utxo_id=data["utxo"],
            asset_id=data["asset"],
            amount=data["amt"],
            owner=data["owner"],
        )


@dataclass(frozen=True)
class TransferOutput:
    """An output moving ``amount`` of ``asset_id`` to ``owners``."""

    asset_id: str
    amount: int
    owners: OutputOwners

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset": self.asset_id,
            "amt": self.amount,
            "owners": self.owners.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransferOutput":
        return cls(
            asset_id=data["asset"],
            amount=data["amt"],
            owners=OutputOwners.from_dict(data["owners"]),
        )


@dataclass(frozen=True)
class SubmissionReceipt:
    """Network-assigned identifier of an issued transaction."""

    tx_id: str
    chain: str
    network: str


# ============================================================================
# Chain state read models
# ============================================================================


@dataclass(frozen=True)
class SubnetInfo:
    """Subnet as reported by the chain.

    Attributes:
        subnet_id: Subnet ID.
        control_keys: Addresses allowed to authorize subnet governance.
        threshold: Control-key signatures required.
        transformed: Whether the subnet was already made elastic.
    """

    subnet_id: str
    control_keys: tuple[str, ...]
    threshold: int
    transformed: bool = False


@dataclass(frozen=True)
class BlockchainInfo:
    blockchain_id: str
    name: str
    subnet_id: str
    vm_id: str


@dataclass(frozen=True)
class AssetInfo:
    asset_id: str
    name: str
    symbol: str
    denomination: int


@dataclass(frozen=True)
class ValidatorInfo:
    """A current validator of a subnet (or of the primary network)."""

    node_id: str
    subnet_id: str
    start_time: int
    end_time: int
    weight: int


# ============================================================================
# Governance actions
# ============================================================================


@dataclass(frozen=True)
class CreateSubnet:
    """Create a subnet controlled by ``threshold`` of ``control_keys``."""

    chain: ClassVar[str] = P_CHAIN

    control_keys: tuple[str, ...]
    threshold: int


@dataclass(frozen=True)
class AddValidator:
    """Add ``node_id`` as a validator of ``subnet_id``.

    Attributes:
        node_id: Node to add.
        subnet_id: Target subnet.
        weight: Validator weight.
        start_time: Unix start time of the validation period.
        duration: Validation period length in seconds.
    """

    chain: ClassVar[str] = P_CHAIN

    node_id: str
    subnet_id: str
    weight: int
    start_time: int
    duration: int

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration


@dataclass(frozen=True)
class RemoveValidator:
    chain: ClassVar[str] = P_CHAIN

    node_id: str
    subnet_id: str


@dataclass(frozen=True)
class CreateBlockchain:
    """Create a blockchain named ``chain_name`` on ``subnet_id`` running ``vm_name``."""

    chain: ClassVar[str] = P_CHAIN

    subnet_id: str
    chain_name: str
    vm_name: str
    genesis: bytes
    fx_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class TransformSubnet:
    """Convert a permissioned subnet into an elastic (staking) subnet.

    Rates, fees and uptime are parts per million; durations are seconds.
    """

    chain: ClassVar[str] = P_CHAIN

    subnet_id: str
    asset_id: str
    initial_supply: int
    max_supply: int
    min_consumption_rate: int
    max_consumption_rate: int
    min_validator_stake: int
    max_validator_stake: int
    min_stake_duration: int
    max_stake_duration: int
    min_delegation_fee: int
    min_delegator_stake: int
    max_validator_weight_factor: int
    uptime_requirement: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransformSubnet":
        """Create from an elastic subnet config dictionary (camelCase keys)."""
        return cls(
            subnet_id=data["subnetID"],
            asset_id=data["assetID"],
            initial_supply=int(data["initialSupply"]),
            max_supply=int(data["maxSupply"]),
            min_consumption_rate=int(data["minConsumptionRate"]),
            max_consumption_rate=int(data["maxConsumptionRate"]),
            min_validator_stake=int(data["minValidatorStake"]),
            max_validator_stake=int(data["maxValidatorStake"]),
            min_stake_duration=int(data["minStakeDuration"]),
            max_stake_duration=int(data["maxStakeDuration"]),
            min_delegation_fee=int(data["minDelegationFee"]),
            min_delegator_stake=int(data["minDelegatorStake"]),
            max_validator_weight_factor=int(data["maxValidatorWeightFactor"]),
            uptime_requirement=int(data["uptimeRequirement"]),
        )


@dataclass(frozen=True)
class ExportAsset:
    """Export ``amount`` of ``asset_id`` from the X-chain to ``destination_chain``."""

    chain: ClassVar[str] = X_CHAIN

    asset_id: str
    amount: int
    owners: OutputOwners
    destination_chain: str = P_CHAIN


@dataclass(frozen=True)
class ImportAsset:
    """Import every exported UTXO waiting on the P-chain from ``source_chain``."""

    chain: ClassVar[str] = P_CHAIN

    owners: OutputOwners
    source_chain: str = X_CHAIN


@dataclass(frozen=True)
class AssetHolder:
    amount: int
    owners: OutputOwners


@dataclass(frozen=True)
class CreateAsset:
    """Create a new X-chain asset minted to ``initial_holders``."""

    chain: ClassVar[str] = X_CHAIN

    name: str
    symbol: str
    denomination: int
    initial_holders: tuple[AssetHolder, ...] = field(default_factory=tuple)


GovernanceAction = Union[
    CreateSubnet,
    AddValidator,
    RemoveValidator,
    CreateBlockchain,
    TransformSubnet,
    ExportAsset,
    ImportAsset,
    CreateAsset,
]

# Every variant of GovernanceAction; builders must cover all of them
ACTION_TYPES: tuple[type, ...] = (
    CreateSubnet,
    AddValidator,
    RemoveValidator,
    CreateBlockchain,
    TransformSubnet,
    ExportAsset,
    ImportAsset,
    CreateAsset,
)
