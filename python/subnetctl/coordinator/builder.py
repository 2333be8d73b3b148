"""Action-to-transaction builder.

Maps every governance action to exactly one construction routine. Each
routine is pure given the action and a ``ChainSnapshot``: it validates the
action's parameters, checks chain-state preconditions, and describes the
outputs and burns the action needs. Shared code then selects fee inputs
from the spending addresses and returns change to the change owner.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Callable

from ..app_logging import structlog
from ..config import CoordinatorConfig
from ..constants import (
    CHAIN_ALIASES,
    MAX_ASSET_NAME_LEN,
    MAX_ASSET_SYMBOL_LEN,
    MAX_CHAIN_NAME_LEN,
    MAX_DENOMINATION,
    MAX_GENESIS_LEN,
    MAX_STAKE_DURATION,
    MIN_STAKE_DURATION,
    PERCENT_DENOMINATOR,
    PRIMARY_NETWORK_ID,
    P_CHAIN,
    TXN_TYPE_ADD_VALIDATOR,
    TXN_TYPE_CREATE_ASSET,
    TXN_TYPE_CREATE_BLOCKCHAIN,
    TXN_TYPE_CREATE_SUBNET,
    TXN_TYPE_EXPORT,
    TXN_TYPE_IMPORT,
    TXN_TYPE_REMOVE_VALIDATOR,
    TXN_TYPE_TRANSFORM_SUBNET,
    X_CHAIN,
)
from ..errors import ChainStatePrecondition, InvalidActionParameters
from ..signer import ChainClient
from ..transaction import UnsignedTransaction
from ..types import (
    ACTION_TYPES,
    AddValidator,
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
    SubnetInfo,
    TransferOutput,
    TransformSubnet,
    UTXO,
    ValidatorInfo,
)
from ..utils import is_valid_address, is_valid_id, is_valid_node_id, vm_id_from_name

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChangeRouting:
    """Output-routing policy: who receives change. Applied on the multisig path."""

    change_owner: OutputOwners

    @classmethod
    def to_address(cls, address: str) -> "ChangeRouting":
        return cls(change_owner=OutputOwners.single(address))


@dataclass(frozen=True)
class ChainSnapshot:
    """Read-only view of the chain state one action depends on.

    Safe to share between concurrent invocations.

    Attributes:
        network_id: Numeric network ID.
        native_asset_id: Asset fees are paid in.
        fees: Fee schedule for the network.
        blockchain_ids: Chain alias to blockchain ID.
        utxos: Spendable UTXOs of the spending addresses on the action's chain.
        atomic_utxos: UTXOs exported to the action's chain (imports only).
        subnet: Target subnet, if the action names one.
        blockchains: Blockchains of the target subnet.
        asset: Asset the action names, if any.
        subnet_validators: Current validators of the target subnet.
        primary_validators: Current primary network validators.
    """

    network_id: int
    native_asset_id: str
    fees: dict[str, int]
    blockchain_ids: dict[str, str]
    utxos: tuple[UTXO, ...] = ()
    atomic_utxos: tuple[UTXO, ...] = ()
    subnet: SubnetInfo | None = None
    blockchains: tuple[BlockchainInfo, ...] = ()
    asset: AssetInfo | None = None
    subnet_validators: tuple[ValidatorInfo, ...] = ()
    primary_validators: tuple[ValidatorInfo, ...] = ()

    @classmethod
    def load(
        cls,
        client: ChainClient,
        config: CoordinatorConfig,
        action: GovernanceAction,
        spend_addresses: list[str],
    ) -> "ChainSnapshot":
        """Read the chain state ``action`` needs.

        Args:
            client: Chain client.
            config: Network configuration.
            action: Action about to be built.
            spend_addresses: Addresses whose UTXOs may pay for the action.
        """
        aliases = {action.chain}
        if isinstance(action, ExportAsset):
            aliases.add(action.destination_chain)
        if isinstance(action, ImportAsset):
            aliases.add(action.source_chain)
        blockchain_ids = {alias: client.get_blockchain_id(alias) for alias in sorted(aliases)}

        subnet = None
        blockchains: list[BlockchainInfo] = []
        subnet_validators: list[ValidatorInfo] = []
        primary_validators: list[ValidatorInfo] = []
        subnet_id = getattr(action, "subnet_id", None)
        if subnet_id is not None and is_valid_id(subnet_id):
            subnet = client.get_subnet(subnet_id)
            if isinstance(action, CreateBlockchain):
                blockchains = client.get_blockchains(subnet_id)
            if isinstance(action, (AddValidator, RemoveValidator)):
                subnet_validators = client.get_current_validators(subnet_id)
            if isinstance(action, AddValidator):
                primary_validators = client.get_current_validators(PRIMARY_NETWORK_ID)

        asset = None
        asset_id = getattr(action, "asset_id", None)
        if asset_id is not None and asset_id != config.native_asset_id and is_valid_id(asset_id):
            asset = client.get_asset(asset_id)

        atomic_utxos: list[UTXO] = []
        if isinstance(action, ImportAsset):
            atomic_utxos = client.get_atomic_utxos(action.chain, action.source_chain, spend_addresses)

        return cls(
            network_id=config.network_id,
            native_asset_id=config.native_asset_id,
            fees=config.fees,
            blockchain_ids=blockchain_ids,
            utxos=tuple(client.get_utxos(action.chain, spend_addresses)),
            atomic_utxos=tuple(atomic_utxos),
            subnet=subnet,
            blockchains=tuple(blockchains),
            asset=asset,
            subnet_validators=tuple(subnet_validators),
            primary_validators=tuple(primary_validators),
        )


@dataclass
class _Plan:
    """What an action needs before inputs and change are settled."""

    type: str
    body: dict[str, Any]
    fee_key: str
    outputs: list[TransferOutput] = field(default_factory=list)
    burn: dict[str, int] = field(default_factory=dict)
    imported: list[UTXO] | None = None


_Routine = Callable[[Any, ChainSnapshot, AuthorizedSignerSet], _Plan]


# ============================================================================
# Parameter and precondition checks
# ============================================================================


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidActionParameters(message)


def _require_id(value: str, what: str) -> None:
    _require(is_valid_id(value), f"invalid {what}: {value!r}")


def _require_owners(owners: OutputOwners, what: str) -> None:
    for address in owners.addresses:
        _require(is_valid_address(address), f"invalid {what} address: {address!r}")


def _require_subnet(snapshot: ChainSnapshot, subnet_id: str) -> SubnetInfo:
    _require_id(subnet_id, "subnet ID")
    _require(subnet_id != PRIMARY_NETWORK_ID, "the primary network cannot be governed as a subnet")
    if snapshot.subnet is None or snapshot.subnet.subnet_id != subnet_id:
        raise ChainStatePrecondition(f"subnet {subnet_id} does not exist")
    return snapshot.subnet


def _require_subnet_auth(subnet: SubnetInfo, signers: AuthorizedSignerSet) -> list[int]:
    """Check the signer set can authorize for the subnet; return control-key indices."""
    outsiders = [address for address in signers.addresses if address not in subnet.control_keys]
    if outsiders:
        raise ChainStatePrecondition(
            f"{', '.join(outsiders)} not a control key of subnet {subnet.subnet_id}"
        )
    if signers.threshold < subnet.threshold:
        raise ChainStatePrecondition(
            f"subnet {subnet.subnet_id} requires {subnet.threshold} control key signature(s), "
            f"signer set threshold is {signers.threshold}"
        )
    return sorted(subnet.control_keys.index(address) for address in signers.addresses)


def _require_asset(snapshot: ChainSnapshot, asset_id: str) -> None:
    _require_id(asset_id, "asset ID")
    if asset_id == snapshot.native_asset_id:
        return
    if snapshot.asset is None or snapshot.asset.asset_id != asset_id:
        raise ChainStatePrecondition(f"asset {asset_id} does not exist")


# ============================================================================
# Construction routines, one per action
# ============================================================================


@functools.singledispatch
def _plan(action: Any, snapshot: ChainSnapshot, signers: AuthorizedSignerSet) -> _Plan:
    raise InvalidActionParameters(f"unsupported governance action: {type(action).__name__}")


@_plan.register
def _plan_create_subnet(
    action: CreateSubnet, snapshot: ChainSnapshot, signers: AuthorizedSignerSet
) -> _Plan:
    owners = OutputOwners(threshold=action.threshold, addresses=tuple(action.control_keys))
    _require_owners(owners, "control key")
    return _Plan(
        type=TXN_TYPE_CREATE_SUBNET,
        body={"owner": owners.to_dict()},
        fee_key="create_subnet_fee",
    )


@_plan.register
def _plan_add_validator(
    action: AddValidator, snapshot: ChainSnapshot, signers: AuthorizedSignerSet
) -> _Plan:
    _require(is_valid_node_id(action.node_id), f"invalid node ID: {action.node_id!r}")
    _require(action.weight > 0, "validator weight must be positive")
    _require(action.start_time > 0, "start time must be a positive unix timestamp")
    _require(
        0 < action.duration <= MAX_STAKE_DURATION,
        f"duration must be between 1 and {MAX_STAKE_DURATION} seconds",
    )
    subnet = _require_subnet(snapshot, action.subnet_id)
    auth = _require_subnet_auth(subnet, signers)

    if any(v.node_id == action.node_id for v in snapshot.subnet_validators):
        raise ChainStatePrecondition(
            f"node {action.node_id} is already a validator of subnet {action.subnet_id}"
        )
    primary = next((v for v in snapshot.primary_validators if v.node_id == action.node_id), None)
    if primary is None:
        raise ChainStatePrecondition(
            f"node {action.node_id} is not a primary network validator"
        )
    if action.start_time < primary.start_time or action.end_time > primary.end_time:
        raise ChainStatePrecondition(
            f"validation period [{action.start_time}, {action.end_time}] must lie within the "
            f"primary network period [{primary.start_time}, {primary.end_time}] of {action.node_id}"
        )

    return _Plan(
        type=TXN_TYPE_ADD_VALIDATOR,
        body={
            "node": action.node_id,
            "subnet": action.subnet_id,
            "start": action.start_time,
            "end": action.end_time,
            "weight": action.weight,
            "auth": auth,
        },
        fee_key="add_subnet_validator_fee",
    )


@_plan.register
def _plan_remove_validator(
    action: RemoveValidator, snapshot: ChainSnapshot, signers: AuthorizedSignerSet
) -> _Plan:
    _require(is_valid_node_id(action.node_id), f"invalid node ID: {action.node_id!r}")
    subnet = _require_subnet(snapshot, action.subnet_id)
    auth = _require_subnet_auth(subnet, signers)
    if not any(v.node_id == action.node_id for v in snapshot.subnet_validators):
        raise ChainStatePrecondition(
            f"node {action.node_id} is not a validator of subnet {action.subnet_id}"
        )
    return _Plan(
        type=TXN_TYPE_REMOVE_VALIDATOR,
        body={"node": action.node_id, "subnet": action.subnet_id, "auth": auth},
        fee_key="tx_fee",
    )


@_plan.register
def _plan_create_blockchain(
    action: CreateBlockchain, snapshot: ChainSnapshot, signers: AuthorizedSignerSet
) -> _Plan:
    name = action.chain_name
    _require(
        0 < len(name) <= MAX_CHAIN_NAME_LEN
        and name.isascii()
        and name.replace(" ", "").isalnum()
        and name == name.strip(),
        f"invalid chain name {name!r}: use up to {MAX_CHAIN_NAME_LEN} ASCII letters, digits or spaces",
    )
    try:
        vm_id = vm_id_from_name(action.vm_name)
    except ValueError as e:
        raise InvalidActionParameters(f"failed to create VM ID from {action.vm_name}: {e}") from e
    _require(0 < len(action.genesis) <= MAX_GENESIS_LEN, "genesis must be 1 byte to 1 MiB")
    for fx_id in action.fx_ids:
        _require_id(fx_id, "fx ID")

    subnet = _require_subnet(snapshot, action.subnet_id)
    auth = _require_subnet_auth(subnet, signers)
    for existing in snapshot.blockchains:
        if existing.name == name:
            raise ChainStatePrecondition(
                f"blockchain {name!r} already exists on subnet {action.subnet_id} "
                f"with ID {existing.blockchain_id}"
            )

    return _Plan(
        type=TXN_TYPE_CREATE_BLOCKCHAIN,
        body={
            "subnet": action.subnet_id,
            "name": name,
            "vm": vm_id,
            "fxs": sorted(action.fx_ids),
            "genesis": bytes(action.genesis),
            "auth": auth,
        },
        fee_key="create_blockchain_fee",
    )


def _check_elastic_economics(action: TransformSubnet) -> None:
    _require(action.initial_supply > 0, "initial supply must be positive")
    _require(action.initial_supply <= action.max_supply, "initial supply must not exceed max supply")
    _require(
        action.min_consumption_rate <= action.max_consumption_rate <= PERCENT_DENOMINATOR,
        "consumption rates must satisfy min <= max <= 100%",
    )
    _require(action.min_validator_stake > 0, "min validator stake must be positive")
    _require(
        action.min_validator_stake <= action.max_validator_stake <= action.max_supply,
        "validator stakes must satisfy min <= max <= max supply",
    )
    _require(
        action.min_validator_stake <= action.initial_supply,
        "min validator stake must not exceed initial supply",
    )
    _require(
        MIN_STAKE_DURATION
        <= action.min_stake_duration
        <= action.max_stake_duration
        <= MAX_STAKE_DURATION,
        "stake durations must satisfy one day <= min <= max <= one year",
    )
    _require(
        action.min_delegation_fee <= PERCENT_DENOMINATOR,
        "min delegation fee must not exceed 100%",
    )
    _require(action.min_delegator_stake > 0, "min delegator stake must be positive")
    _require(action.max_validator_weight_factor > 0, "max validator weight factor must be positive")
    _require(
        action.uptime_requirement <= PERCENT_DENOMINATOR,
        "uptime requirement must not exceed 100%",
    )


@_plan.register
def _plan_transform_subnet(
    action: TransformSubnet, snapshot: ChainSnapshot, signers: AuthorizedSignerSet
) -> _Plan:
    _check_elastic_economics(action)
    _require_id(action.asset_id, "asset ID")
    _require(
        action.asset_id != snapshot.native_asset_id,
        "the native asset cannot be used as a subnet staking asset",
    )
    subnet = _require_subnet(snapshot, action.subnet_id)
    auth = _require_subnet_auth(subnet, signers)
    if subnet.transformed:
        raise ChainStatePrecondition(f"subnet {action.subnet_id} is already transformed")
    _require_asset(snapshot, action.asset_id)

    body = {
        "subnet": action.subnet_id,
        "asset": action.asset_id,
        "initialSupply": action.initial_supply,
        "maxSupply": action.max_supply,
        "minConsumptionRate": action.min_consumption_rate,
        "maxConsumptionRate": action.max_consumption_rate,
        "minValidatorStake": action.min_validator_stake,
        "maxValidatorStake": action.max_validator_stake,
        "minStakeDuration": action.min_stake_duration,
        "maxStakeDuration": action.max_stake_duration,
        "minDelegationFee": action.min_delegation_fee,
        "minDelegatorStake": action.min_delegator_stake,
        "maxValidatorWeightFactor": action.max_validator_weight_factor,
        "uptimeRequirement": action.uptime_requirement,
        "auth": auth,
    }
    # The unminted supply is locked by burning it from the payer
    burn = {}
    if action.max_supply > action.initial_supply:
        burn[action.asset_id] = action.max_supply - action.initial_supply
    return _Plan(
        type=TXN_TYPE_TRANSFORM_SUBNET,
        body=body,
        fee_key="transform_subnet_fee",
        burn=burn,
    )


@_plan.register
def _plan_export(action: ExportAsset, snapshot: ChainSnapshot, signers: AuthorizedSignerSet) -> _Plan:
    _require(action.amount > 0, "export amount must be positive")
    _require(
        action.destination_chain in CHAIN_ALIASES and action.destination_chain != X_CHAIN,
        f"cannot export from the X-chain to {action.destination_chain!r}",
    )
    _require_owners(action.owners, "destination owner")
    _require_asset(snapshot, action.asset_id)

    exported = TransferOutput(asset_id=action.asset_id, amount=action.amount, owners=action.owners)
    return _Plan(
        type=TXN_TYPE_EXPORT,
        body={
            "dest": snapshot.blockchain_ids[action.destination_chain],
            "exported": [exported.to_dict()],
        },
        fee_key="tx_fee",
        burn={action.asset_id: action.amount},
    )


@_plan.register
def _plan_import(action: ImportAsset, snapshot: ChainSnapshot, signers: AuthorizedSignerSet) -> _Plan:
    _require(
        action.source_chain in CHAIN_ALIASES and action.source_chain != P_CHAIN,
        f"cannot import to the P-chain from {action.source_chain!r}",
    )
    _require_owners(action.owners, "destination owner")
    if not snapshot.atomic_utxos:
        raise ChainStatePrecondition(
            f"no funds to import from the {action.source_chain}-chain"
        )

    totals: dict[str, int] = {}
    for utxo in snapshot.atomic_utxos:
        totals[utxo.asset_id] = totals.get(utxo.asset_id, 0) + utxo.amount

    fee = snapshot.fees["tx_fee"]
    native_total = totals.get(snapshot.native_asset_id, 0)
    if native_total < fee:
        raise ChainStatePrecondition(
            f"imported funds ({native_total}) do not cover the import fee ({fee})"
        )
    totals[snapshot.native_asset_id] = native_total - fee

    outputs = [
        TransferOutput(asset_id=asset_id, amount=amount, owners=action.owners)
        for asset_id, amount in sorted(totals.items())
        if amount > 0
    ]
    return _Plan(
        type=TXN_TYPE_IMPORT,
        body={"source": snapshot.blockchain_ids[action.source_chain]},
        fee_key="tx_fee",
        outputs=outputs,
        imported=sorted(snapshot.atomic_utxos, key=lambda utxo: utxo.utxo_id),
    )


@_plan.register
def _plan_create_asset(
    action: CreateAsset, snapshot: ChainSnapshot, signers: AuthorizedSignerSet
) -> _Plan:
    _require(
        0 < len(action.name) <= MAX_ASSET_NAME_LEN and action.name.isascii() and action.name.isprintable(),
        f"asset name must be 1-{MAX_ASSET_NAME_LEN} printable ASCII characters",
    )
    _require(
        0 < len(action.symbol) <= MAX_ASSET_SYMBOL_LEN
        and action.symbol.isascii()
        and action.symbol.isalpha()
        and action.symbol.isupper(),
        f"asset symbol must be 1-{MAX_ASSET_SYMBOL_LEN} uppercase letters",
    )
    _require(
        0 <= action.denomination <= MAX_DENOMINATION,
        f"denomination must be between 0 and {MAX_DENOMINATION}",
    )
    _require(len(action.initial_holders) > 0, "asset needs at least one initial holder")
    for holder in action.initial_holders:
        _require(holder.amount > 0, "initial holder amounts must be positive")
        _require_owners(holder.owners, "initial holder")

    return _Plan(
        type=TXN_TYPE_CREATE_ASSET,
        body={
            "name": action.name,
            "symbol": action.symbol,
            "denom": action.denomination,
            "holders": [
                {"amt": holder.amount, "owners": holder.owners.to_dict()}
                for holder in action.initial_holders
            ],
        },
        fee_key="create_asset_fee",
    )


_missing_routines = [t.__name__ for t in ACTION_TYPES if t not in _plan.registry]
if _missing_routines:
    raise TypeError(f"no builder registered for: {', '.join(_missing_routines)}")


# ============================================================================
# Input selection and assembly
# ============================================================================


def _select_inputs(
    snapshot: ChainSnapshot,
    spend_addresses: list[str],
    needed: dict[str, int],
) -> tuple[list[UTXO], dict[str, int]]:
    """Pick UTXOs covering ``needed`` per asset; return (inputs, change per asset).

    Candidates are ordered by spending address, then UTXO ID, so selection
    is deterministic.
    """
    rank = {address: i for i, address in enumerate(spend_addresses)}
    candidates = sorted(
        (utxo for utxo in snapshot.utxos if utxo.owner in rank),
        key=lambda utxo: (rank[utxo.owner], utxo.utxo_id),
    )

    selected: list[UTXO] = []
    change: dict[str, int] = {}
    for asset_id, amount in sorted(needed.items()):
        if amount <= 0:
            continue
        gathered = 0
        for utxo in candidates:
            if gathered >= amount:
                break
            if utxo.asset_id == asset_id:
                selected.append(utxo)
                gathered += utxo.amount
        if gathered < amount:
            raise ChainStatePrecondition(
                f"insufficient funds: need {amount} of asset {asset_id}, "
                f"wallet addresses hold {gathered}"
            )
        if gathered > amount:
            change[asset_id] = gathered - amount
    return selected, change


def build(
    action: GovernanceAction,
    snapshot: ChainSnapshot,
    signers: AuthorizedSignerSet,
    spend_addresses: list[str],
    routing: ChangeRouting | None = None,
) -> UnsignedTransaction:
    """Build the unsigned transaction for ``action``.

    Args:
        action: Governance action.
        snapshot: Chain state the action is checked against.
        signers: Authorized signer set that will sign the transaction.
        spend_addresses: Addresses whose UTXOs pay fees and burns.
        routing: Change routing policy; defaults to the signer set's owners.

    Returns:
        UnsignedTransaction, byte-identical for identical inputs.

    Raises:
        InvalidActionParameters: If the action's parameters are invalid.
        ChainStatePrecondition: If chain state does not allow the action.
    """
    plan = _plan(action, snapshot, signers)
    change_owner = routing.change_owner if routing else signers.to_owners()

    if plan.imported is not None:
        inputs, change = plan.imported, {}
    else:
        needed: dict[str, int] = dict(plan.burn)
        for out in plan.outputs:
            needed[out.asset_id] = needed.get(out.asset_id, 0) + out.amount
        fee = snapshot.fees[plan.fee_key]
        needed[snapshot.native_asset_id] = needed.get(snapshot.native_asset_id, 0) + fee
        inputs, change = _select_inputs(snapshot, spend_addresses, needed)

    unsigned = UnsignedTransaction(
        network_id=snapshot.network_id,
        blockchain_id=snapshot.blockchain_ids[action.chain],
        chain=action.chain,
        type=plan.type,
        inputs=tuple(inputs),
        outputs=tuple(plan.outputs),
        change=tuple(
            TransferOutput(asset_id=asset_id, amount=amount, owners=change_owner)
            for asset_id, amount in sorted(change.items())
        ),
        body=plan.body,
        signers=signers,
    )
    logger.debug(
        "built transaction",
        type=plan.type,
        tx_id=unsigned.tx_id,
        inputs=len(unsigned.inputs),
        change=len(unsigned.change),
    )
    return unsigned
