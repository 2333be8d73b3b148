"""Threshold co-signing transaction coordinator.

Each governance action is a fresh run of a small state machine:

    INIT -> SIGNERS_RESOLVED -> BUILT -> DIRECT_SIGNED -> SUBMITTED
                                      -> PARTIALLY_SIGNED -> AWAITING_CO_SIGNERS

A one-member signer set takes the direct path and is submitted right
away. A larger set produces a partially-signed artifact that is relayed
to co-signers, who run ``cosign`` on it (attach and submit, never build).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from ..app_logging import structlog
from ..batch import TaskResult, run_batch
from ..config import CoordinatorConfig
from ..errors import (
    AcceptanceTimeout,
    ChainStatePrecondition,
    ChainTimeout,
    CoordinatorError,
    NoAuthorizedSignerInWallet,
)
from ..signer import ChainClient, KeySigner
from ..transaction import PartiallySignedTransaction, UnsignedTransaction
from ..types import (
    AddValidator,
    AssetHolder,
    AuthorizedSignerSet,
    CreateAsset,
    CreateBlockchain,
    CreateSubnet,
    ExportAsset,
    GovernanceAction,
    ImportAsset,
    OutputOwners,
    RemoveValidator,
    SubmissionReceipt,
    TransformSubnet,
)
from .attacher import attach
from .builder import ChainSnapshot, ChangeRouting, build
from .resolver import require_signers
from .submission import Submitter

logger = structlog.get_logger(__name__)

Builder = Callable[..., UnsignedTransaction]


class CoordinatorState(str, Enum):
    INIT = "init"
    SIGNERS_RESOLVED = "signers_resolved"
    BUILT = "built"
    DIRECT_SIGNED = "direct_signed"
    PARTIALLY_SIGNED = "partially_signed"
    SUBMITTED = "submitted"
    AWAITING_CO_SIGNERS = "awaiting_co_signers"
    FAILED = "failed"


@dataclass
class CoordinatorOutcome:
    """Result of one coordinator run.

    Attributes:
        state: Terminal state (SUBMITTED or AWAITING_CO_SIGNERS).
        trace: Every state visited, in order.
        transaction: The signed artifact.
        receipt: Submission receipt, when the transaction was issued.
    """

    state: CoordinatorState
    trace: list[CoordinatorState] = field(default_factory=list)
    transaction: PartiallySignedTransaction | None = None
    receipt: SubmissionReceipt | None = None

    @property
    def submitted(self) -> bool:
        return self.state is CoordinatorState.SUBMITTED

    @property
    def ready(self) -> bool:
        """Whether an awaiting artifact already meets its threshold."""
        return self.transaction is not None and self.transaction.is_complete()

    @property
    def tx_id(self) -> str | None:
        if self.receipt is not None:
            return self.receipt.tx_id
        return self.transaction.tx_id if self.transaction is not None else None


class _Run:
    """State trace of one invocation."""

    def __init__(self, action: str):
        self.trace = [CoordinatorState.INIT]
        self.log = logger.bind(action=action)

    def advance(self, state: CoordinatorState, **fields) -> None:
        self.trace.append(state)
        self.log.debug("state changed", state=state.value, **fields)

    def fail(self, error: CoordinatorError) -> None:
        self.trace.append(CoordinatorState.FAILED)
        error.trace = tuple(self.trace)
        self.log.error("coordinator failed", error=str(error), error_type=type(error).__name__)

    def outcome(self, **kwargs) -> CoordinatorOutcome:
        return CoordinatorOutcome(state=self.trace[-1], trace=list(self.trace), **kwargs)


def _wallet_first(
    control_keys: Sequence[str],
    threshold: int,
    controlled: set[str],
) -> AuthorizedSignerSet:
    """``threshold`` of ``control_keys``, wallet-held keys first."""
    keys = list(dict.fromkeys(control_keys))
    ordered = [key for key in keys if key in controlled]
    ordered += [key for key in keys if key not in controlled]
    return AuthorizedSignerSet(addresses=tuple(ordered[:threshold]), threshold=threshold)


class Coordinator:
    """Drives governance actions through resolve, build, sign and submit.

    Holds no per-invocation state: one instance may serve concurrent
    invocations from a worker pool.

    Args:
        key_signer: Local key signer.
        client: Chain client.
        config: Coordinator configuration; defaults to ``CoordinatorConfig()``.
        builder: Transaction builder (defaults to ``builder.build``).

    Example:
        ```python
        signer = KeychainSigner().add_account_from_mnemonic(words)
        coordinator = Coordinator(signer, JsonRpcChainClient(config), config)
        outcome = coordinator.remove_validator("NodeID-...", subnet_id)
        if outcome.state is CoordinatorState.AWAITING_CO_SIGNERS:
            Path("tx.json").write_text(outcome.transaction.to_json())
        ```
    """

    def __init__(
        self,
        key_signer: KeySigner,
        client: ChainClient,
        config: CoordinatorConfig | None = None,
        builder: Builder = build,
    ):
        self._signer = key_signer
        self._client = client
        self._config = config or CoordinatorConfig()
        self._build = builder
        self._submitter = Submitter(client, self._config)

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    def _prompt(self, identity: str, unsigned: UnsignedTransaction) -> None:
        logger.info(
            "confirm transaction on ledger",
            identity=identity,
            tx_id=unsigned.tx_id,
            type=unsigned.type,
        )

    def _sign_prompt(self):
        return self._prompt if self._config.using_ledger else None

    def execute(
        self,
        action: GovernanceAction,
        signers: AuthorizedSignerSet,
    ) -> CoordinatorOutcome:
        """Run one governance action.

        Args:
            action: Action to perform.
            signers: Authorized signer set for the action.

        Returns:
            SUBMITTED outcome with a receipt on the direct path;
            AWAITING_CO_SIGNERS outcome with the artifact on the multisig path.

        Raises:
            NoAuthorizedSignerInWallet: Before building, if the wallet holds
                none of ``signers``.
            InvalidActionParameters: If the action is invalid.
            ChainStatePrecondition: If chain state does not allow the action.
            SigningFailed: If signing failed.
            SubmissionRejected: If the network rejected the transaction.
            ChainTimeout: If a chain call timed out.
        """
        run = _Run(type(action).__name__)
        try:
            resolution = require_signers(signers, self._signer.list_controlled_identities())
            spend = list(resolution.intersection)
            run.advance(CoordinatorState.SIGNERS_RESOLVED, signers=spend)

            multisig = signers.is_multisig
            snapshot = ChainSnapshot.load(self._client, self._config, action, spend)
            routing = ChangeRouting.to_address(resolution.primary) if multisig else None
            unsigned = self._build(action, snapshot, signers, spend, routing)
            run.advance(CoordinatorState.BUILT, tx_id=unsigned.tx_id)

            ptx = attach(unsigned, self._signer, spend, multisig, self._sign_prompt())
            if not multisig:
                run.advance(CoordinatorState.DIRECT_SIGNED)
                receipt = self._submitter.submit(ptx)
                run.advance(CoordinatorState.SUBMITTED, tx_id=receipt.tx_id)
                return run.outcome(transaction=ptx, receipt=receipt)

            run.advance(CoordinatorState.PARTIALLY_SIGNED)
            run.advance(CoordinatorState.AWAITING_CO_SIGNERS)
            run.log.info(
                "partial transaction created",
                tx_id=ptx.tx_id,
                signed=ptx.signed_signers,
                remaining=ptx.remaining_signers,
                threshold=signers.threshold,
            )
            return run.outcome(transaction=ptx)
        except CoordinatorError as e:
            run.fail(e)
            raise

    def cosign(
        self,
        tx: PartiallySignedTransaction,
        submit_when_ready: bool = True,
    ) -> CoordinatorOutcome:
        """Add the local wallet's signatures to a relayed artifact.

        The unsigned body is never rebuilt. Once the threshold is met the
        transaction is submitted, unless ``submit_when_ready`` is False.

        Raises:
            NoAuthorizedSignerInWallet: If the wallet holds none of the
                artifact's signers.
            SigningFailed: If signing failed.
            SubmissionRejected: If the network rejected the transaction.
        """
        run = _Run(tx.unsigned.type)
        try:
            resolution = require_signers(tx.signers, self._signer.list_controlled_identities())
            run.advance(CoordinatorState.SIGNERS_RESOLVED, signers=list(resolution.intersection))

            multisig = tx.signers.is_multisig
            ptx = attach(tx, self._signer, resolution.intersection, multisig, self._sign_prompt())
            run.advance(
                CoordinatorState.PARTIALLY_SIGNED if multisig else CoordinatorState.DIRECT_SIGNED
            )

            if submit_when_ready and ptx.is_complete():
                receipt = self._submitter.submit(ptx)
                run.advance(CoordinatorState.SUBMITTED, tx_id=receipt.tx_id)
                return run.outcome(transaction=ptx, receipt=receipt)

            run.advance(CoordinatorState.AWAITING_CO_SIGNERS)
            run.log.info(
                "co-signature attached",
                tx_id=ptx.tx_id,
                signed=ptx.signed_signers,
                remaining=ptx.remaining_signers,
            )
            return run.outcome(transaction=ptx)
        except CoordinatorError as e:
            run.fail(e)
            raise

    def commit(self, tx: PartiallySignedTransaction) -> CoordinatorOutcome:
        """Submit an artifact that already carries every required signature.

        Raises:
            InsufficientSignatures: If the artifact is incomplete.
            SubmissionRejected: If the network rejected the transaction.
        """
        run = _Run(tx.unsigned.type)
        try:
            receipt = self._submitter.submit(tx)
            run.advance(CoordinatorState.SUBMITTED, tx_id=receipt.tx_id)
            return run.outcome(transaction=tx, receipt=receipt)
        except CoordinatorError as e:
            run.fail(e)
            raise

    # ------------------------------------------------------------------
    # Signer-set helpers
    # ------------------------------------------------------------------

    def wallet_signer(self, address: str | None = None) -> AuthorizedSignerSet:
        """One-member signer set for a wallet address (default: first sorted)."""
        identities = self._signer.list_controlled_identities()
        if not identities:
            raise NoAuthorizedSignerInWallet()
        if address is None:
            address = sorted(identities)[0]
        elif address not in identities:
            raise NoAuthorizedSignerInWallet([address])
        return AuthorizedSignerSet.single(address)

    def subnet_signers(self, subnet_id: str) -> AuthorizedSignerSet:
        """Pick ``threshold`` control keys of a subnet, wallet-held keys first.

        Raises:
            ChainStatePrecondition: If the subnet does not exist.
        """
        subnet = self._client.get_subnet(subnet_id)
        if subnet is None:
            raise ChainStatePrecondition(f"subnet {subnet_id} does not exist")
        return _wallet_first(
            subnet.control_keys, subnet.threshold, self._signer.list_controlled_identities()
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def create_subnet(
        self,
        control_keys: Sequence[str],
        threshold: int,
        signers: AuthorizedSignerSet | None = None,
    ) -> CoordinatorOutcome:
        action = CreateSubnet(control_keys=tuple(control_keys), threshold=threshold)
        return self.execute(action, signers or self.wallet_signer())

    def add_validator(
        self,
        node_id: str,
        subnet_id: str,
        weight: int,
        start_time: int,
        duration: int,
        signers: AuthorizedSignerSet | None = None,
    ) -> CoordinatorOutcome:
        action = AddValidator(
            node_id=node_id,
            subnet_id=subnet_id,
            weight=weight,
            start_time=start_time,
            duration=duration,
        )
        return self.execute(action, signers or self.subnet_signers(subnet_id))

    def remove_validator(
        self,
        node_id: str,
        subnet_id: str,
        signers: AuthorizedSignerSet | None = None,
    ) -> CoordinatorOutcome:
        action = RemoveValidator(node_id=node_id, subnet_id=subnet_id)
        return self.execute(action, signers or self.subnet_signers(subnet_id))

    def create_blockchain(
        self,
        subnet_id: str,
        chain_name: str,
        vm_name: str,
        genesis: bytes,
        fx_ids: Sequence[str] = (),
        signers: AuthorizedSignerSet | None = None,
    ) -> CoordinatorOutcome:
        action = CreateBlockchain(
            subnet_id=subnet_id,
            chain_name=chain_name,
            vm_name=vm_name,
            genesis=genesis,
            fx_ids=tuple(fx_ids),
        )
        return self.execute(action, signers or self.subnet_signers(subnet_id))

    def transform_subnet(
        self,
        action: TransformSubnet,
        signers: AuthorizedSignerSet | None = None,
    ) -> CoordinatorOutcome:
        return self.execute(action, signers or self.subnet_signers(action.subnet_id))

    def export_asset(
        self,
        asset_id: str,
        amount: int,
        owners: OutputOwners,
        signers: AuthorizedSignerSet | None = None,
    ) -> CoordinatorOutcome:
        action = ExportAsset(asset_id=asset_id, amount=amount, owners=owners)
        return self.execute(action, signers or self.wallet_signer())

    def import_asset(
        self,
        owners: OutputOwners,
        signers: AuthorizedSignerSet | None = None,
    ) -> CoordinatorOutcome:
        return self.execute(ImportAsset(owners=owners), signers or self.wallet_signer())

    def create_asset(
        self,
        name: str,
        symbol: str,
        denomination: int,
        initial_holders: Sequence[AssetHolder],
        signers: AuthorizedSignerSet | None = None,
    ) -> CoordinatorOutcome:
        action = CreateAsset(
            name=name,
            symbol=symbol,
            denomination=denomination,
            initial_holders=tuple(initial_holders),
        )
        return self.execute(action, signers or self.wallet_signer())

    def deploy(
        self,
        control_keys: Sequence[str],
        threshold: int,
        chain_name: str,
        vm_name: str,
        genesis: bytes,
        subnet_signers: AuthorizedSignerSet | None = None,
    ) -> tuple[CoordinatorOutcome, CoordinatorOutcome]:
        """Create a subnet, then a blockchain on it.

        The subnet is created on the direct path, paid by the wallet; the
        blockchain needs the new subnet's control keys and so may end up
        awaiting co-signers. The wallet must hold one of those keys: this
        is checked before the subnet fee is spent. The subnet transaction
        is always waited on, since the blockchain is built against it.

        Args:
            control_keys: Control keys of the new subnet.
            threshold: Control-key signatures the subnet requires.
            chain_name: Name of the blockchain.
            vm_name: VM the blockchain runs.
            genesis: Genesis bytes.
            subnet_signers: Control keys authorizing the blockchain
                (default: ``threshold`` keys, wallet-held first).

        Returns:
            Tuple of (subnet outcome, blockchain outcome).

        Raises:
            NoAuthorizedSignerInWallet: Before anything is issued, if the
                wallet holds none of the blockchain's signers.
        """
        controlled = self._signer.list_controlled_identities()
        chain_signers = subnet_signers or _wallet_first(control_keys, threshold, controlled)
        require_signers(chain_signers, controlled)

        subnet = self.create_subnet(control_keys, threshold)
        receipt = subnet.receipt
        if not self._config.wait_for_acceptance:
            try:
                self._client.wait_for_acceptance(
                    receipt.chain, receipt.tx_id, self._config.acceptance_timeout
                )
            except ChainTimeout as e:
                raise AcceptanceTimeout(receipt.tx_id, receipt.chain, str(e)) from e
        logger.info("subnet created", subnet_id=receipt.tx_id)
        chain = self.create_blockchain(
            receipt.tx_id,
            chain_name,
            vm_name,
            genesis,
            signers=chain_signers,
        )
        return subnet, chain

    def add_validators(
        self,
        subnet_id: str,
        node_ids: Sequence[str],
        weight: int,
        start_time: int,
        duration: int,
        signers: AuthorizedSignerSet | None = None,
    ) -> list[TaskResult]:
        """Add several validators concurrently on a bounded worker pool.

        Returns:
            One TaskResult per node, in ``node_ids`` order. Failures are
            collected, never raised.
        """
        signers = signers or self.subnet_signers(subnet_id)

        def task(node_id: str) -> Callable[[], CoordinatorOutcome]:
            return lambda: self.add_validator(
                node_id, subnet_id, weight, start_time, duration, signers=signers
            )

        return run_batch(
            {node_id: task(node_id) for node_id in node_ids},
            max_workers=self._config.max_workers,
            max_retries=self._config.max_retries,
        )
