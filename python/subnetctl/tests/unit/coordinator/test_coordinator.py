"""Unit tests for the coordinator state machine."""

import pytest

from subnetctl.coordinator import Coordinator, CoordinatorState
from subnetctl.coordinator.builder import build
from subnetctl.errors import (
    AcceptanceTimeout,
    ChainStatePrecondition,
    ChainTimeout,
    InsufficientSignatures,
    InvalidActionParameters,
    NoAuthorizedSignerInWallet,
    SubmissionRejected,
)
from subnetctl.signers import KeychainSigner
from subnetctl.transaction import PartiallySignedTransaction
from subnetctl.types import (
    AssetHolder,
    AuthorizedSignerSet,
    CreateSubnet,
    OutputOwners,
    RemoveValidator,
    UTXO,
)

from conftest import (
    ADDR_X,
    ADDR_Y,
    ADDR_Z,
    CUSTOM_ASSET_ID,
    DURATION,
    KEY_X,
    KEY_Y,
    NATIVE_ASSET_ID,
    NODE_IDS,
    START_TIME,
    SUBNET_PAIR,
    SUBNET_SOLO,
    SUBNET_TRIO,
    make_id,
)

S = CoordinatorState
PAIR = AuthorizedSignerSet(addresses=(ADDR_X, ADDR_Y), threshold=2)


class CountingBuilder:
    """Wraps the real builder and counts invocations."""

    def __init__(self):
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        return build(*args, **kwargs)


class TestDirectPath:
    """Tests for single-member signer sets."""

    def test_create_subnet_submitted(self, chain, config, signer_x):
        outcome = Coordinator(signer_x, chain, config).create_subnet([ADDR_X, ADDR_Y], 2)
        assert outcome.state is S.SUBMITTED
        assert outcome.submitted
        assert outcome.trace == [S.INIT, S.SIGNERS_RESOLVED, S.BUILT, S.DIRECT_SIGNED, S.SUBMITTED]
        assert outcome.receipt.tx_id in chain.subnets
        assert chain.subnets[outcome.receipt.tx_id].threshold == 2

    def test_add_validator_default_signers(self, chain, config, signer_x):
        coordinator = Coordinator(signer_x, chain, config)
        outcome = coordinator.add_validator(NODE_IDS[1], SUBNET_SOLO, 20, START_TIME, DURATION)
        assert outcome.submitted
        assert NODE_IDS[1] in [v.node_id for v in chain.validators[SUBNET_SOLO]]

    def test_ledger_prompt_does_not_change_outcome(self, chain, config, signer_x):
        coordinator = Coordinator(signer_x, chain, config.with_overrides(using_ledger=True))
        assert coordinator.create_subnet([ADDR_X], 1).submitted

    def test_create_asset(self, chain, config, signer_x):
        holders = [AssetHolder(1_000, OutputOwners.single(ADDR_Y))]
        outcome = Coordinator(signer_x, chain, config).create_asset("Gold", "GLD", 2, holders)
        assert outcome.submitted
        assert outcome.receipt.chain == "X"

    def test_export_then_import(self, chain, config, signer_x):
        coordinator = Coordinator(signer_x, chain, config)
        exported = coordinator.export_asset(NATIVE_ASSET_ID, 1_000_000_000, OutputOwners.single(ADDR_X))
        assert exported.submitted

        chain.atomic_utxos["P"].append(UTXO(make_id("atomic"), NATIVE_ASSET_ID, 1_000_000_000, ADDR_X))
        imported = coordinator.import_asset(OutputOwners.single(ADDR_X))
        assert imported.submitted
        assert imported.transaction.unsigned.inputs[0].utxo_id == make_id("atomic")


class TestMultisigPath:
    """Tests for signer sets with two or more members."""

    def test_remove_validator_awaits_co_signers(self, chain, config, signer_x):
        outcome = Coordinator(signer_x, chain, config).remove_validator(NODE_IDS[0], SUBNET_PAIR)
        assert outcome.state is S.AWAITING_CO_SIGNERS
        assert outcome.trace == [
            S.INIT,
            S.SIGNERS_RESOLVED,
            S.BUILT,
            S.PARTIALLY_SIGNED,
            S.AWAITING_CO_SIGNERS,
        ]
        assert outcome.receipt is None
        assert not outcome.ready
        assert outcome.transaction.signed_signers == [ADDR_X]
        assert outcome.transaction.unsigned.change_owners == OutputOwners.single(ADDR_X)
        assert "issue_tx" not in chain.calls

    def test_complete_artifact_is_not_auto_submitted(self, chain, config):
        """A wallet holding every signer still gets an artifact back."""
        signer = KeychainSigner().add_account(KEY_X).add_account(KEY_Y)
        outcome = Coordinator(signer, chain, config).remove_validator(NODE_IDS[0], SUBNET_PAIR)
        assert outcome.state is S.AWAITING_CO_SIGNERS
        assert outcome.ready
        assert "issue_tx" not in chain.calls

    def test_threshold_one_of_two_is_still_multisig(self, chain, config, signer_x):
        signers = AuthorizedSignerSet(addresses=(ADDR_X, ADDR_Y), threshold=1)
        outcome = Coordinator(signer_x, chain, config).create_subnet([ADDR_X], 1, signers=signers)
        assert outcome.state is S.AWAITING_CO_SIGNERS
        assert outcome.ready

    def test_cosign_submits_at_threshold(self, chain, config, signer_x, signer_y):
        first = Coordinator(signer_x, chain, config).remove_validator(NODE_IDS[0], SUBNET_PAIR)
        relayed = PartiallySignedTransaction.from_bytes(first.transaction.to_bytes())

        outcome = Coordinator(signer_y, chain, config).cosign(relayed)
        assert outcome.state is S.SUBMITTED
        assert outcome.trace == [S.INIT, S.SIGNERS_RESOLVED, S.PARTIALLY_SIGNED, S.SUBMITTED]
        assert outcome.receipt.tx_id == first.transaction.tx_id
        assert NODE_IDS[0] not in [v.node_id for v in chain.validators[SUBNET_PAIR]]

    def test_cosign_without_submit(self, chain, config, signer_x, signer_y):
        first = Coordinator(signer_x, chain, config).remove_validator(NODE_IDS[0], SUBNET_PAIR)
        outcome = Coordinator(signer_y, chain, config).cosign(first.transaction, submit_when_ready=False)
        assert outcome.state is S.AWAITING_CO_SIGNERS
        assert outcome.ready
        assert "issue_tx" not in chain.calls

        committed = Coordinator(signer_y, chain, config).commit(outcome.transaction)
        assert committed.state is S.SUBMITTED
        assert committed.trace == [S.INIT, S.SUBMITTED]

    def test_cosign_below_threshold(self, chain, config, signer_x, signer_y, signer_z):
        chain.validators[SUBNET_TRIO].append(chain.validators[SUBNET_PAIR][0])
        trio = AuthorizedSignerSet(addresses=(ADDR_X, ADDR_Y, ADDR_Z), threshold=2)
        first = Coordinator(signer_x, chain, config).remove_validator(
            NODE_IDS[0], SUBNET_TRIO, signers=trio
        )
        assert first.transaction.remaining_signers == [ADDR_Y, ADDR_Z]

        outcome = Coordinator(signer_z, chain, config).cosign(first.transaction)
        assert outcome.submitted
        assert outcome.transaction.signed_signers == [ADDR_X, ADDR_Z]

    def test_commit_incomplete(self, chain, config, signer_x):
        first = Coordinator(signer_x, chain, config).remove_validator(NODE_IDS[0], SUBNET_PAIR)
        with pytest.raises(InsufficientSignatures) as exc_info:
            Coordinator(signer_x, chain, config).commit(first.transaction)
        assert exc_info.value.trace == (S.INIT, S.FAILED)
        assert "issue_tx" not in chain.calls


class TestFailures:
    """Tests for failure handling."""

    def test_no_authorized_signer_before_build(self, chain, config, signer_z):
        builder = CountingBuilder()
        coordinator = Coordinator(signer_z, chain, config, builder=builder)
        with pytest.raises(NoAuthorizedSignerInWallet) as exc_info:
            coordinator.execute(RemoveValidator(NODE_IDS[0], SUBNET_PAIR), PAIR)
        assert builder.calls == 0
        assert "get_utxos" not in chain.calls
        assert exc_info.value.trace == (S.INIT, S.FAILED)

    def test_invalid_action(self, chain, config, signer_x):
        with pytest.raises(InvalidActionParameters) as exc_info:
            Coordinator(signer_x, chain, config).create_subnet([ADDR_X], 3)
        assert exc_info.value.trace[-1] is S.FAILED

    def test_precondition(self, chain, config, signer_x):
        with pytest.raises(ChainStatePrecondition, match="is not a validator") as exc_info:
            Coordinator(signer_x, chain, config).remove_validator(NODE_IDS[3], SUBNET_SOLO)
        assert exc_info.value.trace == (S.INIT, S.SIGNERS_RESOLVED, S.FAILED)

    def test_rejection(self, chain, config, signer_x):
        chain.issue_errors.append(SubmissionRejected(-32000, "invalid signature"))
        with pytest.raises(SubmissionRejected) as exc_info:
            Coordinator(signer_x, chain, config).create_subnet([ADDR_X], 1)
        assert exc_info.value.trace == (
            S.INIT,
            S.SIGNERS_RESOLVED,
            S.BUILT,
            S.DIRECT_SIGNED,
            S.FAILED,
        )

    def test_timeout_is_retryable(self, chain, config, signer_x):
        chain.issue_errors.append(ChainTimeout("issueTx timed out"))
        with pytest.raises(ChainTimeout) as exc_info:
            Coordinator(signer_x, chain, config).create_subnet([ADDR_X], 1)
        assert exc_info.value.retryable

    def test_retry_after_timeout_builds_same_body(self, chain, config, signer_x):
        coordinator = Coordinator(signer_x, chain, config)
        chain.issue_errors.append(ChainTimeout("issueTx timed out"))
        with pytest.raises(ChainTimeout):
            coordinator.create_subnet([ADDR_X], 1)
        outcome = coordinator.create_subnet([ADDR_X], 1)
        assert outcome.submitted


class TestSignerHelpers:
    """Tests for signer-set helpers."""

    def test_wallet_signer(self, chain, config, signer_x):
        assert Coordinator(signer_x, chain, config).wallet_signer() == AuthorizedSignerSet.single(ADDR_X)

    def test_wallet_signer_unknown_address(self, chain, config, signer_x):
        with pytest.raises(NoAuthorizedSignerInWallet):
            Coordinator(signer_x, chain, config).wallet_signer(ADDR_Y)

    def test_wallet_signer_empty_wallet(self, chain, config):
        with pytest.raises(NoAuthorizedSignerInWallet):
            Coordinator(KeychainSigner(), chain, config).wallet_signer()

    def test_subnet_signers_prefers_wallet_keys(self, chain, config, signer_z):
        signers = Coordinator(signer_z, chain, config).subnet_signers(SUBNET_TRIO)
        assert signers.addresses == (ADDR_Z, ADDR_X)
        assert signers.threshold == 2

    def test_subnet_signers_unknown_subnet(self, chain, config, signer_x):
        with pytest.raises(ChainStatePrecondition, match="does not exist"):
            Coordinator(signer_x, chain, config).subnet_signers(make_id("nowhere"))


class TestDeploy:
    """Tests for deploy."""

    def test_single_key_deploy(self, chain, config, signer_x):
        subnet, blockchain = Coordinator(signer_x, chain, config).deploy(
            [ADDR_X], 1, "mychain", "subnetevm", b"{}"
        )
        assert subnet.submitted
        assert blockchain.submitted
        assert chain.blockchains[0].subnet_id == subnet.receipt.tx_id

    def test_multisig_deploy(self, chain, config, signer_x):
        subnet, blockchain = Coordinator(signer_x, chain, config).deploy(
            [ADDR_X, ADDR_Y], 2, "mychain", "subnetevm", b"{}"
        )
        assert subnet.submitted
        assert blockchain.state is S.AWAITING_CO_SIGNERS
        assert blockchain.transaction.remaining_signers == [ADDR_Y]
        assert chain.blockchains == []

    def test_chain_signer_checked_before_subnet_fee(self, chain, config, signer_x):
        coordinator = Coordinator(signer_x, chain, config)
        with pytest.raises(NoAuthorizedSignerInWallet):
            coordinator.deploy(
                [ADDR_Y, ADDR_Z],
                1,
                "mychain",
                "subnetevm",
                b"{}",
                subnet_signers=AuthorizedSignerSet.single(ADDR_Y),
            )
        assert chain.issued == []

    def test_default_chain_signers_checked_before_subnet_fee(self, chain, config, signer_x):
        with pytest.raises(NoAuthorizedSignerInWallet):
            Coordinator(signer_x, chain, config).deploy(
                [ADDR_Y, ADDR_Z], 1, "mychain", "subnetevm", b"{}"
            )
        assert chain.issued == []

    def test_no_wait_still_waits_for_subnet(self, chain, config, signer_x):
        chain.defer_acceptance = True
        coordinator = Coordinator(signer_x, chain, config.with_overrides(wait_for_acceptance=False))
        subnet, blockchain = coordinator.deploy([ADDR_X], 1, "mychain", "subnetevm", b"{}")
        assert subnet.receipt.tx_id in chain.subnets
        assert blockchain.submitted
        assert chain.calls["wait_for_acceptance"] == 1
        assert blockchain.receipt.tx_id in chain.pending

    def test_subnet_acceptance_timeout_reports_subnet_id(self, chain, config, signer_x):
        chain.accept_errors.append(ChainTimeout("getTxStatus timed out"))
        with pytest.raises(AcceptanceTimeout) as exc_info:
            Coordinator(signer_x, chain, config).deploy([ADDR_X], 1, "mychain", "subnetevm", b"{}")
        assert exc_info.value.tx_id == chain.issued[0].tx_id
        assert not exc_info.value.retryable
        assert len(chain.issued) == 1


class TestAddValidators:
    """Tests for the concurrent add_validators batch."""

    def test_collects_failures_without_cancelling(self, chain, config, signer_x):
        nodes = [NODE_IDS[1], NODE_IDS[0], "NodeID-stranger", NODE_IDS[2]]
        results = Coordinator(signer_x, chain, config).add_validators(
            SUBNET_SOLO, nodes, 20, START_TIME, DURATION
        )
        assert [r.identity for r in results] == nodes
        assert [r.ok for r in results] == [True, False, False, True]
        assert isinstance(results[1].error, ChainStatePrecondition)
        assert results[1].attempts == 1

    def test_retries_timeouts(self, chain, config, signer_x):
        chain.issue_errors.append(ChainTimeout("issueTx timed out"))
        results = Coordinator(signer_x, chain, config).add_validators(
            SUBNET_SOLO, [NODE_IDS[1]], 20, START_TIME, DURATION
        )
        assert results[0].ok
        assert results[0].attempts == 2

    def test_acceptance_timeout_not_reissued(self, chain, config, signer_x):
        chain.accept_errors.append(ChainTimeout("getTxStatus timed out"))
        results = Coordinator(signer_x, chain, config).add_validators(
            SUBNET_SOLO, [NODE_IDS[1]], 20, START_TIME, DURATION
        )
        assert not results[0].ok
        assert results[0].attempts == 1
        assert isinstance(results[0].error, AcceptanceTimeout)
        assert results[0].error.tx_id == chain.issued[0].tx_id
        assert len(chain.issued) == 1

    def test_custom_asset_in_wallet_untouched(self, chain, config, signer_x):
        results = Coordinator(signer_x, chain, config).add_validators(
            SUBNET_SOLO, [NODE_IDS[1]], 20, START_TIME, DURATION
        )
        inputs = results[0].outcome.transaction.unsigned.inputs
        assert all(utxo.asset_id != CUSTOM_ASSET_ID for utxo in inputs)
