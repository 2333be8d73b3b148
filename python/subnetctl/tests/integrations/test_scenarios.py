"""End-to-end co-signing scenarios against the in-memory chain.

Each scenario drives the public Coordinator API through resolve, build,
sign and submit, relaying partial artifacts as serialized bytes between
parties that each hold one key.
"""

import pytest

from subnetctl import (
    AuthorizedSignerSet,
    Coordinator,
    CoordinatorState,
    InsufficientSignatures,
    KeychainSigner,
    NoAuthorizedSignerInWallet,
    OutputOwners,
    PartiallySignedTransaction,
    RemoveValidator,
)
from subnetctl.coordinator.builder import build
from subnetctl.coordinator.submission import Submitter

from conftest import (
    ADDR_X,
    ADDR_Y,
    ADDR_Z,
    DURATION,
    KEY_X,
    NODE_IDS,
    START_TIME,
    SUBNET_PAIR,
    SUBNET_SOLO,
)

PAIR = AuthorizedSignerSet(addresses=(ADDR_X, ADDR_Y), threshold=2)


class CountingBuilder:
    def __init__(self):
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        return build(*args, **kwargs)


class CountingSubmitter(Submitter):
    def __init__(self, client, config):
        super().__init__(client, config)
        self.calls = 0

    def submit(self, tx):
        self.calls += 1
        return super().submit(tx)


class TestDirectPath:
    """One-member signer set held by the wallet."""

    def test_add_validator_single_submission(self, chain, config, signer_x):
        coordinator = Coordinator(signer_x, chain, config)
        submitter = CountingSubmitter(chain, config)
        coordinator._submitter = submitter

        outcome = coordinator.add_validator(
            NODE_IDS[1],
            SUBNET_SOLO,
            2000,
            START_TIME,
            DURATION,
            signers=AuthorizedSignerSet.single(ADDR_X),
        )
        assert outcome.state is CoordinatorState.SUBMITTED
        assert submitter.calls == 1
        assert outcome.receipt.tx_id == outcome.transaction.tx_id
        assert chain.issued[0].signed_signers == [ADDR_X]


class TestCoSigning:
    """Two-of-two signer set split across two wallets."""

    def test_first_signer_gets_artifact(self, chain, config, signer_x):
        outcome = Coordinator(signer_x, chain, config).remove_validator(
            NODE_IDS[0], SUBNET_PAIR, signers=PAIR
        )
        ptx = outcome.transaction
        assert outcome.state is CoordinatorState.AWAITING_CO_SIGNERS
        assert ptx.signature_count == 1
        assert ptx.signed_signers == [ADDR_X]
        assert all(out.owners == OutputOwners.single(ADDR_X) for out in ptx.unsigned.change)
        assert "issue_tx" not in chain.calls

    def test_wallet_without_signers_never_builds(self, chain, config, signer_z):
        builder = CountingBuilder()
        coordinator = Coordinator(signer_z, chain, config, builder=builder)
        with pytest.raises(NoAuthorizedSignerInWallet):
            coordinator.remove_validator(NODE_IDS[0], SUBNET_PAIR, signers=PAIR)
        assert builder.calls == 0

    def test_second_signer_completes_and_submits(self, chain, config, signer_x, signer_y):
        first = Coordinator(signer_x, chain, config).remove_validator(
            NODE_IDS[0], SUBNET_PAIR, signers=PAIR
        )
        blob = first.transaction.to_bytes()

        builder = CountingBuilder()
        second = Coordinator(signer_y, chain, config, builder=builder).cosign(
            PartiallySignedTransaction.from_bytes(blob)
        )
        assert builder.calls == 0
        assert second.state is CoordinatorState.SUBMITTED
        assert second.receipt.tx_id == first.transaction.tx_id
        assert second.transaction.unsigned.to_bytes() == first.transaction.unsigned.to_bytes()
        assert NODE_IDS[0] not in [v.node_id for v in chain.validators[SUBNET_PAIR]]

    def test_json_relay(self, chain, config, signer_x, signer_y):
        first = Coordinator(signer_x, chain, config).remove_validator(
            NODE_IDS[0], SUBNET_PAIR, signers=PAIR
        )
        relayed = PartiallySignedTransaction.from_json(first.transaction.to_json())
        assert Coordinator(signer_y, chain, config).cosign(relayed).submitted


class TestConcurrentBatch:
    """Many independent actions on a bounded pool."""

    def test_ten_validators(self, chain, config, signer_x):
        nodes = NODE_IDS[1:11]
        results = Coordinator(signer_x, chain, config).add_validators(
            SUBNET_SOLO,
            nodes,
            2000,
            START_TIME,
            DURATION,
            signers=AuthorizedSignerSet.single(ADDR_X),
        )
        assert [r.identity for r in results] == nodes
        assert all(r.ok for r in results)
        assert len({r.outcome.tx_id for r in results}) == 10
        added = {v.node_id for v in chain.validators[SUBNET_SOLO]}
        assert set(nodes) <= added
        for result, node in zip(results, nodes):
            assert result.outcome.transaction.unsigned.body["node"] == node


class TestLaws:
    """Properties every run must keep."""

    def test_round_trip_preserves_unsigned_bytes(self, chain, config, signer_x):
        ptx = Coordinator(signer_x, chain, config).remove_validator(
            NODE_IDS[0], SUBNET_PAIR, signers=PAIR
        ).transaction
        restored = PartiallySignedTransaction.from_bytes(ptx.to_bytes())
        assert restored.unsigned.to_bytes() == ptx.unsigned.to_bytes()
        assert restored.signatures == ptx.signatures
        assert restored.tx_id == ptx.tx_id

    def test_fail_closed_below_threshold(self, chain, config, signer_x):
        ptx = Coordinator(signer_x, chain, config).remove_validator(
            NODE_IDS[0], SUBNET_PAIR, signers=PAIR
        ).transaction
        with pytest.raises(InsufficientSignatures):
            Coordinator(signer_x, chain, config).commit(ptx)
        assert "issue_tx" not in chain.calls

    def test_direct_path_needs_no_relay(self, chain, config):
        signer = KeychainSigner().add_account(KEY_X)
        outcome = Coordinator(signer, chain, config).create_subnet([ADDR_X, ADDR_Y, ADDR_Z], 2)
        assert outcome.trace[-2:] == [CoordinatorState.DIRECT_SIGNED, CoordinatorState.SUBMITTED]
