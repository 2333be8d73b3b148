"""Submission of fully-authorized transactions."""

from __future__ import annotations

from ..app_logging import structlog
from ..config import CoordinatorConfig
from ..errors import AcceptanceTimeout, ChainTimeout, InsufficientSignatures
from ..signer import ChainClient
from ..transaction import PartiallySignedTransaction
from ..types import SubmissionReceipt

logger = structlog.get_logger(__name__)


class Submitter:
    """Issues transactions that satisfy their signer set's threshold.

    Args:
        client: Chain client.
        config: Coordinator configuration (network, acceptance wait).
    """

    def __init__(self, client: ChainClient, config: CoordinatorConfig):
        self._client = client
        self._config = config

    def check(self, tx: PartiallySignedTransaction) -> None:
        """Raise unless ``tx`` may be submitted.

        Raises:
            InsufficientSignatures: If fewer than ``threshold`` signer-set
                members signed, or a fee-input owner has not signed.
        """
        if tx.signature_count < tx.signers.threshold:
            raise InsufficientSignatures(
                tx.signature_count, tx.signers.threshold, tx.remaining_signers
            )
        if tx.missing_input_owners:
            raise InsufficientSignatures(
                tx.signature_count, tx.signers.threshold, tx.missing_input_owners
            )

    def submit(self, tx: PartiallySignedTransaction) -> SubmissionReceipt:
        """Issue ``tx`` and optionally wait for acceptance.

        Raises:
            InsufficientSignatures: Before any network call, if ``tx`` is incomplete.
            SubmissionRejected: If the network rejected the transaction.
            ChainTimeout: If issuing timed out.
            AcceptanceTimeout: If the transaction was issued but waiting for
                acceptance timed out.
        """
        self.check(tx)
        chain = tx.unsigned.chain

        logger.info("issuing transaction", tx_id=tx.tx_id, chain=chain, type=tx.unsigned.type)
        tx_id = self._client.issue_tx(chain, tx.to_bytes())
        if tx_id != tx.tx_id:
            logger.warning("network reported a different tx id", expected=tx.tx_id, got=tx_id)

        if self._config.wait_for_acceptance:
            try:
                self._client.wait_for_acceptance(chain, tx_id, self._config.acceptance_timeout)
            except ChainTimeout as e:
                raise AcceptanceTimeout(tx_id, chain, str(e)) from e
            logger.info("transaction accepted", tx_id=tx_id, chain=chain)

        return SubmissionReceipt(tx_id=tx_id, chain=chain, network=self._config.network)
