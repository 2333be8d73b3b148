"""Error taxonomy for the transaction coordinator.

Every error raised by the coordinator derives from ``CoordinatorError``.
``retryable`` tells batch callers whether re-invoking the same action can
succeed: the unsigned body is deterministic given identical inputs, so a
retry after a signer timeout or a network timeout is idempotent.
"""

from __future__ import annotations


class CoordinatorError(Exception):
    """Base class for coordinator errors.

    Attributes:
        retryable: Whether re-invoking the same action can succeed.
        trace: Coordinator states visited before the failure, if raised
            from a coordinator run.
    """

    retryable = False
    trace: tuple = ()


class NoAuthorizedSignerInWallet(CoordinatorError):
    """The local wallet controls none of the required signers."""

    def __init__(self, required: list[str] | None = None):
        self.required = list(required or [])
        super().__init__("wallet does not contain subnet auth keys")


class InvalidActionParameters(CoordinatorError, ValueError):
    """A governance action or signer set carries invalid parameters."""


class ChainStatePrecondition(CoordinatorError):
    """Chain state is inconsistent with the requested action."""


class SigningFailed(CoordinatorError):
    """The key signer could not produce a signature.

    Hardware signer failures (device timeout, rejection) are retryable by
    re-invoking the same action.
    """

    def __init__(self, identity: str, reason: str, retryable: bool = True):
        self.identity = identity
        self.reason = reason
        self.retryable = retryable
        super().__init__(f"signing with {identity} failed: {reason}")


class SigningCancelled(SigningFailed):
    """The user cancelled signing on the device."""

    def __init__(self, identity: str):
        super().__init__(identity, "cancelled by user", retryable=True)


class InsufficientSignatures(CoordinatorError):
    """The transaction does not carry enough valid signatures to be issued."""

    def __init__(self, have: int, threshold: int, missing: list[str] | None = None):
        self.have = have
        self.threshold = threshold
        self.missing = list(missing or [])
        super().__init__(
            f"insufficient signatures: have {have}, need {threshold}"
            + (f" (remaining signers: {', '.join(self.missing)})" if self.missing else "")
        )


class SubmissionRejected(CoordinatorError):
    """The network definitively rejected the transaction.

    Terminal for that transaction: resubmitting an identical body produces
    the same rejection.
    """

    def __init__(self, code: int | str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"transaction rejected ({code}): {reason}")


class ChainTimeout(CoordinatorError):
    """A chain client call did not complete in time."""

    retryable = True


class AcceptanceTimeout(CoordinatorError):
    """The transaction was issued but its acceptance could not be confirmed.

    Not retryable: rebuilding and reissuing would duplicate an issued
    transaction. Poll ``tx_id`` instead.
    """

    def __init__(self, tx_id: str, chain: str, reason: str):
        self.tx_id = tx_id
        self.chain = chain
        super().__init__(f"transaction {tx_id} was issued but not confirmed: {reason}")


class MalformedTransaction(CoordinatorError):
    """Serialized transaction bytes could not be decoded."""
