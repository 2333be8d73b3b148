"""Partial-signature attacher.

Signs a transaction with the identities the local wallet controls. On the
multisig path the change owner is first rewritten to a wallet-controlled
address, so change never lands on an address the initiating party cannot
spend from.
"""

from __future__ import annotations

from typing import Callable, Sequence

from ..app_logging import structlog
from ..errors import NoAuthorizedSignerInWallet, SigningFailed
from ..signer import KeySigner
from ..transaction import PartiallySignedTransaction, UnsignedTransaction
from ..types import OutputOwners

logger = structlog.get_logger(__name__)

# Called before each signature request: (identity, unsigned transaction)
SignPrompt = Callable[[str, UnsignedTransaction], None]


def route_change(unsigned: UnsignedTransaction, address: str) -> UnsignedTransaction:
    """Rewrite the change owner of ``unsigned`` to ``address``.

    Transactions without change are returned unchanged.
    """
    target = OutputOwners.single(address)
    if unsigned.change_owners in (None, target):
        return unsigned
    logger.debug("routing change", tx_id=unsigned.tx_id, owner=address)
    return unsigned.with_change_owner(target)


def _sign(
    unsigned: UnsignedTransaction,
    key_signer: KeySigner,
    identity: str,
    prompt: SignPrompt | None,
) -> bytes:
    if prompt is not None:
        prompt(identity, unsigned)
    try:
        return key_signer.sign(unsigned.bytes_to_sign(), identity)
    except SigningFailed:
        raise
    except Exception as e:
        raise SigningFailed(identity, str(e) or type(e).__name__) from e


def attach(
    tx: UnsignedTransaction | PartiallySignedTransaction,
    key_signer: KeySigner,
    intersection: Sequence[str],
    multisig: bool,
    prompt: SignPrompt | None = None,
) -> PartiallySignedTransaction:
    """Attach the local wallet's signatures.

    Args:
        tx: Freshly built unsigned transaction, or an artifact received
            from another co-signer. Change is only routed while nothing
            has been signed.
        key_signer: Local key signer.
        intersection: Signer-set members the wallet controls, in
            signer-set order.
        multisig: Whether the signer set has more than one member.
        prompt: Called before each signature (hardware confirmation).

    Returns:
        The signed artifact. On the multisig path it is returned whether
        or not the threshold is met.

    Raises:
        NoAuthorizedSignerInWallet: If ``intersection`` is empty.
        SigningFailed: If the key signer fails or returns a bad signature.
    """
    if not intersection:
        raise NoAuthorizedSignerInWallet()

    if isinstance(tx, PartiallySignedTransaction) and tx.signatures:
        ptx = tx
    else:
        unsigned = tx.unsigned if isinstance(tx, PartiallySignedTransaction) else tx
        if multisig:
            unsigned = route_change(unsigned, intersection[0])
        ptx = PartiallySignedTransaction(unsigned)

    identities = list(intersection) if multisig else [intersection[0]]
    for identity in identities:
        if ptx.has_signed(identity):
            continue
        signature = _sign(ptx.unsigned, key_signer, identity, prompt)
        try:
            ptx = ptx.with_signature(identity, signature)
        except ValueError as e:
            raise SigningFailed(identity, str(e), retryable=False) from e

    logger.info(
        "signatures attached",
        tx_id=ptx.tx_id,
        signed=ptx.signature_count,
        threshold=ptx.signers.threshold,
        multisig=multisig,
    )
    return ptx
