"""Unsigned and partially-signed transactions and their wire codec.

An ``UnsignedTransaction`` owns its canonical msgpack bytes; decoding and
re-encoding never changes them, so a body relayed between co-signers stays
byte-identical and every collected signature keeps validating.

A ``PartiallySignedTransaction`` pairs those bytes with signatures from the
transaction's authorized signer set. It is immutable: adding a signature
returns a new artifact.
"""

from __future__ import annotations

import json
from typing import Any

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from .constants import CODEC_VERSION
from .errors import MalformedTransaction
from .types import AuthorizedSignerSet, OutputOwners, TransferOutput, UTXO
from .utils import (
    address_public_key,
    bytes_to_sign,
    canonical_decode,
    canonical_encode,
    transaction_id,
)


class UnsignedTransaction:
    """The instruction set for one governance action, before signing.

    Attributes:
        network_id: Numeric network ID the transaction is bound to.
        blockchain_id: ID of the chain the transaction executes on.
        chain: Chain alias ("P" or "X").
        type: Transaction type identifier.
        inputs: Consumed UTXOs, sorted by UTXO ID.
        outputs: Produced outputs, excluding change.
        change: Change outputs returned to the payer.
        body: Action-specific fields.
        signers: Authorized signer set whose threshold authorizes the action.
    """

    def __init__(
        self,
        network_id: int,
        blockchain_id: str,
        chain: str,
        type: str,
        inputs: tuple[UTXO, ...],
        outputs: tuple[TransferOutput, ...],
        change: tuple[TransferOutput, ...],
        body: dict[str, Any],
        signers: AuthorizedSignerSet,
    ):
        self.network_id = network_id
        self.blockchain_id = blockchain_id
        self.chain = chain
        self.type = type
        self.inputs = tuple(sorted(inputs, key=lambda utxo: utxo.utxo_id))
        self.outputs = tuple(outputs)
        self.change = tuple(change)
        self.body = dict(body)
        self.signers = signers
        self._bytes = canonical_encode(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return {
            "v": CODEC_VERSION,
            "net": self.network_id,
            "bc": self.blockchain_id,
            "chain": self.chain,
            "type": self.type,
            "ins": [utxo.to_dict() for utxo in self.inputs],
            "outs": [out.to_dict() for out in self.outputs],
            "change": [out.to_dict() for out in self.change],
            "body": self.body,
            "auth": self.signers.to_dict(),
        }

    @classmethod
    def from_bytes(cls, data: bytes) -> "UnsignedTransaction":
        """Decode unsigned bytes.

        Raises:
            MalformedTransaction: If the bytes are not a canonical encoding
                of an unsigned transaction.
        """
        try:
            decoded = canonical_decode(data)
            if decoded.get("v") != CODEC_VERSION:
                raise ValueError(f"unsupported codec version {decoded.get('v')!r}")
            txn = cls(
                network_id=decoded["net"],
                blockchain_id=decoded["bc"],
                chain=decoded["chain"],
                type=decoded["type"],
                inputs=tuple(UTXO.from_dict(item) for item in decoded["ins"]),
                outputs=tuple(TransferOutput.from_dict(item) for item in decoded["outs"]),
                change=tuple(TransferOutput.from_dict(item) for item in decoded["change"]),
                body=decoded["body"],
                signers=AuthorizedSignerSet.from_dict(decoded["auth"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedTransaction(f"Failed to decode transaction: {e}") from e

        if txn.to_bytes() != data:
            raise MalformedTransaction("Transaction bytes are not canonically encoded")
        return txn

    def to_bytes(self) -> bytes:
        return self._bytes

    @property
    def tx_id(self) -> str:
        return transaction_id(self._bytes)

    def bytes_to_sign(self) -> bytes:
        return bytes_to_sign(self._bytes)

    @property
    def input_owners(self) -> list[str]:
        """Addresses that must sign to spend the inputs, in input order."""
        owners: list[str] = []
        for utxo in self.inputs:
            if utxo.owner not in owners:
                owners.append(utxo.owner)
        return owners

    @property
    def change_owners(self) -> OutputOwners | None:
        """Owners of the change outputs, or None if the action produces no change."""
        if not self.change:
            return None
        return self.change[0].owners

    def with_change_owner(self, owners: OutputOwners) -> "UnsignedTransaction":
        """Return a copy whose change outputs are owned by ``owners``."""
        return UnsignedTransaction(
            network_id=self.network_id,
            blockchain_id=self.blockchain_id,
            chain=self.chain,
            type=self.type,
            inputs=self.inputs,
            outputs=self.outputs,
            change=tuple(
                TransferOutput(asset_id=out.asset_id, amount=out.amount, owners=owners)
                for out in self.change
            ),
            body=self.body,
            signers=self.signers,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnsignedTransaction):
            return NotImplemented
        return self._bytes == other._bytes

    def __hash__(self) -> int:
        return hash(self._bytes)

    def __repr__(self) -> str:
        return f"UnsignedTransaction(type={self.type!r}, chain={self.chain!r}, tx_id={self.tx_id!r})"


def verify_signature(unsigned: UnsignedTransaction, address: str, signature: bytes) -> bool:
    """Check an ed25519 signature by ``address`` over the transaction."""
    try:
        VerifyKey(address_public_key(address)).verify(unsigned.bytes_to_sign(), signature)
        return True
    except (BadSignatureError, TypeError, ValueError):
        return False


class PartiallySignedTransaction:
    """An unsigned transaction plus signatures from its authorized signer set.

    May hold fewer than ``threshold`` signatures. Exclusively owned by the
    party currently holding it and passed between parties serialized.
    """

    def __init__(
        self,
        unsigned: UnsignedTransaction,
        signatures: dict[str, bytes] | None = None,
    ):
        self.unsigned = unsigned
        self._signatures: dict[str, bytes] = {}
        for address, signature in (signatures or {}).items():
            self._check_signature(address, signature)
            self._signatures[address] = signature

    def _check_signature(self, address: str, signature: bytes) -> None:
        if address not in self.signers and address not in self.unsigned.input_owners:
            raise ValueError(f"{address} is not an authorized signer of this transaction")
        if not verify_signature(self.unsigned, address, signature):
            raise ValueError(f"Signature by {address} does not verify")

    @property
    def signers(self) -> AuthorizedSignerSet:
        return self.unsigned.signers

    @property
    def tx_id(self) -> str:
        return self.unsigned.tx_id

    @property
    def signatures(self) -> dict[str, bytes]:
        return dict(self._signatures)

    def with_signature(self, address: str, signature: bytes) -> "PartiallySignedTransaction":
        """Return a new artifact with one more signature attached.

        Raises:
            ValueError: If ``address`` is not a signer or the signature is invalid.
        """
        self._check_signature(address, signature)
        signatures = dict(self._signatures)
        signatures[address] = signature
        return PartiallySignedTransaction(self.unsigned, signatures)

    def has_signed(self, address: str) -> bool:
        return address in self._signatures

    @property
    def signed_signers(self) -> list[str]:
        """Signer-set members that have signed, in signer-set order."""
        return [address for address in self.signers.addresses if address in self._signatures]

    @property
    def signature_count(self) -> int:
        return len(self.signed_signers)

    @property
    def remaining_signers(self) -> list[str]:
        """Signer-set members that have not signed yet, in signer-set order."""
        return [address for address in self.signers.addresses if address not in self._signatures]

    @property
    def missing_input_owners(self) -> list[str]:
        return [owner for owner in self.unsigned.input_owners if owner not in self._signatures]

    def is_complete(self) -> bool:
        """Whether the transaction may be submitted.

        True iff at least ``threshold`` signer-set members signed and every
        fee-input owner signed.
        """
        return (
            self.signature_count >= self.signers.threshold
            and not self.missing_input_owners
        )

    def to_bytes(self) -> bytes:
        """Serialize for relay or submission; the unsigned body is carried verbatim."""
        ordered = self.signed_signers + [
            address for address in self._signatures if address not in self.signers
        ]
        return canonical_encode(
            {
                "v": CODEC_VERSION,
                "txn": self.unsigned.to_bytes(),
                "sigs": [[address, self._signatures[address]] for address in ordered],
            }
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "PartiallySignedTransaction":
        """Deserialize an artifact produced by ``to_bytes``.

        Raises:
            MalformedTransaction: If the artifact is malformed or carries an
                invalid signature.
        """
        try:
            decoded = canonical_decode(data)
            if decoded.get("v") != CODEC_VERSION:
                raise ValueError(f"unsupported codec version {decoded.get('v')!r}")
            raw_txn = decoded["txn"]
            sig_pairs = decoded["sigs"]
        except (KeyError, ValueError) as e:
            raise MalformedTransaction(f"Failed to decode signed transaction: {e}") from e

        unsigned = UnsignedTransaction.from_bytes(raw_txn)
        try:
            signatures = {address: signature for address, signature in sig_pairs}
            return cls(unsigned, signatures)
        except (TypeError, ValueError) as e:
            raise MalformedTransaction(str(e)) from e

    def to_json(self) -> str:
        """Render the artifact as a JSON file envelope for out-of-band relay."""
        return json.dumps(
            {
                "version": CODEC_VERSION,
                "txID": self.tx_id,
                "chain": self.unsigned.chain,
                "tx": self.to_bytes().hex(),
            },
            indent=2,
        )

    @classmethod
    def from_json(cls, text: str) -> "PartiallySignedTransaction":
        """Parse a JSON envelope produced by ``to_json``.

        Raises:
            MalformedTransaction: If the envelope is malformed or its txID
                does not match the carried body.
        """
        try:
            envelope = json.loads(text)
            raw = bytes.fromhex(envelope["tx"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedTransaction(f"Invalid transaction file: {e}") from e

        ptx = cls.from_bytes(raw)
        if envelope.get("txID") not in (None, ptx.tx_id):
            raise MalformedTransaction(
                f"txID mismatch: file says {envelope['txID']}, body hashes to {ptx.tx_id}"
            )
        return ptx

    def __repr__(self) -> str:
        return (
            f"PartiallySignedTransaction(tx_id={self.tx_id!r}, "
            f"signatures={self.signature_count}/{self.signers.threshold})"
        )
