"""Concrete KeySigner implementation backed by in-memory ed25519 keys.

Keys use py-algorand-sdk's private key format (base64 of the 32-byte seed
followed by the 32-byte public key) and its 25-word mnemonics.
"""

from __future__ import annotations

import base64
from pathlib import Path

from algosdk import account
from algosdk import mnemonic as algo_mnemonic
from nacl.signing import SigningKey

from .app_logging import structlog
from .errors import SigningFailed

logger = structlog.get_logger(__name__)


class KeychainSigner:
    """Local signer managing one or more accounts.

    Implements the KeySigner protocol.

    Example:
        ```python
        signer = KeychainSigner()
        signer.add_account(private_key_1)
        signer.add_account_from_mnemonic("word1 word2 ... word25")
        coordinator = Coordinator(signer, chain_client, config)
        ```
    """

    def __init__(self) -> None:
        self._keys: dict[str, SigningKey] = {}  # address -> signing key

    def add_account(self, private_key: str) -> "KeychainSigner":
        """Add an account.

        Args:
            private_key: Base64-encoded 64-byte private key.

        Returns:
            Self for chaining.

        Raises:
            ValueError: If the key is malformed.
        """
        try:
            raw = base64.b64decode(private_key, validate=True)
        except ValueError as e:
            raise ValueError(f"Private key is not valid base64: {e}") from e
        if len(raw) != 64:
            raise ValueError(f"Private key should be 64 bytes, got {len(raw)}")

        address = account.address_from_private_key(private_key)
        self._keys[address] = SigningKey(raw[:32])
        return self

    def add_account_from_mnemonic(self, mnemonic: str) -> "KeychainSigner":
        """Add an account from a 25-word mnemonic.

        Raises:
            ValueError: If the mnemonic is invalid.
        """
        try:
            private_key = algo_mnemonic.to_private_key(mnemonic.strip())
        except Exception as e:
            raise ValueError(f"Invalid mnemonic: {e}") from e
        return self.add_account(private_key)

    def add_key_file(self, path: str | Path) -> "KeychainSigner":
        """Add an account from a file holding a mnemonic or a base64 private key."""
        content = Path(path).read_text().strip()
        if len(content.split()) == 25:
            return self.add_account_from_mnemonic(content)
        return self.add_account(content)

    @classmethod
    def generate(cls) -> tuple["KeychainSigner", str]:
        """Generate a signer holding one new random account.

        Returns:
            Tuple of (signer, mnemonic).
        """
        private_key, _ = account.generate_account()
        return cls().add_account(private_key), algo_mnemonic.from_private_key(private_key)

    def get_addresses(self) -> list[str]:
        """Get managed addresses in insertion order."""
        return list(self._keys)

    def list_controlled_identities(self) -> set[str]:
        return set(self._keys)

    def sign(self, payload: bytes, identity: str) -> bytes:
        """Sign ``payload`` with the key behind ``identity``.

        Raises:
            SigningFailed: If ``identity`` is not managed by this signer.
        """
        key = self._keys.get(identity)
        if key is None:
            raise SigningFailed(
                identity,
                f"not managed by this signer (available: {self.get_addresses()})",
                retryable=False,
            )
        logger.debug("signing payload", identity=identity, size=len(payload))
        return key.sign(payload).signature
