"""Collaborator protocol definitions.

Defines the abstract interfaces the coordinator consumes:
- KeySigner: the local key store or hardware signer.
- ChainClient: read access to chain state plus the submission endpoint.
"""

from typing import Protocol

from .types import AssetInfo, BlockchainInfo, SubnetInfo, UTXO, ValidatorInfo


class KeySigner(Protocol):
    """Protocol for local signing operations.

    The key signer is responsible for:
    - Listing the identities it can produce signatures for
    - Signing payloads with one of those identities
    """

    def list_controlled_identities(self) -> set[str]:
        """Get the addresses this signer controls.

        Returns:
            Set of 58-character addresses.
        """
        ...

    def sign(self, payload: bytes, identity: str) -> bytes:
        """Sign a payload with the key behind ``identity``.

        May block while a hardware device waits for user confirmation.

        Args:
            payload: Bytes to sign (already domain-prefixed).
            identity: Address whose key signs.

        Returns:
            64-byte ed25519 signature.

        Raises:
            SigningCancelled: If the user rejected the request on the device.
            SigningFailed: If the key is unavailable or the device failed.
        """
        ...


class ChainClient(Protocol):
    """Protocol for chain access.

    Read methods return ``None`` or empty lists for unknown entities rather
    than raising; the builder turns those into precondition errors.
    Every call may raise ``ChainTimeout``.
    """

    def get_blockchain_id(self, chain: str) -> str:
        """Resolve a chain alias ("P", "X") to its blockchain ID."""
        ...

    def get_subnet(self, subnet_id: str) -> SubnetInfo | None:
        """Get a subnet, or None if it does not exist."""
        ...

    def get_blockchains(self, subnet_id: str) -> list[BlockchainInfo]:
        """Get the blockchains validated by a subnet."""
        ...

    def get_asset(self, asset_id: str) -> AssetInfo | None:
        """Get an X-chain asset, or None if it does not exist."""
        ...

    def get_current_validators(self, subnet_id: str) -> list[ValidatorInfo]:
        """Get the current validators of a subnet (primary network included)."""
        ...

    def get_utxos(self, chain: str, addresses: list[str]) -> list[UTXO]:
        """Get UTXOs on ``chain`` owned by any of ``addresses``."""
        ...

    def get_atomic_utxos(
        self,
        chain: str,
        source_chain: str,
        addresses: list[str],
    ) -> list[UTXO]:
        """Get UTXOs exported from ``source_chain`` to ``chain`` for ``addresses``."""
        ...

    def issue_tx(self, chain: str, tx_bytes: bytes) -> str:
        """Issue a fully-signed transaction.

        Args:
            chain: Chain alias the transaction targets.
            tx_bytes: Signed transaction wire bytes.

        Returns:
            Network-assigned transaction ID.

        Raises:
            SubmissionRejected: If the network rejected the transaction.
            ChainTimeout: If the call did not complete in time.
        """
        ...

    def wait_for_acceptance(self, chain: str, tx_id: str, timeout: float) -> None:
        """Wait until a transaction is accepted.

        Raises:
            SubmissionRejected: If the transaction was dropped or rejected.
            ChainTimeout: If it is still processing after ``timeout`` seconds.
        """
        ...
