"""subnetctl utility functions.

Provides encoding, decoding, validation, and network utilities
shared by the builder, the transaction codec and the CLI.
"""

from __future__ import annotations

import base64
import re
from decimal import Decimal, InvalidOperation
from typing import Any

import msgpack
from algosdk import encoding

from .constants import (
    ADDRESS_REGEX,
    ID_LEN,
    ID_REGEX,
    MAX_VM_NAME_LEN,
    NATIVE_DENOMINATION,
    NETWORK_ALIASES,
    NETWORK_CONFIGS,
    NODE_ID_PREFIX,
    TX_SIGN_PREFIX,
)


def is_valid_address(address: str) -> bool:
    """Validate an address format.

    Args:
        address: String to validate.

    Returns:
        True if valid 58-character address with a correct checksum.
    """
    if not address or not isinstance(address, str):
        return False

    if not re.match(ADDRESS_REGEX, address):
        return False

    return encoding.is_valid_address(address)


def address_public_key(address: str) -> bytes:
    """Get the 32-byte ed25519 public key behind an address.

    Raises:
        ValueError: If the address is malformed.
    """
    if not is_valid_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return encoding.decode_address(address)


def encode_id(raw: bytes) -> str:
    """Render a 32-byte identifier as unpadded base32."""
    if len(raw) != ID_LEN:
        raise ValueError(f"ID must be {ID_LEN} bytes, got {len(raw)}")
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def decode_id(value: str) -> bytes:
    """Parse an identifier rendered by ``encode_id``.

    Raises:
        ValueError: If the identifier is malformed.
    """
    if not isinstance(value, str) or not re.match(ID_REGEX, value):
        raise ValueError(f"Invalid ID: {value!r}")
    padding = "=" * ((8 - len(value) % 8) % 8)
    return base64.b32decode(value + padding)


def is_valid_id(value: str) -> bool:
    """Check whether a string is a well-formed identifier."""
    try:
        decode_id(value)
        return True
    except ValueError:
        return False


def is_valid_node_id(node_id: str) -> bool:
    """Check whether a string looks like a node ID (``NodeID-...``)."""
    return (
        isinstance(node_id, str)
        and node_id.startswith(NODE_ID_PREFIX)
        and len(node_id) > len(NODE_ID_PREFIX)
    )


def transaction_id(unsigned_bytes: bytes) -> str:
    """Compute the transaction ID: sha512/256 of the prefixed unsigned bytes."""
    return encode_id(encoding.checksum(TX_SIGN_PREFIX + unsigned_bytes))


def bytes_to_sign(unsigned_bytes: bytes) -> bytes:
    """Get the payload every signer signs for a transaction body."""
    return TX_SIGN_PREFIX + unsigned_bytes


def vm_id_from_name(vm_name: str) -> str:
    """Derive a VM ID from a VM name.

    The name's UTF-8 bytes are right-padded with zeros to 32 bytes.

    Raises:
        ValueError: If the name is empty or longer than 32 bytes.
    """
    raw = vm_name.encode("utf-8")
    if not raw:
        raise ValueError("VM name must not be empty")
    if len(raw) > MAX_VM_NAME_LEN:
        raise ValueError(
            f"VM name must be at most {MAX_VM_NAME_LEN} bytes, got {len(raw)}"
        )
    return encode_id(raw.ljust(ID_LEN, b"\x00"))


def _canonicalize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _canonicalize(obj[key]) for key in sorted(obj)}
    if isinstance(obj, (list, tuple)):
        return [_canonicalize(item) for item in obj]
    return obj


def canonical_encode(obj: dict[str, Any]) -> bytes:
    """Encode a dict as msgpack with recursively sorted keys.

    Identical input dicts always produce byte-identical output.
    """
    return msgpack.packb(_canonicalize(obj), use_bin_type=True)


def canonical_decode(data: bytes) -> dict[str, Any]:
    """Decode msgpack produced by ``canonical_encode``.

    Raises:
        ValueError: If the bytes are not a msgpack map.
    """
    try:
        decoded = msgpack.unpackb(data, raw=False)
    except Exception as e:
        raise ValueError(f"Failed to decode msgpack: {e}") from e
    if not isinstance(decoded, dict):
        raise ValueError(f"Expected msgpack map, got {type(decoded).__name__}")
    return decoded


def normalize_network(network: str) -> str:
    """Normalize a network name.

    Args:
        network: Network name or alias (``mainnet``, ``fuji``, ``testnet``, ``local``).

    Returns:
        Canonical network name.

    Raises:
        ValueError: If network is not supported.
    """
    name = network.strip().lower()
    name = NETWORK_ALIASES.get(name, name)
    if name in NETWORK_CONFIGS:
        return name
    raise ValueError(f"Unsupported network: {network}")


def is_valid_network(network: str) -> bool:
    """Check if a network name is valid."""
    try:
        normalize_network(network)
        return True
    except ValueError:
        return False


def get_network_config(network: str) -> dict[str, Any]:
    """Get configuration for a network.

    Raises:
        ValueError: If network is not supported.
    """
    return dict(NETWORK_CONFIGS[normalize_network(network)])


def parse_token_amount(amount: str | float | int) -> Decimal:
    """Parse a human token amount (``"1,000.5"``) to a Decimal.

    Raises:
        ValueError: If the amount is not a number.
    """
    if isinstance(amount, str):
        cleaned = amount.strip().replace(",", "").replace("_", "")
        try:
            return Decimal(cleaned)
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {amount!r}") from e
    return Decimal(str(amount))


def to_base_units(amount: str | float | int, decimals: int = NATIVE_DENOMINATION) -> int:
    """Convert a token amount to base units.

    Raises:
        ValueError: If the amount is negative or has more precision than
            the denomination allows.
    """
    value = parse_token_amount(amount) * Decimal(10**decimals)
    if value < 0:
        raise ValueError(f"Amount must not be negative: {amount}")
    if value != value.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
    return int(value)


def from_base_units(amount: int, decimals: int = NATIVE_DENOMINATION) -> Decimal:
    """Convert base units to a token amount."""
    return Decimal(amount) / Decimal(10**decimals)
