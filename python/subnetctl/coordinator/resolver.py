"""Authorized-signer resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import NoAuthorizedSignerInWallet
from ..types import AuthorizedSignerSet


@dataclass(frozen=True)
class Resolution:
    """Signer-set members the local wallet controls.

    Attributes:
        intersection: Controlled members, in signer-set order.
        is_empty: True when the wallet controls none of them.
    """

    intersection: tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.intersection

    @property
    def primary(self) -> str:
        """First controlled member; receives change on the multisig path."""
        if self.is_empty:
            raise NoAuthorizedSignerInWallet()
        return self.intersection[0]


def resolve(required: AuthorizedSignerSet, local: Iterable[str]) -> Resolution:
    """Intersect the required signer set with the wallet's identities.

    Ordering follows ``required`` (never the wallet), so repeated runs
    produce identical artifacts.
    """
    controlled = set(local)
    return Resolution(
        intersection=tuple(address for address in required.addresses if address in controlled)
    )


def require_signers(required: AuthorizedSignerSet, local: Iterable[str]) -> Resolution:
    """Resolve and fail fast when the wallet holds no required signer.

    Raises:
        NoAuthorizedSignerInWallet: If the intersection is empty.
    """
    resolution = resolve(required, local)
    if resolution.is_empty:
        raise NoAuthorizedSignerInWallet(list(required.addresses))
    return resolution
