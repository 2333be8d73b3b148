"""Coordinator configuration.

Behavior switches (hardware signer, timeouts, pool size) live on an
explicit ``CoordinatorConfig`` passed to every coordinator, never on
module-level state.

Environment Variables:
    SUBNETCTL_NETWORK: Target network (default: fuji).
    SUBNETCTL_API_URL: Custom node API URL (default: per-network endpoint).
    SUBNETCTL_USE_LEDGER: "1" to prompt for hardware signer confirmation.
    SUBNETCTL_REQUEST_TIMEOUT: Per-call timeout in seconds.
    SUBNETCTL_MAX_WORKERS: Worker pool size for batch operations.
    SUBNETCTL_MAX_RETRIES: Retries for retryable failures in batches.
    SUBNETCTL_WAIT_FOR_ACCEPTANCE: "0" to return right after issuing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from dotenv import load_dotenv

from .constants import (
    DEFAULT_ACCEPTANCE_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_WORKERS,
    DEFAULT_REQUEST_TIMEOUT,
    NETWORK_FUJI,
)
from .utils import get_network_config, normalize_network


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CoordinatorConfig:
    """Settings threaded through every coordinator call.

    Attributes:
        network: Canonical network name.
        api_url: Node API base URL.
        using_ledger: Whether signatures need hardware confirmation.
        request_timeout: Timeout for each chain call, in seconds.
        acceptance_timeout: How long to wait for an issued tx to be accepted.
        wait_for_acceptance: Whether submission waits for acceptance.
        max_workers: Worker pool size for batch operations.
        max_retries: Retries per task for retryable failures.
    """

    network: str = NETWORK_FUJI
    api_url: str = ""
    using_ledger: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    acceptance_timeout: float = DEFAULT_ACCEPTANCE_TIMEOUT
    wait_for_acceptance: bool = True
    max_workers: int = DEFAULT_MAX_WORKERS
    max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self) -> None:
        network = normalize_network(self.network)
        object.__setattr__(self, "network", network)
        if not self.api_url:
            object.__setattr__(self, "api_url", get_network_config(network)["api_url"])
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

    @property
    def network_id(self) -> int:
        return get_network_config(self.network)["network_id"]

    @property
    def native_asset_id(self) -> str:
        return get_network_config(self.network)["native_asset_id"]

    @property
    def fees(self) -> dict[str, int]:
        return dict(get_network_config(self.network)["fees"])

    def with_overrides(self, **changes) -> "CoordinatorConfig":
        """Return a copy with some fields replaced (None values are ignored)."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "CoordinatorConfig":
        """Build a config from ``SUBNETCTL_*`` environment variables.

        Args:
            dotenv: Load a ``.env`` file first.
        """
        if dotenv:
            load_dotenv()
        return cls(
            network=os.environ.get("SUBNETCTL_NETWORK", NETWORK_FUJI),
            api_url=os.environ.get("SUBNETCTL_API_URL", ""),
            using_ledger=_env_flag("SUBNETCTL_USE_LEDGER", False),
            request_timeout=float(
                os.environ.get("SUBNETCTL_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)
            ),
            acceptance_timeout=float(
                os.environ.get("SUBNETCTL_ACCEPTANCE_TIMEOUT", DEFAULT_ACCEPTANCE_TIMEOUT)
            ),
            wait_for_acceptance=_env_flag("SUBNETCTL_WAIT_FOR_ACCEPTANCE", True),
            max_workers=int(os.environ.get("SUBNETCTL_MAX_WORKERS", DEFAULT_MAX_WORKERS)),
            max_retries=int(os.environ.get("SUBNETCTL_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
        )
