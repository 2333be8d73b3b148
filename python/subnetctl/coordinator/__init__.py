"""Threshold co-signing coordinator.

Resolves which required signers the local wallet holds, builds the
unsigned transaction for a governance action, attaches the wallet's
signatures and either submits the transaction or returns it for
co-signers.

Usage:
    ```python
    from subnetctl.coordinator import Coordinator, CoordinatorState

    coordinator = Coordinator(signer, client, config)
    outcome = coordinator.remove_validator(node_id, subnet_id)
    if outcome.state is CoordinatorState.AWAITING_CO_SIGNERS:
        relay(outcome.transaction.to_bytes())

    # On the co-signer's machine
    outcome = Coordinator(other_signer, client, config).cosign(
        PartiallySignedTransaction.from_bytes(blob)
    )
    ```
"""

from .attacher import attach, route_change
from .builder import ChainSnapshot, ChangeRouting, build
from .coordinator import Coordinator, CoordinatorOutcome, CoordinatorState
from .resolver import Resolution, require_signers, resolve
from .submission import Submitter

__all__ = [
    # Resolver
    "Resolution",
    "resolve",
    "require_signers",
    # Builder
    "ChainSnapshot",
    "ChangeRouting",
    "build",
    # Attacher
    "attach",
    "route_change",
    # Submission
    "Submitter",
    # Coordinator
    "Coordinator",
    "CoordinatorOutcome",
    "CoordinatorState",
]
