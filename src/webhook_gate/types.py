"""Shared value types passed between the gate, the ledger and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ExecutionMode(str, Enum):
    """Whether shared substrates (marker store, remote branch) are reachable.

    ``SHARED`` uses the shared marker store and the remote ledger branch.
    ``LOCAL_ONLY`` restricts both the gate and the ledger to the local
    workspace; used for local runs and tests.
    """

    SHARED = "shared"
    LOCAL_ONLY = "local"


class AdmitResult(str, Enum):
    """Outcome of :meth:`IdempotencyGate.admit`."""

    FIRST_SEEN = "first_seen"
    DUPLICATE = "duplicate"


class AppendOutcome(str, Enum):
    """How a successful ledger append terminated."""

    PUSHED = "pushed"
    ALREADY_PRESENT = "already_present"
    LOCAL_ONLY = "local_only"


@dataclass(frozen=True)
class ProcessResult:
    """Per-event result returned by :func:`webhook_gate.pipeline.process_event`.

    Attributes:
        first_seen: True when the gate admitted the event.
        entry_written: True when the ledger entry reached its destination
            (the remote branch in shared mode, the local ledger in local mode).
        event_id: Provider event identifier.
        event_hash: SHA-256 of the normalized event.
        normalized: Canonical event representation.
        outcome: Ledger append outcome.
    """

    first_seen: bool
    entry_written: bool
    event_id: str
    event_hash: str
    normalized: dict[str, Any] = field(default_factory=dict)
    outcome: AppendOutcome | None = None
