"""Typed exceptions for the webhook gate.

This module defines a small, explicit exception hierarchy so that the
components can tell transient substrate failures (absorbed by fallback or
retry) apart from terminal failures (propagated to the caller).

Design intent:
    - ``SubstrateUnavailableError`` and ``ConflictDetectedError`` are raised
      by substrates and handled inside the gate / append protocol.
    - ``InvalidInputError``, ``LedgerWriteFailedError`` and the verification
      errors reach the orchestrator and the CLI, which turn them into a
      non-zero exit status.
"""

from __future__ import annotations


class GateError(RuntimeError):
    """Base exception for webhook gate failures."""


class InvalidInputError(GateError, ValueError):
    """Caller supplied an unusable value (empty event id, malformed payload)."""


class UnsupportedProviderError(GateError, ValueError):
    """No verifier or normalizer is registered for the provider name."""


class VerificationFailedError(GateError):
    """The webhook signature did not verify."""


class DuplicateEventError(GateError):
    """The idempotency gate has already admitted this event."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Duplicate webhook detected: {event_id}")
        self.event_id = event_id


class SubstrateUnavailableError(GateError):
    """A shared substrate (marker store or branch remote) failed or is unreachable.

    Args:
        operation: Stable operation identifier, e.g. ``"markers.exists"`` or
            ``"git.fetch"``.
        details: Optional human-readable context.
    """

    def __init__(self, operation: str, details: str | None = None) -> None:
        message = operation
        if details:
            message = f"{message}: {details}"
        super().__init__(message)
        self.operation = operation
        self.details = details


class ConflictDetectedError(GateError):
    """A concurrent writer advanced the ledger branch during an attempt."""


class LedgerWriteFailedError(GateError):
    """The ledger entry could not be pushed within the attempt budget.

    Attributes:
        event_id: Event whose entry was not pushed.
        attempts: Number of attempts made.
        cause: Last underlying exception.
    """

    def __init__(self, event_id: str, attempts: int, cause: Exception | None) -> None:
        super().__init__(
            f"Failed to write ledger entry for event {event_id!r} after "
            f"{attempts} attempt(s): {cause}"
        )
        self.event_id = event_id
        self.attempts = attempts
        self.cause = cause
