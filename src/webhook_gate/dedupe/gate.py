"""Idempotency gate: first-seen vs. duplicate for an event identifier.

The gate answers one question per event: has any invocation admitted this
identifier before? Presence of a dedupe marker keyed by the event's
fingerprint is the only signal.

Mode selection
--------------
``ExecutionMode.LOCAL_ONLY`` (or a gate built without a shared store) uses
the local marker directory exclusively. ``ExecutionMode.SHARED`` consults the
shared store and falls back to the local directory whenever the shared store
raises :exc:`~webhook_gate.errors.SubstrateUnavailableError`. The fallback
is silent to the caller and visible only in the log.

Shared path ordering
--------------------
The marker is published to the shared store *before* the local mirror is
written. If publishing fails, the local path then starts from a clean slate;
a local marker written first would make the fallback report a duplicate for
an event that was never admitted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from webhook_gate.dedupe.fingerprint import DEFAULT_KEY_PREFIX, fingerprint, marker_key
from webhook_gate.dedupe.markers import LocalMarkerStore, MarkerStore
from webhook_gate.errors import InvalidInputError, SubstrateUnavailableError
from webhook_gate.types import AdmitResult, ExecutionMode

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class IdempotencyGate:
    """Admit each event identifier at most once.

    Args:
        local: Local marker store (always present; the fallback path).
        shared: Shared marker store, or None when no shared store is
            configured.
        mode: Execution mode injected by the orchestrator.
        key_prefix: Prefix for shared-store keys.
        clock: Returns the RFC3339 first-seen timestamp stored in markers.
    """

    def __init__(
        self,
        local: LocalMarkerStore,
        shared: MarkerStore | None = None,
        *,
        mode: ExecutionMode = ExecutionMode.SHARED,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], str] = _utc_now,
    ):
        self.local = local
        self.shared = shared
        self.mode = mode
        self.key_prefix = key_prefix
        self.clock = clock

    def admit(self, event_id: str) -> AdmitResult:
        """Return FIRST_SEEN the first time ``event_id`` is seen, else DUPLICATE.

        Raises:
            InvalidInputError: If ``event_id`` is empty or blank.
        """
        if not event_id or not event_id.strip():
            raise InvalidInputError("Missing provider event ID")

        fp = fingerprint(event_id)

        if self.mode is ExecutionMode.LOCAL_ONLY or self.shared is None:
            return self._admit_local(fp, event_id)

        try:
            return self._admit_shared(fp, event_id)
        except SubstrateUnavailableError as exc:
            logger.warning(
                "gate: shared marker store unavailable (%s), falling back to filesystem",
                exc,
            )
            return self._admit_local(fp, event_id)

    def _admit_shared(self, fp: str, event_id: str) -> AdmitResult:
        assert self.shared is not None
        key = marker_key(fp, self.key_prefix)

        if self.shared.exists(key):
            logger.info("gate: duplicate detected (shared): %s", event_id)
            return AdmitResult.DUPLICATE

        first_seen_at = self.clock()
        if not self.shared.create(key, first_seen_at):
            # Another invocation created the marker between exists() and create().
            logger.info("gate: duplicate detected (shared, lost create race): %s", event_id)
            return AdmitResult.DUPLICATE

        try:
            self.local.create(fp, first_seen_at)
        except SubstrateUnavailableError as exc:
            logger.warning("gate: could not mirror marker locally for %s: %s", event_id, exc)

        logger.info("gate: first occurrence (shared): %s", event_id)
        return AdmitResult.FIRST_SEEN

    def _admit_local(self, fp: str, event_id: str) -> AdmitResult:
        if self.local.create(fp, self.clock()):
            logger.info("gate: first occurrence (local): %s", event_id)
            return AdmitResult.FIRST_SEEN
        logger.info("gate: duplicate detected (local): %s", event_id)
        return AdmitResult.DUPLICATE
