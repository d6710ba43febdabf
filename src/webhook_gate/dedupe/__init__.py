"""Dedupe package: the concurrent idempotency gate.

Public surface
--------------
- :class:`IdempotencyGate`: ``admit(event_id)`` → FIRST_SEEN / DUPLICATE.
- :class:`LocalMarkerStore`: filesystem markers with exclusive create.
- :class:`HttpMarkerStore`: shared marker service client.
- :func:`fingerprint`: SHA-256 digest of an event identifier.
"""

from webhook_gate.dedupe.fingerprint import fingerprint, marker_key
from webhook_gate.dedupe.gate import IdempotencyGate
from webhook_gate.dedupe.markers import HttpMarkerStore, LocalMarkerStore, MarkerStore

__all__ = [
    "HttpMarkerStore",
    "IdempotencyGate",
    "LocalMarkerStore",
    "MarkerStore",
    "fingerprint",
    "marker_key",
]
