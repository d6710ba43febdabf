"""Event fingerprints: content-addressed keys derived from event identifiers."""

from __future__ import annotations

import hashlib

DEFAULT_KEY_PREFIX = "webhook-event"


def fingerprint(event_id: str) -> str:
    """Return the 64-character lowercase SHA-256 hex digest of ``event_id``.

    Identical identifiers always yield identical fingerprints. The digest is
    safe to use as a filename and as a shared-store key regardless of what
    characters the provider puts in its identifiers.
    """
    return hashlib.sha256(event_id.encode("utf-8")).hexdigest()


def marker_key(fp: str, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    """Shared-store key for a fingerprint, e.g. ``webhook-event-<fp>``."""
    return f"{prefix}-{fp}"
