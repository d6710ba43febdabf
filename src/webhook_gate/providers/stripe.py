"""Stripe webhook signature verification.

Stripe signs ``"<timestamp>.<raw payload>"`` with HMAC-SHA256 and sends
``Stripe-Signature: t=<unix seconds>,v1=<hex digest>[,v0=...]``. Signatures
older or newer than the tolerance window are rejected to limit replays.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time

from webhook_gate.providers.base import VerificationResult

TOLERANCE_SECONDS = 5 * 60


def _parse_header(signature_header: str) -> tuple[str, list[str]]:
    timestamp = ""
    signatures: list[str] = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def _event_id(payload_raw: str) -> str:
    try:
        parsed = json.loads(payload_raw)
    except ValueError:
        return ""
    if not isinstance(parsed, dict):
        return ""
    event_id = parsed.get("id")
    return event_id if isinstance(event_id, str) else ""


def verify_stripe(
    payload_raw: str,
    signature_header: str,
    secret: str,
    *,
    now: float | None = None,
    tolerance: int = TOLERANCE_SECONDS,
) -> VerificationResult:
    """Verify a Stripe webhook and extract its event id."""
    timestamp, signatures = _parse_header(signature_header)
    if not timestamp or not signatures:
        return VerificationResult(verified=False, event_id="")

    try:
        signed_at = int(timestamp)
    except ValueError:
        return VerificationResult(verified=False, event_id="")

    current = time.time() if now is None else now
    if abs(current - signed_at) > tolerance:
        return VerificationResult(verified=False, event_id="")

    expected = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload_raw}".encode(),
        hashlib.sha256,
    ).hexdigest()
    verified = any(
        hmac.compare_digest(expected.encode(), candidate.encode("utf-8")) for candidate in signatures
    )
    return VerificationResult(verified=verified, event_id=_event_id(payload_raw))
