"""Razorpay webhook signature verification.

Razorpay sends ``X-Razorpay-Signature``: the hex HMAC-SHA256 of the raw
request body keyed with the webhook secret.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

from webhook_gate.providers.base import VerificationResult


def razorpay_event_id(payload: Any) -> str:
    """Payment entity id, else order entity id, else ''."""
    if not isinstance(payload, dict):
        return ""
    inner = payload.get("payload")
    if not isinstance(inner, dict):
        return ""
    for entity_name in ("payment", "order"):
        container = inner.get(entity_name)
        if isinstance(container, dict):
            entity = container.get("entity")
            if isinstance(entity, dict) and isinstance(entity.get("id"), str) and entity["id"]:
                return entity["id"]
    return ""


def verify_razorpay(payload_raw: str, signature_header: str, secret: str) -> VerificationResult:
    """Verify a Razorpay webhook and extract its event id."""
    expected = hmac.new(
        secret.encode("utf-8"), payload_raw.encode("utf-8"), hashlib.sha256
    ).hexdigest()
    verified = hmac.compare_digest(expected.encode(), signature_header.strip().encode("utf-8"))

    try:
        parsed = json.loads(payload_raw)
    except ValueError:
        parsed = None
    return VerificationResult(verified=verified, event_id=razorpay_event_id(parsed))
