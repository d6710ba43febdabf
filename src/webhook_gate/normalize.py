"""Provider-specific event normalization and content hashing.

The normalized form keeps only the fields that identify what happened, so
cosmetic differences between deliveries of one event do not change its
content hash.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from webhook_gate.errors import UnsupportedProviderError
from webhook_gate.providers.razorpay import razorpay_event_id


def _normalize_stripe(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    return {
        "provider": "stripe",
        "id": payload.get("id"),
        "type": payload.get("type"),
        "created": payload.get("created"),
        "data": obj if obj is not None else {},
    }


def _normalize_razorpay(payload: dict[str, Any]) -> dict[str, Any]:
    inner = payload.get("payload")
    return {
        "provider": "razorpay",
        "id": razorpay_event_id(payload),
        "event": payload.get("event"),
        "created_at": payload.get("created_at"),
        "data": inner if inner is not None else {},
    }


_NORMALIZERS = {
    "stripe": _normalize_stripe,
    "razorpay": _normalize_razorpay,
}


def normalize_event(provider: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Return the canonical representation of ``payload``.

    Raises:
        UnsupportedProviderError: If ``provider`` has no normalizer.
    """
    normalizer = _NORMALIZERS.get(provider)
    if normalizer is None:
        raise UnsupportedProviderError(f"Unsupported provider for normalization: {provider}")
    return normalizer(payload)


def canonical_json(event: dict[str, Any]) -> str:
    """Compact, key-sorted JSON; the byte form that gets hashed."""
    return json.dumps(event, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def hash_event(event: dict[str, Any]) -> str:
    """64-character lowercase SHA-256 hex of :func:`canonical_json`."""
    return hashlib.sha256(canonical_json(event).encode("utf-8")).hexdigest()
