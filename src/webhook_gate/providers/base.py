"""Shared types for provider verifiers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a provider signature check.

    Attributes:
        verified: True if the signature matched.
        event_id: Provider event identifier extracted from the payload, or
            ``""`` when none could be found.
    """

    verified: bool
    event_id: str


Verifier = Callable[[str, str, str], VerificationResult]
