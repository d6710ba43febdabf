"""
Shared pytest fixtures for the webhook gate test suite.

This module provides fixtures that are automatically available to all test files:
- Isolated workspaces under ``tmp_path``
- An in-memory shared remote and per-writer branch substrates
- An in-memory shared marker store
- Signed sample payloads for the supported providers
- Configuration objects detached from the process environment
"""

import hashlib
import hmac
import json
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from webhook_gate.config import GateConfig
from webhook_gate.errors import SubstrateUnavailableError
from webhook_gate.ledger.memory import InMemoryBranchSubstrate, InMemoryRemote
from webhook_gate.workspace import Workspace

STRIPE_SECRET = "whsec_test_secret"
RAZORPAY_SECRET = "rzp_test_secret"

# ============================================================================
# WORKSPACE & SUBSTRATE FIXTURES
# ============================================================================


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """A prepared workspace rooted in a fresh temporary directory."""
    return Workspace(root=tmp_path / "ws").prepare()


@pytest.fixture
def make_workspace(tmp_path: Path) -> Callable[[str], Workspace]:
    """Factory for additional isolated workspaces (one per simulated runner)."""

    def _make(name: str) -> Workspace:
        return Workspace(root=tmp_path / name).prepare()

    return _make


@pytest.fixture
def remote() -> InMemoryRemote:
    """An empty shared remote."""
    return InMemoryRemote()


@pytest.fixture
def substrate(remote: InMemoryRemote, workspace: Workspace) -> InMemoryBranchSubstrate:
    """A branch substrate for the default workspace, cloned from ``remote``."""
    return InMemoryBranchSubstrate(remote, workspace)


@pytest.fixture
def sleeps() -> list[float]:
    """Records backoff delays instead of sleeping."""
    return []


# ============================================================================
# MARKER STORE FIXTURES
# ============================================================================


class MemoryMarkerStore:
    """Shared marker store kept in a dict, with a switch to simulate an outage."""

    def __init__(self) -> None:
        self.markers: dict[str, str] = {}
        self.available = True
        self.create_calls = 0

    def _check(self, operation: str) -> None:
        if not self.available:
            raise SubstrateUnavailableError(operation, "store offline")

    def exists(self, key: str) -> bool:
        self._check("memory.exists")
        return key in self.markers

    def create(self, key: str, value: str) -> bool:
        self._check("memory.create")
        self.create_calls += 1
        if key in self.markers:
            return False
        self.markers[key] = value
        return True


@pytest.fixture
def shared_store() -> MemoryMarkerStore:
    """An in-memory shared marker store."""
    return MemoryMarkerStore()


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


@pytest.fixture
def gate_config() -> GateConfig:
    """Built-in defaults with no backoff, independent of files and environment."""
    cfg = GateConfig()
    cfg.ledger.backoff_base_seconds = 0.0
    return cfg


# ============================================================================
# PAYLOAD FIXTURES
# ============================================================================


def stripe_signature(payload: str, secret: str = STRIPE_SECRET, timestamp: int | None = None) -> str:
    """Build a valid ``Stripe-Signature`` header for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def razorpay_signature(payload: str, secret: str = RAZORPAY_SECRET) -> str:
    """Build a valid ``X-Razorpay-Signature`` header for ``payload``."""
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


@pytest.fixture
def stripe_payload() -> str:
    """A minimal Stripe ``payment_intent.succeeded`` event body."""
    return json.dumps(
        {
            "id": "evt_1NqXb2",
            "object": "event",
            "type": "payment_intent.succeeded",
            "created": 1760000000,
            "livemode": False,
            "data": {"object": {"id": "pi_123", "amount": 2000, "currency": "usd"}},
        }
    )


@pytest.fixture
def razorpay_payload() -> str:
    """A minimal Razorpay ``payment.captured`` event body."""
    return json.dumps(
        {
            "entity": "event",
            "event": "payment.captured",
            "created_at": 1760000000,
            "payload": {"payment": {"entity": {"id": "pay_29QQoUBi66xm2f", "amount": 5000}}},
        }
    )


@pytest.fixture
def sign_stripe() -> Callable[..., str]:
    return stripe_signature


@pytest.fixture
def sign_razorpay() -> Callable[..., str]:
    return razorpay_signature


@pytest.fixture
def stripe_secret() -> str:
    return STRIPE_SECRET


@pytest.fixture
def razorpay_secret() -> str:
    return RAZORPAY_SECRET
