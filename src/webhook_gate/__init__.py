"""Webhook Trust Gate.

Admits externally-signed webhook events exactly once and records an
append-only, tamper-evident proof of each accepted event on a shared git
branch, even when several independent CI runs race on the same events.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("webhook-trust-gate")
except PackageNotFoundError:
    __version__ = "0.3.0"
