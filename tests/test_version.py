"""Tests for version management.

``webhook_gate.__version__`` comes from the installed package metadata; the
marker service surfaces the same string in its OpenAPI schema and health
endpoint.
"""

from __future__ import annotations

import re

import pytest
from fastapi.testclient import TestClient

import webhook_gate
from webhook_gate.marker_service.app import create_app

_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(-[A-Za-z0-9]+(\.[A-Za-z0-9]+)*)?$")


@pytest.mark.unit
def test_version_is_semver():
    assert _SEMVER_RE.match(webhook_gate.__version__)


@pytest.mark.unit
def test_marker_service_reports_package_version(tmp_path):
    app = create_app(tmp_path / "markers.db")
    client = TestClient(app)

    assert app.version == webhook_gate.__version__
    assert client.get("/health").json()["version"] == webhook_gate.__version__
