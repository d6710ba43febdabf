"""Tests for webhook_gate.config INI loading and environment overrides."""

import configparser

import pytest

from webhook_gate import config as config_module
from webhook_gate.config import GateConfig, _load_from_ini, load_config, print_config_summary
from webhook_gate.types import ExecutionMode


@pytest.mark.unit
def test_defaults():
    cfg = GateConfig()

    assert cfg.execution_mode is ExecutionMode.SHARED
    assert cfg.ledger.branch == "webhook-ledger"
    assert cfg.ledger.max_attempts == 3
    assert cfg.ledger.backoff_base_seconds == 1.0
    assert cfg.dedupe.store_url is None
    assert cfg.marker_service.port == 8780


@pytest.mark.unit
def test_ledger_env_overrides(monkeypatch):
    monkeypatch.setenv("WEBHOOK_GATE_LEDGER_BRANCH", "audit")
    monkeypatch.setenv("WEBHOOK_GATE_LEDGER_FILE", "audit.log")
    monkeypatch.setenv("WEBHOOK_GATE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("WEBHOOK_GATE_BACKOFF_SECONDS", "0.25")

    cfg = load_config()

    assert cfg.ledger.branch == "audit"
    assert cfg.ledger.file_name == "audit.log"
    assert cfg.ledger.max_attempts == 5
    assert cfg.ledger.backoff_base_seconds == 0.25


@pytest.mark.unit
def test_dedupe_env_overrides(monkeypatch):
    monkeypatch.setenv("WEBHOOK_GATE_MARKER_STORE_URL", "https://markers.example.org")
    monkeypatch.setenv("WEBHOOK_GATE_MARKER_STORE_TOKEN", "tok")
    monkeypatch.setenv("WEBHOOK_GATE_MARKER_TIMEOUT", "2.5")

    cfg = load_config()

    assert cfg.dedupe.store_url == "https://markers.example.org"
    assert cfg.dedupe.store_token == "tok"
    assert cfg.dedupe.timeout_seconds == 2.5


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "expected"),
    [("local", ExecutionMode.LOCAL_ONLY), ("local-only", ExecutionMode.LOCAL_ONLY), ("SHARED", ExecutionMode.SHARED)],
)
def test_mode_env_override(monkeypatch, value, expected):
    monkeypatch.setenv("WEBHOOK_GATE_MODE", value)

    assert load_config().execution_mode is expected


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "expected"), [("true", True), (" Yes ", True), ("on", True), ("false", False), ("", False)]
)
def test_parse_bool(value, expected):
    assert config_module.parse_bool(value) is expected


@pytest.mark.unit
def test_unknown_mode_ignored(monkeypatch):
    monkeypatch.setenv("WEBHOOK_GATE_MODE", "sideways")

    assert load_config().execution.mode == "shared"


@pytest.mark.unit
def test_logging_env_overrides(monkeypatch):
    monkeypatch.setenv("WEBHOOK_GATE_LOG_LEVEL", "debug")
    monkeypatch.setenv("WEBHOOK_GATE_LOG_FORMAT", "JSON")

    cfg = load_config()

    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "json"


@pytest.mark.unit
def test_load_from_ini_sections():
    parser = configparser.ConfigParser()
    parser.read_string(
        """
[execution]
mode = local

[ledger]
branch = audit
max_attempts = 7

[dedupe]
store_url =
key_prefix = prod

[marker_service]
port = 9999
db_path = /var/lib/markers.db
"""
    )
    cfg = GateConfig()

    _load_from_ini(parser, cfg)

    assert cfg.execution_mode is ExecutionMode.LOCAL_ONLY
    assert cfg.ledger.branch == "audit"
    assert cfg.ledger.max_attempts == 7
    assert cfg.dedupe.store_url is None
    assert cfg.dedupe.key_prefix == "prod"
    assert cfg.marker_service.port == 9999
    assert str(cfg.marker_service.absolute_db_path) == "/var/lib/markers.db"


@pytest.mark.unit
def test_relative_db_path_resolves_under_project_root():
    cfg = GateConfig()

    assert cfg.marker_service.absolute_db_path == config_module.PROJECT_ROOT / "data" / "markers.db"


@pytest.mark.unit
def test_reload_config_replaces_singleton(monkeypatch):
    monkeypatch.setenv("WEBHOOK_GATE_LEDGER_BRANCH", "reloaded")
    original = config_module.config
    try:
        reloaded = config_module.reload_config()
        assert config_module.config is reloaded
        assert reloaded.ledger.branch == "reloaded"
    finally:
        config_module.config = original


@pytest.mark.unit
def test_print_config_summary(capsys):
    print_config_summary()

    out = capsys.readouterr().out
    assert "GATE CONFIGURATION" in out
    assert "Mode:" in out
    assert "Marker store:" in out
