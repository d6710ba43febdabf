"""
Gate configuration management.

This module handles loading and accessing gate configuration from multiple
sources with a clear priority order:

    1. Environment variables (highest priority) - for CI runners and containers
    2. Config file (config/gate.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The GateConfig
dataclass provides typed access to all settings.

Usage:
    from webhook_gate.config import config

    print(config.ledger.branch)
    print(config.dedupe.store_url)
    print(config.execution_mode)

Environment Variable Mapping:
    WEBHOOK_GATE_MODE                -> execution.mode
    WEBHOOK_GATE_LEDGER_BRANCH       -> ledger.branch
    WEBHOOK_GATE_LEDGER_FILE         -> ledger.file_name
    WEBHOOK_GATE_REMOTE              -> ledger.remote
    WEBHOOK_GATE_MAX_ATTEMPTS        -> ledger.max_attempts
    WEBHOOK_GATE_BACKOFF_SECONDS     -> ledger.backoff_base_seconds
    WEBHOOK_GATE_MARKER_DIR          -> dedupe.marker_dir
    WEBHOOK_GATE_MARKER_STORE_URL    -> dedupe.store_url
    WEBHOOK_GATE_MARKER_STORE_TOKEN  -> dedupe.store_token
    WEBHOOK_GATE_MARKER_TIMEOUT      -> dedupe.timeout_seconds
    WEBHOOK_GATE_SERVICE_HOST        -> marker_service.host
    WEBHOOK_GATE_SERVICE_PORT        -> marker_service.port
    WEBHOOK_GATE_SERVICE_DB_PATH     -> marker_service.db_path
    WEBHOOK_GATE_LOG_LEVEL           -> logging.level
    WEBHOOK_GATE_LOG_FORMAT          -> logging.format
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from webhook_gate.types import ExecutionMode

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "gate.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "gate.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ExecutionSettings:
    """How the gate reaches its shared substrates."""

    mode: Literal["shared", "local"] = "shared"


@dataclass
class LedgerSettings:
    """Ledger branch and append-protocol configuration."""

    branch: str = "webhook-ledger"
    file_name: str = "ledger.log"
    remote: str = "origin"
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    committer_name: str = "webhook-trust-gate[bot]"
    committer_email: str = "webhook-trust-gate[bot]@users.noreply.github.com"


@dataclass
class DedupeSettings:
    """Idempotency gate configuration."""

    marker_dir: str = ".webhook-dedupe"
    key_prefix: str = "webhook-event"
    store_url: str | None = None
    store_token: str | None = None
    timeout_seconds: float = 10.0


@dataclass
class MarkerServiceSettings:
    """Shared marker store service configuration."""

    host: str = "127.0.0.1"
    port: int = 8780
    db_path: str = "data/markers.db"

    @property
    def absolute_db_path(self) -> Path:
        """Get absolute path to the marker database file."""
        p = Path(self.db_path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class GateConfig:
    """
    Complete gate configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    dedupe: DedupeSettings = field(default_factory=DedupeSettings)
    marker_service: MarkerServiceSettings = field(default_factory=MarkerServiceSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def execution_mode(self) -> ExecutionMode:
        """Configured execution mode as an :class:`ExecutionMode` value."""
        if self.execution.mode == "local":
            return ExecutionMode.LOCAL_ONLY
        return ExecutionMode.SHARED


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.strip().lower() in ("true", "yes", "1", "on", "enabled")


def _parse_mode(value: str) -> Literal["shared", "local"] | None:
    """Map accepted spellings of the execution mode to its canonical value."""
    val = value.strip().lower()
    if val in ("shared", "remote"):
        return "shared"
    if val in ("local", "local_only", "local-only"):
        return "local"
    return None


def _optional(value: str) -> str | None:
    """Treat blank strings as unset."""
    value = value.strip()
    return value or None


def _load_from_ini(parser: configparser.ConfigParser, cfg: GateConfig) -> None:
    """Load configuration from parsed INI file into GateConfig."""
    # Execution section
    if parser.has_option("execution", "mode"):
        mode = _parse_mode(parser.get("execution", "mode"))
        if mode is not None:
            cfg.execution.mode = mode

    # Ledger section
    if parser.has_section("ledger"):
        if parser.has_option("ledger", "branch"):
            cfg.ledger.branch = parser.get("ledger", "branch")
        if parser.has_option("ledger", "file_name"):
            cfg.ledger.file_name = parser.get("ledger", "file_name")
        if parser.has_option("ledger", "remote"):
            cfg.ledger.remote = parser.get("ledger", "remote")
        if parser.has_option("ledger", "max_attempts"):
            cfg.ledger.max_attempts = parser.getint("ledger", "max_attempts")
        if parser.has_option("ledger", "backoff_base_seconds"):
            cfg.ledger.backoff_base_seconds = parser.getfloat("ledger", "backoff_base_seconds")
        if parser.has_option("ledger", "committer_name"):
            cfg.ledger.committer_name = parser.get("ledger", "committer_name")
        if parser.has_option("ledger", "committer_email"):
            cfg.ledger.committer_email = parser.get("ledger", "committer_email")

    # Dedupe section
    if parser.has_section("dedupe"):
        if parser.has_option("dedupe", "marker_dir"):
            cfg.dedupe.marker_dir = parser.get("dedupe", "marker_dir")
        if parser.has_option("dedupe", "key_prefix"):
            cfg.dedupe.key_prefix = parser.get("dedupe", "key_prefix")
        if parser.has_option("dedupe", "store_url"):
            cfg.dedupe.store_url = _optional(parser.get("dedupe", "store_url"))
        if parser.has_option("dedupe", "store_token"):
            cfg.dedupe.store_token = _optional(parser.get("dedupe", "store_token"))
        if parser.has_option("dedupe", "timeout_seconds"):
            cfg.dedupe.timeout_seconds = parser.getfloat("dedupe", "timeout_seconds")

    # Marker service section
    if parser.has_section("marker_service"):
        if parser.has_option("marker_service", "host"):
            cfg.marker_service.host = parser.get("marker_service", "host")
        if parser.has_option("marker_service", "port"):
            cfg.marker_service.port = parser.getint("marker_service", "port")
        if parser.has_option("marker_service", "db_path"):
            cfg.marker_service.db_path = parser.get("marker_service", "db_path")

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: GateConfig) -> None:
    """Apply environment variable overrides to configuration."""
    if env_mode := os.getenv("WEBHOOK_GATE_MODE"):
        mode = _parse_mode(env_mode)
        if mode is not None:
            cfg.execution.mode = mode

    # Ledger settings
    if env_branch := os.getenv("WEBHOOK_GATE_LEDGER_BRANCH"):
        cfg.ledger.branch = env_branch
    if env_file := os.getenv("WEBHOOK_GATE_LEDGER_FILE"):
        cfg.ledger.file_name = env_file
    if env_remote := os.getenv("WEBHOOK_GATE_REMOTE"):
        cfg.ledger.remote = env_remote
    if env_attempts := os.getenv("WEBHOOK_GATE_MAX_ATTEMPTS"):
        cfg.ledger.max_attempts = int(env_attempts)
    if env_backoff := os.getenv("WEBHOOK_GATE_BACKOFF_SECONDS"):
        cfg.ledger.backoff_base_seconds = float(env_backoff)

    # Dedupe settings
    if env_marker_dir := os.getenv("WEBHOOK_GATE_MARKER_DIR"):
        cfg.dedupe.marker_dir = env_marker_dir
    if env_store_url := os.getenv("WEBHOOK_GATE_MARKER_STORE_URL"):
        cfg.dedupe.store_url = env_store_url
    if env_store_token := os.getenv("WEBHOOK_GATE_MARKER_STORE_TOKEN"):
        cfg.dedupe.store_token = env_store_token
    if env_timeout := os.getenv("WEBHOOK_GATE_MARKER_TIMEOUT"):
        cfg.dedupe.timeout_seconds = float(env_timeout)

    # Marker service settings
    if env_host := os.getenv("WEBHOOK_GATE_SERVICE_HOST"):
        cfg.marker_service.host = env_host
    if env_port := os.getenv("WEBHOOK_GATE_SERVICE_PORT"):
        cfg.marker_service.port = int(env_port)
    if env_db := os.getenv("WEBHOOK_GATE_SERVICE_DB_PATH"):
        cfg.marker_service.db_path = env_db

    # Logging settings
    if env_log := os.getenv("WEBHOOK_GATE_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_log_format := os.getenv("WEBHOOK_GATE_LOG_FORMAT"):
        if env_log_format.lower() in ("simple", "detailed", "json"):
            cfg.logging.format = env_log_format.lower()  # type: ignore[assignment]


def load_config() -> GateConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/gate.ini
        3. config/gate.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        GateConfig: Fully populated configuration object.
    """
    cfg = GateConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "GateConfig":
    """
    Reload configuration from disk and environment.

    Updates the module-level `config` singleton.

    Returns:
        GateConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "execution_mode": config.execution_mode.value,
        "shared_marker_store": config.dedupe.store_url is not None,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("GATE CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to gate.ini for production)")
    print("-" * 60)
    print(f"Mode:         {status['execution_mode']}")
    print(f"Ledger:       {config.ledger.remote}/{config.ledger.branch}:{config.ledger.file_name}")
    print(f"Max attempts: {config.ledger.max_attempts}")
    print(f"Marker store: {config.dedupe.store_url or '(local only)'}")
    print(f"Marker dir:   {config.dedupe.marker_dir}")
    print(f"Log level:    {config.logging.level}")
    print("=" * 60 + "\n")
