"""
Command-line interface for the webhook trust gate.

Provides CLI commands:
- process: Verify a webhook, admit it once and record it on the ledger branch
- verify-ledger: Check a ledger file for malformed lines and repeated events
- serve-markers: Run the shared marker store service
- show-config: Print the effective configuration

Usage:
    webhook-gate process --provider stripe --payload-file body.json \\
        --signature "$SIG" --secret "$SECRET"
    webhook-gate verify-ledger [--path ledger.log] [--workdir DIR]
    webhook-gate serve-markers [--host HOST] [--port PORT] [--db-path PATH]
    webhook-gate show-config

Environment Variables (``process``, when the flag is not given):
    INPUT_PROVIDER: Provider name (stripe, razorpay)
    INPUT_PAYLOAD: Raw webhook body
    INPUT_SIGNATURE: Provider signature header value
    INPUT_SECRET: Webhook signing secret
    INPUT_LEDGER_BRANCH: Ledger branch (default: ledger.branch from config)
    INPUT_SKIP_SIGNATURE: "true" to skip verification (local/test mode)
    GITHUB_WORKSPACE: Default working directory for the ledger checkout
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from webhook_gate import config as config_module
from webhook_gate.errors import DuplicateEventError, GateError, InvalidInputError
from webhook_gate.ledger import verify_ledger_file
from webhook_gate.logging_setup import configure_logging
from webhook_gate.pipeline import WebhookRequest, build_components, process_event
from webhook_gate.summary import set_output, write_summary
from webhook_gate.types import ExecutionMode
from webhook_gate.workspace import Workspace

logger = logging.getLogger(__name__)


def _input(value: str | None, env_name: str, default: str = "") -> str:
    """Return the CLI value if given, else the ``INPUT_*`` variable, else ``default``."""
    if value is not None:
        return value
    return os.environ.get(env_name, default)


def resolve_request(args: argparse.Namespace, default_branch: str) -> WebhookRequest:
    """
    Build the :class:`WebhookRequest` from flags and ``INPUT_*`` variables.

    Raises:
        InvalidInputError: A required input is missing.
    """
    payload = getattr(args, "payload", None)
    payload_file = getattr(args, "payload_file", None)
    if payload is None and payload_file:
        payload = Path(payload_file).read_text(encoding="utf-8")

    skip_flag = getattr(args, "skip_signature", False)
    skip_env = _input(None, "INPUT_SKIP_SIGNATURE", "false")
    skip_signature = skip_flag or config_module.parse_bool(skip_env)

    request = WebhookRequest(
        provider=_input(getattr(args, "provider", None), "INPUT_PROVIDER").strip().lower(),
        payload_raw=_input(payload, "INPUT_PAYLOAD"),
        signature=_input(getattr(args, "signature", None), "INPUT_SIGNATURE"),
        secret=_input(getattr(args, "secret", None), "INPUT_SECRET"),
        branch=_input(getattr(args, "ledger_branch", None), "INPUT_LEDGER_BRANCH") or default_branch,
        skip_signature=skip_signature,
    )

    missing = [name for name in ("provider", "payload_raw") if not getattr(request, name)]
    if not request.skip_signature:
        missing += [name for name in ("signature", "secret") if not getattr(request, name)]
    if missing:
        raise InvalidInputError(f"Missing required input(s): {', '.join(missing)}")
    return request


def resolve_mode(args: argparse.Namespace, cfg: config_module.GateConfig, skip_signature: bool) -> ExecutionMode:
    """Skipping signatures or ``--local-only`` forces local-only mode."""
    if skip_signature or getattr(args, "local_only", False):
        return ExecutionMode.LOCAL_ONLY
    return cfg.execution_mode


def _workspace_for(args: argparse.Namespace, cfg: config_module.GateConfig) -> Workspace:
    workdir = getattr(args, "workdir", None) or os.environ.get("GITHUB_WORKSPACE") or os.getcwd()
    return Workspace.from_settings(
        workdir,
        ledger_file=cfg.ledger.file_name,
        marker_dir=cfg.dedupe.marker_dir,
    )


def cmd_process(args: argparse.Namespace) -> int:
    """
    Run one webhook delivery through the gate.

    Returns:
        0 when the event was admitted for the first time and recorded.
        1 on any gate error, including a duplicate delivery and a ledger
        entry that could not be pushed.
    """
    cfg = config_module.config
    try:
        request = resolve_request(args, cfg.ledger.branch)
        mode = resolve_mode(args, cfg, request.skip_signature)

        workspace = _workspace_for(args, cfg).prepare()
        logger.info("process: provider=%s mode=%s workspace=%s", request.provider, mode.value, workspace.root)

        components = build_components(workspace, cfg, mode)
        result = process_event(request, components)
        if not result.first_seen:
            set_output("first_seen", "false")
            raise DuplicateEventError(result.event_id)
    except (GateError, OSError) as e:
        logger.error("process: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        set_output("entry_written", "false")
        return 1

    write_summary(result.event_id, result.event_hash)
    set_output("event_id", result.event_id)
    set_output("event_hash", result.event_hash)
    set_output("normalized_event", json.dumps(result.normalized))
    set_output("first_seen", "true")
    set_output("entry_written", "true" if result.entry_written else "false")

    print(f"Event ID: {result.event_id}")
    print(f"Event hash: {result.event_hash}")
    if result.outcome is not None:
        print(f"Ledger: {result.outcome.value}")
    return 0


def _default_ledger_path(args: argparse.Namespace) -> Path:
    """Working-tree ledger if present, else the local journal (local-only runs)."""
    workspace = _workspace_for(args, config_module.config)
    if workspace.ledger_path.exists():
        return workspace.ledger_path
    return workspace.journal_path


def cmd_verify_ledger(args: argparse.Namespace) -> int:
    """
    Verify a ledger file.

    Returns:
        0 if the ledger is valid or empty, 1 if any line is malformed.
    """
    path = Path(args.path) if getattr(args, "path", None) else _default_ledger_path(args)
    result = verify_ledger_file(path)

    print(f"Ledger:  {path}")
    print(f"Status:  {result.status}")
    print(f"Lines:   {result.line_count}")
    if result.last_event_id:
        print(f"Last:    {result.last_event_id}")
    if result.duplicate_event_ids:
        print(f"Repeated events: {', '.join(result.duplicate_event_ids)}")
    if result.status == "corrupt":
        print(f"Error: {result.error_detail}", file=sys.stderr)
        return 1
    return 0


def cmd_serve_markers(args: argparse.Namespace) -> int:
    """
    Run the shared marker store service until interrupted.

    Configuration Priority:
        1. CLI arguments (--host, --port, --db-path, --token)
        2. WEBHOOK_GATE_SERVICE_* / WEBHOOK_GATE_MARKER_STORE_TOKEN
        3. config/gate.ini [marker_service]
    """
    from webhook_gate.marker_service.app import start_server

    cfg = config_module.config
    host = getattr(args, "host", None) or cfg.marker_service.host
    port = getattr(args, "port", None) or cfg.marker_service.port
    db_path = getattr(args, "db_path", None) or cfg.marker_service.absolute_db_path
    token = getattr(args, "token", None) or cfg.dedupe.store_token

    try:
        start_server(host, port, db_path, token=token)
    except KeyboardInterrupt:
        print("\nMarker store stopped.")
    except OSError as e:
        print(f"Error starting marker store: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_show_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    config_module.print_config_summary()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webhook-gate",
        description="Webhook trust gate - admit signed webhooks once and record them on a ledger branch",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # process command
    process_parser = subparsers.add_parser(
        "process",
        help="Verify, deduplicate and record one webhook",
        description=(
            "Verify the webhook signature, admit the event through the idempotency gate "
            "and append it to the ledger branch. Inputs fall back to INPUT_* variables."
        ),
    )
    process_parser.add_argument("--provider", help="Provider name (stripe, razorpay)")
    payload_group = process_parser.add_mutually_exclusive_group()
    payload_group.add_argument("--payload", help="Raw webhook body")
    payload_group.add_argument("--payload-file", help="File containing the raw webhook body")
    process_parser.add_argument("--signature", help="Provider signature header value")
    process_parser.add_argument("--secret", help="Webhook signing secret")
    process_parser.add_argument("--ledger-branch", help="Ledger branch name")
    process_parser.add_argument(
        "--skip-signature",
        action="store_true",
        help="Skip signature verification (local/test mode, implies --local-only)",
    )
    process_parser.add_argument(
        "--local-only",
        action="store_true",
        help="Use local markers and the local journal only; never push",
    )
    process_parser.add_argument(
        "--workdir",
        help="Ledger checkout directory (default: GITHUB_WORKSPACE or the current directory)",
    )
    process_parser.set_defaults(func=cmd_process)

    # verify-ledger command
    verify_parser = subparsers.add_parser(
        "verify-ledger",
        help="Check a ledger file",
        description="Check every ledger line for format validity and report repeated event ids.",
    )
    verify_parser.add_argument(
        "--path",
        help="Ledger file (default: the workspace ledger, or its local journal if absent)",
    )
    verify_parser.add_argument(
        "--workdir",
        help="Ledger checkout directory (default: GITHUB_WORKSPACE or the current directory)",
    )
    verify_parser.set_defaults(func=cmd_verify_ledger)

    # serve-markers command
    serve_parser = subparsers.add_parser(
        "serve-markers",
        help="Run the shared marker store",
        description="Start the FastAPI marker store used for cross-runner deduplication.",
    )
    serve_parser.add_argument("--host", type=str, help="Host to bind (default from config)")
    serve_parser.add_argument("--port", "-p", type=int, help="Port to bind (default from config)")
    serve_parser.add_argument("--db-path", type=str, help="SQLite database file")
    serve_parser.add_argument("--token", type=str, help="Require this bearer token")
    serve_parser.set_defaults(func=cmd_serve_markers)

    # show-config command
    show_parser = subparsers.add_parser("show-config", help="Print the effective configuration")
    show_parser.set_defaults(func=cmd_show_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(config_module.config.logging)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
