"""Orchestrator: verify → admit → normalize/hash → append.

:func:`process_event` runs one webhook delivery through the gate. It never
reads the environment: the execution mode, workspace and substrates arrive
through :func:`build_components` so that tests can run several pipelines
side by side.

Failure policy
--------------
- Signature failures, unsupported providers and malformed payloads raise
  before any state changes.
- A duplicate is reported as ``ProcessResult(first_seen=False, ...)``; the
  ledger is not touched.
- :exc:`~webhook_gate.errors.LedgerWriteFailedError` propagates. The entry
  stays in the local journal but the run is not a success.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from webhook_gate.config import GateConfig
from webhook_gate.dedupe import HttpMarkerStore, IdempotencyGate, LocalMarkerStore
from webhook_gate.errors import InvalidInputError, VerificationFailedError
from webhook_gate.ledger import GitBranchSubstrate, LedgerAppender, LedgerEntry, utc_timestamp
from webhook_gate.ledger.substrate import BranchSubstrate
from webhook_gate.normalize import hash_event, normalize_event
from webhook_gate.providers import Verifier, get_verifier
from webhook_gate.types import AdmitResult, ExecutionMode, ProcessResult
from webhook_gate.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookRequest:
    """One webhook delivery as received by the CLI.

    Attributes:
        provider: Provider name (``stripe`` or ``razorpay``).
        payload_raw: Raw request body, exactly as signed.
        signature: Provider signature header value.
        secret: Webhook signing secret.
        branch: Ledger branch to record the event on.
        skip_signature: Local/test mode; accept without verifying.
    """

    provider: str
    payload_raw: str
    signature: str = ""
    secret: str = ""
    branch: str = "webhook-ledger"
    skip_signature: bool = False


@dataclass
class GateComponents:
    """The gate and appender one invocation runs against."""

    gate: IdempotencyGate
    appender: LedgerAppender
    mode: ExecutionMode


def build_components(
    workspace: Workspace,
    cfg: GateConfig,
    mode: ExecutionMode,
    *,
    substrate: BranchSubstrate | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> GateComponents:
    """Wire the gate and appender for ``workspace`` in ``mode``.

    In shared mode the marker store comes from ``cfg.dedupe.store_url`` (no
    URL means local markers only) and the substrate defaults to git.
    """
    shared_store = None
    if mode is ExecutionMode.SHARED and cfg.dedupe.store_url:
        shared_store = HttpMarkerStore(
            cfg.dedupe.store_url,
            token=cfg.dedupe.store_token,
            timeout=cfg.dedupe.timeout_seconds,
        )
    gate = IdempotencyGate(
        LocalMarkerStore(workspace.marker_path),
        shared_store,
        mode=mode,
        key_prefix=cfg.dedupe.key_prefix,
    )

    if mode is ExecutionMode.SHARED and substrate is None:
        substrate = GitBranchSubstrate(workspace, remote=cfg.ledger.remote)
    appender = LedgerAppender(
        workspace,
        substrate if mode is ExecutionMode.SHARED else None,
        mode=mode,
        max_attempts=cfg.ledger.max_attempts,
        backoff_base=cfg.ledger.backoff_base_seconds,
        committer_name=cfg.ledger.committer_name,
        committer_email=cfg.ledger.committer_email,
        sleep=sleep,
    )
    return GateComponents(gate=gate, appender=appender, mode=mode)


def _parse_payload(payload_raw: str) -> dict[str, Any]:
    try:
        payload = json.loads(payload_raw)
    except ValueError as exc:
        raise InvalidInputError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise InvalidInputError("Payload must be a JSON object.")
    return payload


def local_event_id(payload: dict[str, Any]) -> str:
    """Event id used when signature checks are skipped."""
    for field_name in ("id", "entity"):
        value = payload.get(field_name)
        if isinstance(value, str) and value:
            return value
    return f"local_{int(time.time() * 1000)}"


def process_event(
    request: WebhookRequest,
    components: GateComponents,
    *,
    verifier_lookup: Callable[[str], Verifier] = get_verifier,
    clock: Callable[[], str] = utc_timestamp,
) -> ProcessResult:
    """Run one delivery through verification, the gate and the ledger.

    Raises:
        InvalidInputError: Malformed payload or missing event id.
        UnsupportedProviderError: Unknown provider.
        VerificationFailedError: Signature mismatch.
        LedgerWriteFailedError: The entry could not be pushed.
    """
    payload = _parse_payload(request.payload_raw)
    # Unknown providers fail here, before any marker is written.
    verify = verifier_lookup(request.provider)

    if request.skip_signature:
        logger.info("pipeline: skipping signature verification (local/test)")
        event_id = local_event_id(payload)
    else:
        result = verify(request.payload_raw, request.signature, request.secret)
        if not result.verified:
            raise VerificationFailedError("Webhook signature verification failed")
        event_id = result.event_id

    if components.gate.admit(event_id) is AdmitResult.DUPLICATE:
        return ProcessResult(first_seen=False, entry_written=False, event_id=event_id, event_hash="")

    normalized = normalize_event(request.provider, payload)
    event_hash = hash_event(normalized)

    outcome = components.appender.append(
        LedgerEntry(
            timestamp=clock(),
            event_id=event_id,
            content_hash=event_hash,
            branch=request.branch,
        )
    )
    logger.info("pipeline: recorded %s (%s)", event_id, outcome.value)
    return ProcessResult(
        first_seen=True,
        entry_written=True,
        event_id=event_id,
        event_hash=event_hash,
        normalized=normalized,
        outcome=outcome,
    )
