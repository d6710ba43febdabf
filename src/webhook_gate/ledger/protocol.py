"""Optimistic-concurrency append protocol for the shared ledger branch.

Overview
--------
:meth:`LedgerAppender.append` records one :class:`LedgerEntry` in two steps:

1. **Durable local append.** The line goes to the workspace journal first,
   under an exclusive lock, so it is never lost even if the remote never
   accepts it.
2. **Convergence.** The line is layered onto the latest tip of the shared
   branch and pushed. A push is accepted only if nobody else pushed since
   this writer synced; losing that race means re-syncing and trying again.

State machine
-------------
::

    INIT → ESTABLISH_IDENTITY → SYNC_BRANCH → STAGE → DIFF_CHECK ─(no diff)→ DONE
                                     ↑                    │
                                     │                  COMMIT → REBASE → PUSH → DONE
                                     │                             │        │
                                   RETRY ←───── conflict ──────────┴────────┘
                                     │
                                  FAILED (attempts exhausted → LedgerWriteFailedError)

- SYNC_BRANCH fetches the tip and checks it out, or bootstraps an
  empty-history branch when the remote has none; the entry line is then
  materialized into the working-tree ledger unless already present.
- DIFF_CHECK makes redundant appends idempotent: if the tip already holds
  the line, nothing is committed.
- After REBASE, a local commit the rebase absorbed (the same line was
  pushed by another writer meanwhile) ends the append without a push.
- RETRY reverts every partial mutation (staged changes, unpushed commits,
  aborted rebase, untracked files) before backing off for
  ``backoff_base * 2 ** (attempt - 1)`` seconds. No sleep follows the last
  attempt.

No writer has priority. Fairness comes from bounded retry.

Local-only mode
---------------
With ``ExecutionMode.LOCAL_ONLY`` only step 1 runs. The append cannot fail
on remote conflicts and returns :attr:`AppendOutcome.LOCAL_ONLY`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum

from webhook_gate.errors import (
    ConflictDetectedError,
    LedgerWriteFailedError,
    SubstrateUnavailableError,
)
from webhook_gate.ledger.entry import LedgerEntry
from webhook_gate.ledger.journal import append_line_locked, ensure_line
from webhook_gate.ledger.substrate import BranchSubstrate, PushResult, RebaseResult
from webhook_gate.types import AppendOutcome, ExecutionMode
from webhook_gate.workspace import Workspace

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_COMMITTER_NAME = "webhook-trust-gate[bot]"
DEFAULT_COMMITTER_EMAIL = "webhook-trust-gate[bot]@users.noreply.github.com"


class AppendState(str, Enum):
    INIT = "init"
    ESTABLISH_IDENTITY = "establish_identity"
    SYNC_BRANCH = "sync_branch"
    STAGE = "stage"
    DIFF_CHECK = "diff_check"
    COMMIT = "commit"
    REBASE = "rebase"
    PUSH = "push"
    RETRY = "retry"
    DONE = "done"
    FAILED = "failed"


class LedgerAppender:
    """Append ledger entries to a shared branch under optimistic concurrency.

    Args:
        workspace: Workspace holding the journal and the working tree.
        substrate: Branch substrate (git in production, in-memory in tests).
        mode: Execution mode injected by the orchestrator.
        max_attempts: Attempts before giving up; at least 1.
        backoff_base: Delay in seconds before the second attempt; doubles
            on every further attempt.
        committer_name: Identity used for ledger commits.
        committer_email: Identity used for ledger commits.
        sleep: Blocking sleep used for backoff (tests inject a recorder).

    Attributes:
        trace: States visited by the most recent :meth:`append` call.
    """

    def __init__(
        self,
        workspace: Workspace,
        substrate: BranchSubstrate | None,
        *,
        mode: ExecutionMode = ExecutionMode.SHARED,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE_SECONDS,
        committer_name: str = DEFAULT_COMMITTER_NAME,
        committer_email: str = DEFAULT_COMMITTER_EMAIL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if mode is ExecutionMode.SHARED and substrate is None:
            raise ValueError("LedgerAppender: a branch substrate is required in shared mode.")
        self.workspace = workspace
        self.substrate = substrate
        self.mode = mode
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.committer_name = committer_name
        self.committer_email = committer_email
        self.sleep = sleep
        self.trace: list[AppendState] = []

    # ── public API ────────────────────────────────────────────────────────────

    def append(self, entry: LedgerEntry, *, branch: str | None = None) -> AppendOutcome:
        """Record ``entry`` locally, then converge it into the shared branch.

        Args:
            entry: The entry to record.
            branch: Target branch; defaults to ``entry.branch``.

        Returns:
            ``PUSHED`` when this call pushed the line, ``ALREADY_PRESENT`` when
            the branch tip already held it, ``LOCAL_ONLY`` in local mode.

        Raises:
            LedgerWriteFailedError: If the local append fails, or the remote
                rejected every attempt. The journal keeps the line either way
                once the local append succeeded.
        """
        branch = branch or entry.branch
        line = entry.to_line()
        self.trace = [AppendState.INIT]

        try:
            append_line_locked(self.workspace.journal_path, line)
        except OSError as exc:
            self._enter(AppendState.FAILED)
            raise LedgerWriteFailedError(entry.event_id, 0, exc) from exc

        if self.mode is ExecutionMode.LOCAL_ONLY:
            self._enter(AppendState.DONE)
            logger.info("ledger: entry written (local only): %s", line.strip())
            return AppendOutcome.LOCAL_ONLY

        return self._converge(entry, branch, line)

    # ── convergence loop ──────────────────────────────────────────────────────

    def _converge(self, entry: LedgerEntry, branch: str, line: str) -> AppendOutcome:
        identity_ready = False
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                "ledger: attempt %d/%d committing %s to %s",
                attempt,
                self.max_attempts,
                entry.event_id,
                branch,
            )
            try:
                if not identity_ready:
                    self._enter(AppendState.ESTABLISH_IDENTITY)
                    self._substrate.configure_identity(self.committer_name, self.committer_email)
                    identity_ready = True
                outcome = self._attempt(entry, branch, line)
            except (ConflictDetectedError, SubstrateUnavailableError) as exc:
                last_error = exc
                self._enter(AppendState.RETRY)
                logger.warning("ledger: attempt %d failed: %s", attempt, exc)
                self._revert()
                if attempt < self.max_attempts:
                    delay = self.backoff_base * (2 ** (attempt - 1))
                    logger.info("ledger: retrying in %.2fs", delay)
                    self.sleep(delay)
                continue

            self._enter(AppendState.DONE)
            if outcome is AppendOutcome.ALREADY_PRESENT:
                logger.info("ledger: no changes to commit for %s (already in ledger)", entry.event_id)
            else:
                logger.info("ledger: entry committed and pushed: %s", entry.event_id)
            return outcome

        self._enter(AppendState.FAILED)
        logger.error(
            "ledger: giving up on %s after %d attempts: %s",
            entry.event_id,
            self.max_attempts,
            last_error,
        )
        raise LedgerWriteFailedError(entry.event_id, self.max_attempts, last_error)

    def _attempt(self, entry: LedgerEntry, branch: str, line: str) -> AppendOutcome:
        """Run SYNC_BRANCH through PUSH once.

        Raises:
            ConflictDetectedError: On rebase conflict or push rejection.
            SubstrateUnavailableError: On any substrate failure.
        """
        substrate = self._substrate

        self._enter(AppendState.SYNC_BRANCH)
        substrate.fetch(branch)
        if not substrate.checkout_or_create(branch):
            logger.info("ledger: branch %s not found on remote, bootstrapping it", branch)
        try:
            ensure_line(self.workspace.ledger_path, line)
        except OSError as exc:
            raise SubstrateUnavailableError("ledger.materialize", str(exc)) from exc

        self._enter(AppendState.STAGE)
        substrate.stage_file(self.workspace.ledger_file)

        self._enter(AppendState.DIFF_CHECK)
        if not substrate.has_staged_changes():
            return AppendOutcome.ALREADY_PRESENT

        self._enter(AppendState.COMMIT)
        substrate.commit(self._commit_message(entry))

        self._enter(AppendState.REBASE)
        if substrate.rebase_onto_remote(branch) is RebaseResult.CONFLICT:
            raise ConflictDetectedError(f"Rebase conflict detected on {branch}")
        if not substrate.has_unpushed_commits(branch):
            # Another writer pushed the same line first.
            return AppendOutcome.ALREADY_PRESENT

        self._enter(AppendState.PUSH)
        if substrate.push(branch) is PushResult.REJECTED:
            raise ConflictDetectedError(f"Push to {branch} rejected by remote")

        return AppendOutcome.PUSHED

    # ── helpers ───────────────────────────────────────────────────────────────

    @property
    def _substrate(self) -> BranchSubstrate:
        assert self.substrate is not None
        return self.substrate

    def _enter(self, state: AppendState) -> None:
        self.trace.append(state)
        logger.debug("ledger: -> %s", state.value)

    def _revert(self) -> None:
        """Return the working tree to a clean state after a failed attempt."""
        try:
            self._substrate.reset_hard()
            self._substrate.clean_working_tree()
        except SubstrateUnavailableError as exc:
            logger.warning("ledger: cleanup after failed attempt incomplete: %s", exc)

    @staticmethod
    def _commit_message(entry: LedgerEntry) -> str:
        return (
            f"ledger: {entry.event_id}\n\n"
            f"Event verified and recorded at {entry.timestamp}\n"
            f"sha256: {entry.content_hash}"
        )
