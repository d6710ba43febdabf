"""
Tests for the optimistic-concurrency append protocol.

All tests run against :class:`InMemoryRemote`, whose pushes are
compare-and-swap, so races between writers can be staged deterministically
through its ``before_push`` hook and ``reject_pushes`` counter.

Test organisation
-----------------
- :class:`TestHappyPath`        bootstrap, plain append, state trace.
- :class:`TestIdempotentAppend` redundant appends commit nothing.
- :class:`TestRetry`            convergence, exhaustion, backoff, cleanup.
- :class:`TestConcurrentWriters` two writers racing on one branch.
- :class:`TestLocalOnly`        journal-only mode.
"""

from __future__ import annotations

import pytest

from webhook_gate.errors import LedgerWriteFailedError, SubstrateUnavailableError
from webhook_gate.ledger import AppendState, LedgerAppender, LedgerEntry, RebaseResult
from webhook_gate.ledger.journal import read_lines
from webhook_gate.ledger.memory import InMemoryBranchSubstrate
from webhook_gate.types import AppendOutcome, ExecutionMode

BRANCH = "webhook-ledger"


def _entry(event_id: str = "evt_1", content_hash: str = "a" * 64) -> LedgerEntry:
    return LedgerEntry(
        timestamp="2026-10-17T09:14:03.512Z",
        event_id=event_id,
        content_hash=content_hash,
        branch=BRANCH,
    )


@pytest.fixture
def appender(workspace, substrate, sleeps) -> LedgerAppender:
    return LedgerAppender(workspace, substrate, max_attempts=3, backoff_base=1.0, sleep=sleeps.append)


# ── TestHappyPath ─────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestHappyPath:
    def test_bootstrap_creates_branch_with_exactly_one_line(self, appender, remote):
        entry = _entry()

        outcome = appender.append(entry)

        assert outcome is AppendOutcome.PUSHED
        assert remote.lines(BRANCH) == [entry.to_line().rstrip("\n")]
        assert len(remote.snapshot(BRANCH)) == 1

    def test_appends_to_existing_branch(self, appender, remote):
        appender.append(_entry("evt_1"))
        appender.append(_entry("evt_2"))

        assert [line.split(" | ")[1] for line in remote.lines(BRANCH)] == ["evt_1", "evt_2"]

    def test_journal_written_before_remote(self, appender, workspace):
        appender.append(_entry())

        assert read_lines(workspace.journal_path) == [_entry().to_line().rstrip("\n")]

    def test_state_trace_for_clean_push(self, appender):
        appender.append(_entry())

        assert appender.trace == [
            AppendState.INIT,
            AppendState.ESTABLISH_IDENTITY,
            AppendState.SYNC_BRANCH,
            AppendState.STAGE,
            AppendState.DIFF_CHECK,
            AppendState.COMMIT,
            AppendState.REBASE,
            AppendState.PUSH,
            AppendState.DONE,
        ]

    def test_commit_identity_and_message(self, appender, substrate, remote):
        appender.append(_entry())

        assert substrate.identity == (appender.committer_name, appender.committer_email)
        message = remote.snapshot(BRANCH)[-1].message
        assert message.startswith("ledger: evt_1\n\n")
        assert "sha256: " + "a" * 64 in message

    def test_explicit_branch_overrides_entry_branch(self, appender, remote):
        appender.append(_entry(), branch="audit")

        assert remote.lines("audit")
        assert remote.snapshot(BRANCH) is None

    def test_shared_mode_requires_substrate(self, workspace):
        with pytest.raises(ValueError):
            LedgerAppender(workspace, None, mode=ExecutionMode.SHARED)


# ── TestIdempotentAppend ──────────────────────────────────────────────────────


@pytest.mark.unit
class TestIdempotentAppend:
    def test_redundant_append_commits_nothing(self, appender, remote):
        entry = _entry()
        appender.append(entry)
        commits_before = remote.snapshot(BRANCH)

        outcome = appender.append(entry)

        assert outcome is AppendOutcome.ALREADY_PRESENT
        assert AppendState.COMMIT not in appender.trace
        assert remote.snapshot(BRANCH) == commits_before
        assert len(remote.lines(BRANCH)) == 1


# ── TestRetry ─────────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestRetry:
    @pytest.mark.parametrize("rejections", [1, 2])
    def test_converges_after_rejections(self, appender, remote, sleeps, rejections):
        remote.reject_pushes = rejections

        outcome = appender.append(_entry())

        assert outcome is AppendOutcome.PUSHED
        assert len(remote.lines(BRANCH)) == 1
        assert remote.push_attempts == rejections + 1
        assert appender.trace.count(AppendState.RETRY) == rejections

    def test_backoff_doubles_and_skips_final_sleep(self, appender, remote, sleeps):
        remote.reject_pushes = 10

        with pytest.raises(LedgerWriteFailedError):
            appender.append(_entry())

        assert sleeps == [1.0, 2.0]

    def test_exhaustion_after_exactly_max_attempts(self, appender, remote, workspace):
        remote.reject_pushes = 10
        entry = _entry()

        with pytest.raises(LedgerWriteFailedError) as exc_info:
            appender.append(entry)

        err = exc_info.value
        assert err.event_id == "evt_1"
        assert err.attempts == 3
        assert "rejected" in str(err.cause)
        assert remote.push_attempts == 3
        assert appender.trace[-1] is AppendState.FAILED
        # Remote untouched, journal holds the entry.
        assert remote.snapshot(BRANCH) is None
        assert read_lines(workspace.journal_path) == [entry.to_line().rstrip("\n")]

    def test_failed_attempt_resets_and_cleans(self, appender, remote, substrate, workspace):
        remote.reject_pushes = 1

        appender.append(_entry())

        first_reset = substrate.calls.index("reset_hard")
        assert substrate.calls[first_reset + 1] == "clean_working_tree"
        assert substrate.pending_commits == []

    def test_identity_configured_once(self, appender, remote, substrate):
        remote.reject_pushes = 2

        appender.append(_entry())

        assert substrate.calls.count("configure_identity") == 1

    def test_rebase_conflict_is_retried(self, workspace, remote, sleeps):
        class ConflictOnce(InMemoryBranchSubstrate):
            conflicts = 1

            def rebase_onto_remote(self, branch):
                if self.conflicts:
                    self.conflicts -= 1
                    self.calls.append("rebase_onto_remote")
                    return RebaseResult.CONFLICT
                return super().rebase_onto_remote(branch)

        appender = LedgerAppender(workspace, ConflictOnce(remote, workspace), sleep=sleeps.append)

        assert appender.append(_entry()) is AppendOutcome.PUSHED
        assert sleeps == [1.0]
        assert len(remote.lines(BRANCH)) == 1

    def test_substrate_failure_is_retried(self, workspace, remote, sleeps):
        class FlakyFetch(InMemoryBranchSubstrate):
            failures = 1

            def fetch(self, branch):
                if self.failures:
                    self.failures -= 1
                    raise SubstrateUnavailableError("git.fetch", "network down")
                return super().fetch(branch)

        appender = LedgerAppender(workspace, FlakyFetch(remote, workspace), sleep=sleeps.append)

        assert appender.append(_entry()) is AppendOutcome.PUSHED
        assert appender.trace.count(AppendState.RETRY) == 1

    def test_single_attempt_budget_never_sleeps(self, workspace, substrate, remote, sleeps):
        remote.reject_pushes = 1
        appender = LedgerAppender(workspace, substrate, max_attempts=1, sleep=sleeps.append)

        with pytest.raises(LedgerWriteFailedError) as exc_info:
            appender.append(_entry())

        assert exc_info.value.attempts == 1
        assert sleeps == []


# ── TestConcurrentWriters ─────────────────────────────────────────────────────


@pytest.mark.unit
class TestConcurrentWriters:
    def _racing_pair(self, remote, make_workspace, sleeps):
        ws_a, ws_b = make_workspace("runner-a"), make_workspace("runner-b")
        writer_a = LedgerAppender(ws_a, InMemoryBranchSubstrate(remote, ws_a), sleep=sleeps.append)
        writer_b = LedgerAppender(ws_b, InMemoryBranchSubstrate(remote, ws_b), sleep=sleeps.append)
        return writer_a, writer_b

    def test_same_entry_from_two_writers_yields_one_line(self, remote, make_workspace, sleeps):
        """B pushes the same line while A is mid-push; A converges to a no-op."""
        writer_a, writer_b = self._racing_pair(remote, make_workspace, sleeps)
        entry = _entry()

        def b_wins(branch):
            remote.before_push = None
            assert writer_b.append(entry) is AppendOutcome.PUSHED

        remote.before_push = b_wins

        assert writer_a.append(entry) is AppendOutcome.ALREADY_PRESENT
        assert remote.lines(BRANCH) == [entry.to_line().rstrip("\n")]

    def test_same_entry_pushed_during_rebase_is_absorbed(self, remote, make_workspace, sleeps):
        """B lands the same line just before A rebases; A has nothing left to push."""
        ws_a, ws_b = make_workspace("runner-a"), make_workspace("runner-b")
        writer_b = LedgerAppender(ws_b, InMemoryBranchSubstrate(remote, ws_b), sleep=sleeps.append)
        entry = _entry()

        class OtherWriterFirst(InMemoryBranchSubstrate):
            def rebase_onto_remote(self, branch):
                writer_b.append(entry)
                return super().rebase_onto_remote(branch)

        substrate_a = OtherWriterFirst(remote, ws_a)
        writer_a = LedgerAppender(ws_a, substrate_a, sleep=sleeps.append)

        assert writer_a.append(entry) is AppendOutcome.ALREADY_PRESENT
        assert AppendState.PUSH not in writer_a.trace
        assert "push" not in substrate_a.calls
        assert remote.lines(BRANCH) == [entry.to_line().rstrip("\n")]
        assert sleeps == []

    def test_different_entries_both_land(self, remote, make_workspace, sleeps):
        writer_a, writer_b = self._racing_pair(remote, make_workspace, sleeps)

        def b_wins(branch):
            remote.before_push = None
            writer_b.append(_entry("evt_b", "b" * 64))

        remote.before_push = b_wins

        assert writer_a.append(_entry("evt_a")) is AppendOutcome.PUSHED
        assert [line.split(" | ")[1] for line in remote.lines(BRANCH)] == ["evt_b", "evt_a"]
        assert sleeps == [1.0]

    def test_history_is_append_only(self, remote, make_workspace, sleeps):
        writer_a, writer_b = self._racing_pair(remote, make_workspace, sleeps)
        writer_a.append(_entry("evt_1"))
        before = remote.content(BRANCH)

        writer_b.append(_entry("evt_2", "b" * 64))

        assert remote.content(BRANCH).startswith(before)


# ── TestLocalOnly ─────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestLocalOnly:
    def test_local_only_writes_journal_and_never_touches_remote(self, workspace, remote):
        appender = LedgerAppender(workspace, None, mode=ExecutionMode.LOCAL_ONLY)

        outcome = appender.append(_entry())

        assert outcome is AppendOutcome.LOCAL_ONLY
        assert read_lines(workspace.journal_path) == [_entry().to_line().rstrip("\n")]
        assert remote.branches == {}
        assert appender.trace == [AppendState.INIT, AppendState.DONE]

    def test_local_journal_failure_raises(self, tmp_path):
        from webhook_gate.workspace import Workspace

        blocker = tmp_path / "blocker"
        blocker.write_text("")
        workspace = Workspace(root=blocker)
        appender = LedgerAppender(workspace, None, mode=ExecutionMode.LOCAL_ONLY)

        with pytest.raises(LedgerWriteFailedError) as exc_info:
            appender.append(_entry())
        assert exc_info.value.attempts == 0
