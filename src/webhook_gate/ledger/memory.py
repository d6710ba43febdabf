"""In-memory branch substrate for exercising the append protocol without git.

:class:`InMemoryRemote` plays the shared remote: a set of branches, each a
list of commits holding a full snapshot of the ledger file. Pushes are
compare-and-swap: a push is rejected when the remote tip moved since the
writer's last sync. Test hooks can force rejections or run another writer
just before a push lands.

:class:`InMemoryBranchSubstrate` plays one writer's local clone. Its working
tree is the real ledger file inside the writer's :class:`Workspace`, so the
protocol's file handling runs unchanged.

Rebase model: when the remote advanced and the local branch has unpushed
commits, the rebase conflicts (two appends at the end of the same file),
unless the remote tip already holds exactly the local content, in which
case the local commits are dropped as already upstream.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from webhook_gate.errors import SubstrateUnavailableError
from webhook_gate.ledger.substrate import PushResult, RebaseResult
from webhook_gate.workspace import Workspace

_UNSET = object()


@dataclass(frozen=True)
class Commit:
    """A commit holding a snapshot of the ledger file (None = file absent)."""

    sha: str
    parent: str | None
    message: str
    content: str | None


class InMemoryRemote:
    """Shared remote with compare-and-swap pushes.

    Attributes:
        branches: Branch name → commit chain, oldest first.
        reject_pushes: Number of upcoming pushes to reject regardless of state.
        push_attempts: Pushes received so far.
        before_push: Optional hook ``(branch) -> None`` called at the start of
            every push, before the compare-and-swap.
    """

    def __init__(self) -> None:
        self.branches: dict[str, list[Commit]] = {}
        self.reject_pushes = 0
        self.push_attempts = 0
        self.before_push: Callable[[str], None] | None = None
        self._lock = threading.RLock()

    def snapshot(self, branch: str) -> list[Commit] | None:
        with self._lock:
            chain = self.branches.get(branch)
            return list(chain) if chain is not None else None

    def content(self, branch: str) -> str:
        """Ledger file content at the branch tip ('' if absent)."""
        chain = self.snapshot(branch)
        if not chain or chain[-1].content is None:
            return ""
        return chain[-1].content

    def lines(self, branch: str) -> list[str]:
        return self.content(branch).splitlines()

    def compare_and_swap(self, branch: str, expected: list[Commit], new_chain: list[Commit]) -> bool:
        """Replace the branch chain only if it still equals ``expected``."""
        with self._lock:
            current = self.branches.get(branch, [])
            if current != expected:
                return False
            self.branches[branch] = list(new_chain)
            return True


class InMemoryBranchSubstrate:
    """One writer's clone of an :class:`InMemoryRemote`.

    Attributes:
        calls: Names of substrate operations in call order.
        identity: ``(name, email)`` set by ``configure_identity``.
    """

    def __init__(self, remote: InMemoryRemote, workspace: Workspace):
        self.remote = remote
        self.workspace = workspace
        self.calls: list[str] = []
        self.identity: tuple[str, str] | None = None
        self._fetched: dict[str, list[Commit] | None] = {}
        self._local: list[Commit] = []
        self._base_len = 0
        self._staged: object = _UNSET

    # ── working tree helpers ──────────────────────────────────────────────────

    def _head_content(self) -> str | None:
        return self._local[-1].content if self._local else None

    def _write_tree(self, content: str | None) -> None:
        path = self.workspace.ledger_path
        if content is None:
            path.unlink(missing_ok=True)
        else:
            path.write_text(content, encoding="utf-8")

    @property
    def pending_commits(self) -> list[Commit]:
        """Local commits not yet on the remote."""
        return self._local[self._base_len :]

    # ── BranchSubstrate ───────────────────────────────────────────────────────

    def configure_identity(self, name: str, email: str) -> None:
        self.calls.append("configure_identity")
        self.identity = (name, email)

    def fetch(self, branch: str) -> bool:
        self.calls.append("fetch")
        chain = self.remote.snapshot(branch)
        self._fetched[branch] = chain
        return chain is not None

    def checkout_or_create(self, branch: str) -> bool:
        self.calls.append("checkout_or_create")
        self._staged = _UNSET
        fetched = self._fetched.get(branch)
        if fetched:
            self._local = list(fetched)
            self._base_len = len(fetched)
            self._write_tree(self._head_content())
            return True
        self._local = []
        self._base_len = 0
        self._write_tree(None)
        return False

    def stage_file(self, relative_path: str) -> None:
        self.calls.append("stage_file")
        path = self.workspace.root / relative_path
        self._staged = path.read_text(encoding="utf-8") if path.exists() else None

    def has_staged_changes(self) -> bool:
        self.calls.append("has_staged_changes")
        return self._staged is not _UNSET and self._staged != self._head_content()

    def commit(self, message: str) -> None:
        self.calls.append("commit")
        if not self.has_staged_changes():
            raise SubstrateUnavailableError("memory.commit", "nothing to commit")
        parent = self._local[-1].sha if self._local else None
        self._local.append(
            Commit(sha=uuid.uuid4().hex[:12], parent=parent, message=message, content=self._staged)
        )
        self._staged = _UNSET

    def rebase_onto_remote(self, branch: str) -> RebaseResult:
        self.calls.append("rebase_onto_remote")
        remote_chain = self.remote.snapshot(branch)
        self._fetched[branch] = remote_chain
        if not remote_chain:
            return RebaseResult.OK

        base = self._local[: self._base_len]
        if remote_chain == base:
            return RebaseResult.OK

        pending = self.pending_commits
        if not pending or remote_chain[-1].content == self._head_content():
            # Fast-forward, or our change is already upstream.
            self._local = list(remote_chain)
            self._base_len = len(remote_chain)
            self._write_tree(self._head_content())
            return RebaseResult.OK

        return RebaseResult.CONFLICT

    def has_unpushed_commits(self, branch: str) -> bool:
        self.calls.append("has_unpushed_commits")
        return bool(self.pending_commits)

    def push(self, branch: str) -> PushResult:
        self.calls.append("push")
        self.remote.push_attempts += 1
        if self.remote.before_push is not None:
            self.remote.before_push(branch)
        if self.remote.reject_pushes > 0:
            self.remote.reject_pushes -= 1
            return PushResult.REJECTED

        if not self.pending_commits:
            return PushResult.OK
        expected = self._local[: self._base_len]
        if not self.remote.compare_and_swap(branch, expected, self._local):
            return PushResult.REJECTED
        self._base_len = len(self._local)
        return PushResult.OK

    def reset_hard(self) -> None:
        self.calls.append("reset_hard")
        self._staged = _UNSET
        self._local = self._local[: self._base_len]
        self._write_tree(self._head_content())

    def clean_working_tree(self) -> None:
        self.calls.append("clean_working_tree")
        if self._head_content() is None:
            self._write_tree(None)
