"""Branch substrate: the versioned remote log the ledger converges into.

:class:`BranchSubstrate` is the boundary the append protocol drives. The
production implementation, :class:`GitBranchSubstrate`, shells out to ``git``
inside the workspace root; :mod:`webhook_gate.ledger.memory` provides an
in-memory implementation for tests.

Error contract
--------------
- Expected race outcomes are *return values*: ``fetch`` returns False for a
  branch that does not exist yet, ``rebase_onto_remote`` returns
  :attr:`RebaseResult.CONFLICT`, ``push`` returns :attr:`PushResult.REJECTED`.
- Anything else (git missing, network failure, not a repository) raises
  :exc:`~webhook_gate.errors.SubstrateUnavailableError`, which the protocol
  treats as retryable.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Protocol

from webhook_gate.errors import SubstrateUnavailableError
from webhook_gate.workspace import Workspace

logger = logging.getLogger(__name__)


class RebaseResult(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"


class PushResult(str, Enum):
    OK = "ok"
    REJECTED = "rejected"


class BranchSubstrate(Protocol):
    """Operations the append protocol needs from a versioned remote log."""

    def configure_identity(self, name: str, email: str) -> None: ...

    def fetch(self, branch: str) -> bool: ...

    def checkout_or_create(self, branch: str) -> bool: ...

    def stage_file(self, relative_path: str) -> None: ...

    def has_staged_changes(self) -> bool: ...

    def commit(self, message: str) -> None: ...

    def rebase_onto_remote(self, branch: str) -> RebaseResult: ...

    def has_unpushed_commits(self, branch: str) -> bool: ...

    def push(self, branch: str) -> PushResult: ...

    def reset_hard(self) -> None: ...

    def clean_working_tree(self) -> None: ...


# Substrings git prints when a push loses the race to another writer.
_PUSH_REJECTION_MARKERS = ("[rejected]", "non-fast-forward", "fetch first", "stale info")
# Substring git prints when the requested branch is absent on the remote.
_MISSING_REF_MARKER = "couldn't find remote ref"


class GitBranchSubstrate:
    """:class:`BranchSubstrate` backed by the ``git`` command line.

    Args:
        workspace: Workspace whose root is a git working tree with ``remote``
            configured.
        remote: Remote name, ``origin`` by default.
        git: Git executable.
        runner: ``subprocess.run`` compatible callable (tests inject a fake).
    """

    def __init__(
        self,
        workspace: Workspace,
        remote: str = "origin",
        git: str = "git",
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.workspace = workspace
        self.remote = remote
        self.git = git
        self.runner = runner
        self._branch: str | None = None

    # ── process plumbing ──────────────────────────────────────────────────────

    def _run(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess:
        """Run ``git <args>`` in the workspace root.

        Raises:
            SubstrateUnavailableError: If git cannot be executed, or if
                ``check`` is set and git exits non-zero.
        """
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        try:
            result = self.runner(
                [self.git, *args],
                cwd=self.workspace.root,
                capture_output=True,
                text=True,
                env=env,
            )
        except OSError as exc:
            raise SubstrateUnavailableError(f"git.{args[0]}", str(exc)) from exc

        logger.debug("git %s -> %s", " ".join(args), result.returncode)
        if check and result.returncode != 0:
            raise SubstrateUnavailableError(
                f"git.{args[0]}", (result.stderr or result.stdout or "").strip()
            )
        return result

    def _remote_ref(self, branch: str) -> str:
        return f"refs/remotes/{self.remote}/{branch}"

    def _has_remote_ref(self, branch: str) -> bool:
        result = self._run(["rev-parse", "--verify", "--quiet", self._remote_ref(branch)], check=False)
        return result.returncode == 0

    # ── BranchSubstrate ───────────────────────────────────────────────────────

    def configure_identity(self, name: str, email: str) -> None:
        self._run(["config", "user.name", name])
        self._run(["config", "user.email", email])

    def fetch(self, branch: str) -> bool:
        """Fetch the branch tip into its remote-tracking ref.

        Returns:
            False if the branch does not exist on the remote yet.
        """
        refspec = f"+refs/heads/{branch}:{self._remote_ref(branch)}"
        result = self._run(["fetch", self.remote, refspec], check=False)
        if result.returncode == 0:
            return True
        if _MISSING_REF_MARKER in (result.stderr or ""):
            return False
        raise SubstrateUnavailableError("git.fetch", (result.stderr or "").strip())

    def checkout_or_create(self, branch: str) -> bool:
        """Check out ``branch`` at its remote tip, or bootstrap it as an orphan.

        Returns:
            True if the branch tracks an existing remote branch, False if a
            fresh, empty-history branch was created.
        """
        self._branch = branch
        if self._has_remote_ref(branch):
            self._run(["checkout", "--force", "-B", branch, self._remote_ref(branch)])
            return True

        # Leave the branch first so a stale local copy can be deleted.
        self._run(["checkout", "--force", "--detach"], check=False)
        self._run(["branch", "-D", branch], check=False)
        self._run(["checkout", "--orphan", branch])
        self._run(["rm", "-rf", "--quiet", "--ignore-unmatch", "."], check=False)
        return False

    def stage_file(self, relative_path: str) -> None:
        self._run(["add", "--", relative_path])

    def has_staged_changes(self) -> bool:
        result = self._run(["diff", "--cached", "--quiet"], check=False)
        if result.returncode == 0:
            return False
        if result.returncode == 1:
            return True
        raise SubstrateUnavailableError("git.diff", (result.stderr or "").strip())

    def commit(self, message: str) -> None:
        self._run(["commit", "--quiet", "-m", message])

    def rebase_onto_remote(self, branch: str) -> RebaseResult:
        """Replay local commits on top of the latest remote tip.

        A branch that still does not exist remotely has nothing to replay
        onto. A conflicting rebase is aborted before returning.
        """
        if not self.fetch(branch):
            return RebaseResult.OK
        result = self._run(["rebase", self._remote_ref(branch)], check=False)
        if result.returncode == 0:
            return RebaseResult.OK
        logger.debug("git rebase failed: %s", (result.stderr or result.stdout or "").strip())
        self._run(["rebase", "--abort"], check=False)
        return RebaseResult.CONFLICT

    def has_unpushed_commits(self, branch: str) -> bool:
        """True if HEAD holds commits the remote branch does not.

        A rebase drops a local commit whose change is already upstream, which
        leaves nothing to push.
        """
        if not self._has_remote_ref(branch):
            return True
        result = self._run(["rev-list", "--count", f"{self._remote_ref(branch)}..HEAD"])
        return int(result.stdout.strip() or "0") > 0

    def push(self, branch: str) -> PushResult:
        result = self._run(["push", self.remote, f"HEAD:refs/heads/{branch}"], check=False)
        if result.returncode == 0:
            return PushResult.OK
        stderr = result.stderr or ""
        if any(marker in stderr for marker in _PUSH_REJECTION_MARKERS):
            return PushResult.REJECTED
        raise SubstrateUnavailableError("git.push", stderr.strip())

    def reset_hard(self) -> None:
        """Drop staged changes, an in-progress rebase and unpushed commits."""
        self._run(["rebase", "--abort"], check=False)
        if self._branch and self._has_remote_ref(self._branch):
            self._run(["reset", "--hard", self._remote_ref(self._branch)], check=False)
        else:
            # Branch not on the remote yet: nothing upstream to reset to.
            self._run(["reset", "--hard"], check=False)
            self._run(["rm", "-rf", "--cached", "--quiet", "--ignore-unmatch", "."], check=False)

    def clean_working_tree(self) -> None:
        args = ["clean", "-fd"]
        for protected in self.workspace.protected_paths:
            args.extend(["-e", protected])
        self._run(args, check=False)
