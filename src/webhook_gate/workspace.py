"""Explicit workspace handle for one gate invocation.

Every component that touches the filesystem (local marker store, ledger
journal, branch substrate working tree) resolves its paths from a
:class:`Workspace` instead of the process working directory, so several
invocations can run side by side in one test process against isolated
directories.

Layout under ``root``::

    <root>/<ledger_file>               working-tree copy tracked on the ledger branch
    <root>/<state_dir>/<ledger_file>   local durable journal (never cleaned)
    <root>/<marker_dir>/<fingerprint>  local dedupe markers (never cleaned)
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workspace:
    """Filesystem locations used by one invocation.

    Attributes:
        root: Directory holding the ledger working tree (a git checkout in
            shared mode).
        ledger_file: Ledger file name, relative to ``root``.
        marker_dir: Local dedupe marker directory, relative to ``root``.
        state_dir: Directory for the local journal, relative to ``root``.
    """

    root: Path
    ledger_file: str = "ledger.log"
    marker_dir: str = ".webhook-dedupe"
    state_dir: str = ".webhook-gate"

    @classmethod
    def from_settings(cls, root: Path | str, *, ledger_file: str, marker_dir: str) -> Workspace:
        """Build a workspace from configured names, resolving ``root``."""
        return cls(root=Path(root).resolve(), ledger_file=ledger_file, marker_dir=marker_dir)

    @property
    def ledger_path(self) -> Path:
        """Working-tree ledger file, the copy that gets committed."""
        return self.root / self.ledger_file

    @property
    def journal_path(self) -> Path:
        """Local durable journal, appended before any remote work."""
        return self.root / self.state_dir / self.ledger_file

    @property
    def marker_path(self) -> Path:
        """Local dedupe marker directory."""
        return self.root / self.marker_dir

    @property
    def protected_paths(self) -> tuple[str, ...]:
        """Relative paths that working-tree cleanup must never remove."""
        return (self.state_dir, self.marker_dir)

    def prepare(self) -> Workspace:
        """Create the root, journal and marker directories if absent."""
        self.root.mkdir(parents=True, exist_ok=True)
        self.journal_path.parent.mkdir(parents=True, exist_ok=True)
        self.marker_path.mkdir(parents=True, exist_ok=True)
        return self


class use_workspace:
    """
    Context manager scoping a prepared :class:`Workspace`.

    With no ``root`` a temporary directory is created and removed on exit;
    an explicit ``root`` is prepared but left in place.

    Usage:
        with use_workspace() as ws:
            appender = LedgerAppender(ws, substrate, ...)

    Args:
        root: Optional workspace root directory.
        ledger_file: Ledger file name.
        marker_dir: Local marker directory name.
    """

    def __init__(
        self,
        root: Path | str | None = None,
        *,
        ledger_file: str = "ledger.log",
        marker_dir: str = ".webhook-dedupe",
    ):
        self._explicit_root = Path(root) if root is not None else None
        self._ledger_file = ledger_file
        self._marker_dir = marker_dir
        self._temp_root: Path | None = None

    def __enter__(self) -> Workspace:
        """Create (or adopt) the root directory and prepare the layout."""
        if self._explicit_root is None:
            self._temp_root = Path(tempfile.mkdtemp(prefix="webhook-gate-"))
            root = self._temp_root
        else:
            root = self._explicit_root
        workspace = Workspace.from_settings(
            root, ledger_file=self._ledger_file, marker_dir=self._marker_dir
        )
        logger.debug("workspace: prepared %s", workspace.root)
        return workspace.prepare()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Remove the temporary root, if one was created."""
        if self._temp_root is not None:
            shutil.rmtree(self._temp_root, ignore_errors=True)
            self._temp_root = None
        return None
