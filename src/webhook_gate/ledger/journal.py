"""Local ledger file primitives.

Two writers use these helpers:

- the **journal** (``Workspace.journal_path``): every entry is appended here
  before any remote work, under an exclusive POSIX lock, and flushed to disk.
  It survives retries and working-tree cleanup, so an entry is never lost
  even when the push ultimately fails.
- the **working-tree ledger** (``Workspace.ledger_path``): after each sync the
  entry line is materialized into the checked-out copy, once.

Platform note: ``fcntl`` is POSIX-only (Darwin + Linux).
"""

from __future__ import annotations

import fcntl
import os
from pathlib import Path


def append_line_locked(path: Path, line: str) -> None:
    """Append ``line`` (newline-terminated) to ``path`` under an exclusive lock.

    Creates the parent directories and the file if needed. The write is
    flushed and fsynced before the lock is released.

    Raises:
        OSError: If directory creation, open, write or fsync fails.
    """
    if not line.endswith("\n"):
        line += "\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fcntl.flock(fh, fcntl.LOCK_EX)
        try:
            fh.write(line)
            fh.flush()
            os.fsync(fh.fileno())
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)


def read_lines(path: Path) -> list[str]:
    """Return the file's lines without terminators; an absent file has none."""
    if not path.exists():
        return []
    return path.read_text(encoding="utf-8").splitlines()


def ensure_line(path: Path, line: str) -> bool:
    """Append ``line`` to ``path`` unless an identical line is already there.

    A file missing its final newline gets one before the append, so lines are
    never glued together.

    Returns:
        True if the line was appended, False if it was already present.
    """
    text = line.rstrip("\n")
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    if text in existing.splitlines():
        return False
    prefix = "\n" if existing and not existing.endswith("\n") else ""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(f"{prefix}{text}\n")
    return True
