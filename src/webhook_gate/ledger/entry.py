"""Ledger entries and the line-oriented ledger file format.

Line format
-----------
Every accepted event is recorded as one UTF-8 line::

    <RFC3339 timestamp> | <event id> | <64-hex SHA-256 of the normalized event>

for example::

    2026-10-17T09:14:03.512Z | evt_1NqXb2 | 9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08

The ledger is the concatenation of all lines ever pushed to the branch. Lines
are never rewritten or removed; the branch name travels with the entry but is
not part of the line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from webhook_gate.errors import InvalidInputError

_SEPARATOR = " | "

_LINE_RE = re.compile(r"^(?P<timestamp>\S+) \| (?P<event_id>.+) \| (?P<content_hash>[0-9a-f]{64})$")
_HEX64_RE = re.compile(r"^[0-9a-f]{64}$")


def utc_timestamp() -> str:
    """Current UTC time as RFC3339 with millisecond precision and a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LedgerEntry:
    """One immutable ledger record.

    Attributes:
        timestamp: RFC3339 acceptance time.
        event_id: Provider event identifier.
        content_hash: 64-char lowercase SHA-256 hex of the normalized event.
        branch: Ledger branch the entry is destined for.
    """

    timestamp: str
    event_id: str
    content_hash: str
    branch: str

    def __post_init__(self) -> None:
        if not self.event_id or not self.event_id.strip():
            raise InvalidInputError("LedgerEntry: event_id must be a non-empty string.")
        if "\n" in self.event_id or "\r" in self.event_id:
            raise InvalidInputError("LedgerEntry: event_id must not contain line breaks.")
        if not _HEX64_RE.match(self.content_hash):
            raise InvalidInputError(
                f"LedgerEntry: content_hash must be 64 lowercase hex chars, got {self.content_hash!r}."
            )

    def to_line(self) -> str:
        """Serialize as a single newline-terminated ledger line."""
        return f"{self.timestamp}{_SEPARATOR}{self.event_id}{_SEPARATOR}{self.content_hash}\n"


@dataclass(frozen=True)
class ParsedLine:
    """Fields recovered from a ledger line."""

    timestamp: str
    event_id: str
    content_hash: str


def parse_line(line: str) -> ParsedLine | None:
    """Parse one ledger line; return None if it does not match the format."""
    match = _LINE_RE.match(line.rstrip("\r\n"))
    if match is None:
        return None
    return ParsedLine(**match.groupdict())


@dataclass(frozen=True)
class LedgerVerifyResult:
    """Result of :func:`verify_ledger_file`.

    Attributes:
        status: One of:
            - ``"ok"``: every line parses.
            - ``"empty"``: file does not exist or has no lines.
            - ``"corrupt"``: at least one line is malformed.
        line_count: Number of non-empty lines inspected.
        last_event_id: Event id on the last valid line, if any.
        duplicate_event_ids: Event ids that appear on more than one line.
        error_detail: Description of the first malformed line, if any.
    """

    status: Literal["ok", "empty", "corrupt"]
    line_count: int
    last_event_id: str | None
    duplicate_event_ids: tuple[str, ...] = ()
    error_detail: str | None = None


def verify_ledger_file(path: Path | str) -> LedgerVerifyResult:
    """Check every line of a ledger file.

    Duplicated event ids do not make a ledger corrupt (a crash between the
    gate and the append can legitimately re-record an event) but they are
    reported so an operator can audit them.
    """
    path = Path(path)
    if not path.exists():
        return LedgerVerifyResult(status="empty", line_count=0, last_event_id=None)

    lines = [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
    if not lines:
        return LedgerVerifyResult(status="empty", line_count=0, last_event_id=None)

    seen: set[str] = set()
    duplicates: list[str] = []
    last_event_id: str | None = None
    for number, line in enumerate(lines, start=1):
        parsed = parse_line(line)
        if parsed is None:
            return LedgerVerifyResult(
                status="corrupt",
                line_count=len(lines),
                last_event_id=last_event_id,
                duplicate_event_ids=tuple(duplicates),
                error_detail=f"Line {number} is not a valid ledger line: {line[:120]!r}",
            )
        if parsed.event_id in seen and parsed.event_id not in duplicates:
            duplicates.append(parsed.event_id)
        seen.add(parsed.event_id)
        last_event_id = parsed.event_id

    return LedgerVerifyResult(
        status="ok",
        line_count=len(lines),
        last_event_id=last_event_id,
        duplicate_event_ids=tuple(duplicates),
    )
