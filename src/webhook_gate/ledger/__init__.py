"""Ledger package: append-only audit log on a shared versioned branch.

Public surface
--------------
- :class:`LedgerEntry`: one immutable record, one line of text.
- :class:`LedgerAppender`: durable local append + optimistic push.
- :class:`GitBranchSubstrate`: git-backed branch substrate.
- :func:`verify_ledger_file`: check every line of a ledger file.
- :exc:`~webhook_gate.errors.LedgerWriteFailedError`: retries exhausted.

Usage example
-------------
::

    from webhook_gate.ledger import GitBranchSubstrate, LedgerAppender, LedgerEntry

    appender = LedgerAppender(workspace, GitBranchSubstrate(workspace))
    appender.append(
        LedgerEntry(
            timestamp=utc_timestamp(),
            event_id="evt_1",
            content_hash=event_hash,
            branch="webhook-ledger",
        )
    )
"""

from webhook_gate.ledger.entry import (
    LedgerEntry,
    LedgerVerifyResult,
    parse_line,
    utc_timestamp,
    verify_ledger_file,
)
from webhook_gate.ledger.protocol import AppendState, LedgerAppender
from webhook_gate.ledger.substrate import (
    BranchSubstrate,
    GitBranchSubstrate,
    PushResult,
    RebaseResult,
)

__all__ = [
    "AppendState",
    "BranchSubstrate",
    "GitBranchSubstrate",
    "LedgerAppender",
    "LedgerEntry",
    "LedgerVerifyResult",
    "PushResult",
    "RebaseResult",
    "parse_line",
    "utc_timestamp",
    "verify_ledger_file",
]
