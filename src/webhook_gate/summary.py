"""Run summary and step outputs for CI runners.

When running inside a GitHub Actions job, the runner exposes two files:

- ``$GITHUB_STEP_SUMMARY``: Markdown appended here is shown on the run page.
- ``$GITHUB_OUTPUT``: ``name=value`` lines become step outputs.

Outside a runner both variables are unset and the functions only log.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


def render_summary(event_id: str, event_hash: str) -> str:
    """Markdown proof table for one accepted event."""
    return (
        "## Webhook Trust Proof\n\n"
        "| Field | Value |\n"
        "| --- | --- |\n"
        f"| Event ID | `{event_id}` |\n"
        f"| SHA-256 Hash | `{event_hash}` |\n\n"
        "This proof uniquely identifies the verified webhook event.\n"
    )


def write_summary(event_id: str, event_hash: str, path: Path | str | None = None) -> bool:
    """Append the proof table to the step summary file.

    Returns:
        True if a summary file was written, False if none is configured.
    """
    target = path or os.getenv("GITHUB_STEP_SUMMARY")
    if not target:
        logger.info("summary: event %s hash %s", event_id, event_hash)
        return False
    with Path(target).open("a", encoding="utf-8") as fh:
        fh.write(render_summary(event_id, event_hash))
    return True


def set_output(name: str, value: str, path: Path | str | None = None) -> bool:
    """Record a step output.

    Multi-line values use the heredoc form with a random delimiter.

    Returns:
        True if an output file was written, False if none is configured.
    """
    target = path or os.getenv("GITHUB_OUTPUT")
    if not target:
        logger.debug("output %s=%s", name, value)
        return False
    with Path(target).open("a", encoding="utf-8") as fh:
        if "\n" in value:
            delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
            fh.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
        else:
            fh.write(f"{name}={value}\n")
    return True
