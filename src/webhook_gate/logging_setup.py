"""Process-wide logging setup for the CLI and the marker service.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the entry points.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from webhook_gate.config import LoggingSettings

FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False)


def configure_logging(settings: LoggingSettings, *, stream=None) -> logging.Handler:
    """Install a single stderr handler on the ``webhook_gate`` logger.

    Calling it again replaces the previous handler, so repeated CLI
    invocations in one process do not duplicate output.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    if settings.format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(FORMATS.get(settings.format, FORMATS["detailed"])))

    package_logger = logging.getLogger("webhook_gate")
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    return handler
