"""
Logging setup driven by :class:`ledger_sync.config.LoggingSettings`.

Modules log through ``logging.getLogger(__name__)``; this module only
installs a single handler on the ``ledger_sync`` logger so that embedding
applications keep control of the root logger.

Formats:
    simple    - "LEVEL message"
    detailed  - timestamp, logger name, level, message
    json      - one JSON object per line (for log shippers)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from ledger_sync.config import LoggingSettings

PACKAGE_LOGGER = "ledger_sync"

_SIMPLE_FORMAT = "%(levelname)s %(message)s"
_DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True)


def build_formatter(fmt: str) -> logging.Formatter:
    """Return the formatter for a configured format name."""
    if fmt == "json":
        return JsonFormatter()
    if fmt == "simple":
        return logging.Formatter(_SIMPLE_FORMAT)
    return logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)


def configure_logging(settings: LoggingSettings, stream=None) -> logging.Logger:
    """
    Configure the package logger from settings.

    Calling this more than once replaces the handler installed by the
    previous call instead of stacking duplicates.

    Args:
        settings: Level and format to apply.
        stream: Output stream, defaults to stderr.

    Returns:
        The configured ``ledger_sync`` logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_ledger_sync_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(build_formatter(settings.format))
    handler._ledger_sync_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
