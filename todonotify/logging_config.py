"""
Centralized logging configuration for todonotify.

Call ``setup_logging()`` once from the entry point (cli/main.py).  Every
other module should just do::

    import logging
    logger = logging.getLogger(__name__)

Logs go to *stderr*; stdout belongs to the rendered notifications.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class _JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(
    *,
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    json_output: bool = False,
) -> None:
    """Configure the root logger on *stderr*.

    Parameters
    ----------
    level:
        Log level name (DEBUG, INFO, WARNING, ...).
        The ``LOG_LEVEL`` env-var wins, then this value, then ``INFO``.
    fmt:
        ``logging.Formatter`` format string for plain-text output.
    json_output:
        Emit one JSON object per record. ``LOG_FORMAT=json`` forces it on.
    """
    resolved_level = (os.getenv("LOG_LEVEL") or level or "INFO").upper()
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        json_output = True

    root = logging.getLogger()
    # Avoid adding duplicate handlers if called more than once.
    if any(getattr(h, "_todonotify", False) for h in root.handlers):
        root.setLevel(resolved_level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler._todonotify = True
    if json_output:
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolved_level)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
