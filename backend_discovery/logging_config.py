"""Log output for the daemon: one JSON object per line, or plain text with key=value context."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from .config import BackendConfig, LoggingConfig

# Context attached through ``extra=``: which object a line is about, then pass statistics.
OBJECT_FIELDS = ("backend", "backend_type", "namespace", "upstream", "action")
PASS_FIELDS = ("elapsed_seconds", "total_services", "filtered")

_QUIET_LOGGERS = ("urllib3", "requests")


def _context(record: logging.LogRecord) -> dict[str, object]:
    fields = {}
    for key in OBJECT_FIELDS + PASS_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            fields[key] = value
    return fields


class BackendFilter(logging.Filter):
    """Stamps the mirrored backend onto records that do not name one."""

    def __init__(self, backend: BackendConfig):
        super().__init__()
        self._name = backend.name
        self._type = backend.type

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "backend", None) is None:
            record.backend = self._name
        if getattr(record, "backend_type", None) is None:
            record.backend_type = self._type
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the context fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Readable lines for a terminal; context follows the message as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = _context(record)
        if context:
            line += " " + " ".join(f"{key}={value}" for key, value in context.items())
        return line


def configure_logging(config: LoggingConfig, backend: BackendConfig | None = None) -> None:
    """Replace the root handlers with a single stderr handler."""
    level = logging.getLevelName(config.level.upper())
    root = logging.getLogger()
    root.setLevel(level if isinstance(level, int) else logging.INFO)

    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if config.format == "json" else TextFormatter())
    if backend is not None:
        handler.addFilter(BackendFilter(backend))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not isinstance(level, int):
        logging.getLogger(__name__).warning("Unknown log level %r, using INFO", config.level)
