"""tradebench.core.logging

Standard library logging, configured once by the entry point.

Library modules never configure handlers. They log snake_case event names
with structured ``extra`` fields; this module decides how those render.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from tradebench.core.config import LoggingConfig

# Attributes every LogRecord carries; anything else came in via ``extra``.
_RESERVED = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED}


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(_extras(record))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, sort_keys=True)


class KeyValueFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extras(record)
        if not extras:
            return base
        kv = " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
        return f"{base} {kv}"


def configure_logging(cfg: LoggingConfig | None = None, *, stream=None) -> logging.Logger:
    cfg = cfg or LoggingConfig()
    root = logging.getLogger("tradebench")

    handler = logging.StreamHandler(stream or sys.stderr)
    if cfg.json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(KeyValueFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    root.handlers[:] = [handler]
    root.setLevel(cfg.level.upper())
    root.propagate = False
    return root
