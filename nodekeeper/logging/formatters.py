"""
Log formatters for the unstructured sink.

- JSONFormatter: one JSON object per line (rotating file, json console)
- ConsoleFormatter: aligned, optionally colored lines for operators

Both render the peer_id the record was emitted for, so the interleaved
output of several metrics threads can be told apart.
"""

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Attributes every LogRecord carries; anything else came in through `extra=`.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "peer_id"}


def record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the user-supplied `extra=` fields of a record."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith('_')
    }


def _exception_payload(exc_info) -> Optional[Dict[str, Any]]:
    if not exc_info or exc_info[0] is None:
        return None
    exc_type, exc_value, exc_tb = exc_info
    return {
        "type": exc_type.__name__,
        "message": str(exc_value),
        "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record:

        {"timestamp": "...+00:00", "level": "INFO", "logger": "nodekeeper.metrics",
         "thread": "metrics-dump-A", "peer_id": "A", "message": "Metrics task started",
         "extra": {"path": "data/metrics/A.metrics"}}

    WARNING and above also carry the source location.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "peer_id": getattr(record, 'peer_id', None),
            "message": record.getMessage(),
        }

        extra = record_extras(record)
        if extra:
            payload["extra"] = extra

        exception = _exception_payload(record.exc_info)
        if exception is not None:
            payload["exception"] = exception

        if record.levelno >= logging.WARNING:
            payload["source"] = f"{record.pathname}:{record.lineno} ({record.funcName})"

        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    [2026-01-19 10:30:45] WARNING  METRICS      [peer:A] Metrics dump failed: ...
    """

    _RESET = '\033[0m'
    _LEVEL_COLORS = {
        logging.DEBUG: '\033[2m',        # dim
        logging.INFO: '\033[32m',        # green
        logging.WARNING: '\033[33m',     # yellow
        logging.ERROR: '\033[31m',       # red
        logging.CRITICAL: '\033[1;31m',  # bold red
    }

    def __init__(self, use_colors: bool = True):
        super().__init__(datefmt='%Y-%m-%d %H:%M:%S')
        self.use_colors = use_colors

    def _level(self, record: logging.LogRecord) -> str:
        text = f"{record.levelname:8}"
        color = self._LEVEL_COLORS.get(record.levelno)
        if not self.use_colors or color is None:
            return text
        return f"{color}{text}{self._RESET}"

    def format(self, record: logging.LogRecord) -> str:
        # Stream name is the last dotted component: nodekeeper.metrics -> METRICS
        stream = record.name.rsplit('.', 1)[-1].upper()
        peer_id = getattr(record, 'peer_id', None)
        peer = f" [peer:{peer_id}]" if peer_id else ""

        line = (
            f"[{self.formatTime(record, self.datefmt)}] {self._level(record)} "
            f"[{stream:12}]{peer} {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line
