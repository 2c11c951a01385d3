"""
Structured event logging.

A second sink, separate from the free-text logs, for machine-parseable
events (severity + category + data payload). It is configured from the
process environment, not from the node config:

    STRUCT_LOG_FILE      path of a JSON-lines file sink
    STRUCT_LOG_TCP_ADDR  host:port of a TCP JSON-lines sink
    STRUCT_LOG_LEVEL     minimum level name (default INFO)

With no sink configured, events fall back to the application logger.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from nodekeeper.errors import StructLogConfigError

from .logger import LogStream, PeerContextFilter

ENV_FILE = "STRUCT_LOG_FILE"
ENV_TCP_ADDR = "STRUCT_LOG_TCP_ADDR"
ENV_LEVEL = "STRUCT_LOG_LEVEL"

STRUCT_LOGGER_NAME = "nodekeeper.struct"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


@dataclass
class StructuredLogEntry:
    """One structured event."""
    name: str
    category: str
    level: int = logging.INFO
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def with_data(self, key: str, value: Any) -> "StructuredLogEntry":
        self.data[key] = value
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": logging.getLevelName(self.level),
            "name": self.name,
            "category": self.category,
            "data": self.data,
        }


class StructuredJSONFormatter(logging.Formatter):
    """Render the entry attached to a record as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Optional[StructuredLogEntry] = getattr(record, "struct_entry", None)
        if entry is None:
            payload = {"level": record.levelname, "message": record.getMessage()}
        else:
            payload = entry.to_dict()
        peer_id = getattr(record, "peer_id", None)
        if peer_id:
            payload["peer_id"] = peer_id
        return json.dumps(payload, default=str)


class TCPJSONHandler(logging.handlers.SocketHandler):
    """SocketHandler that ships newline-delimited JSON instead of pickles."""

    def makePickle(self, record):
        return (self.format(record) + "\n").encode("utf-8")


@dataclass
class StructLogger:
    """
    Handle returned by init_struct_log_from_env().

    `send()` is the only call site API; `close()` detaches the sinks.
    """
    logger: logging.Logger
    handlers: List[logging.Handler] = field(default_factory=list)
    fallback: Optional[logging.Logger] = None

    def send(self, entry: StructuredLogEntry) -> None:
        if self.fallback is not None:
            self.fallback.log(
                entry.level,
                "%s/%s %s",
                entry.category,
                entry.name,
                json.dumps(entry.data, default=str, sort_keys=True),
                extra={"struct_category": entry.category, "struct_name": entry.name},
            )
            return
        self.logger.log(entry.level, entry.name, extra={"struct_entry": entry})

    def close(self) -> None:
        for handler in self.handlers:
            self.logger.removeHandler(handler)
            handler.flush()
            handler.close()
        self.handlers = []


def parse_tcp_addr(raw: str) -> Tuple[str, int]:
    """Parse 'host:port' (IPv6 hosts in brackets)."""
    raw = raw.strip()
    host, sep, port_str = raw.rpartition(":")
    if not sep or not host:
        raise StructLogConfigError(f"{ENV_TCP_ADDR}={raw!r}: expected host:port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_str)
    except ValueError:
        raise StructLogConfigError(f"{ENV_TCP_ADDR}={raw!r}: port {port_str!r} is not a number") from None
    if not 0 < port < 65536:
        raise StructLogConfigError(f"{ENV_TCP_ADDR}={raw!r}: port {port} out of range")
    return host, port


def parse_level(raw: str) -> int:
    try:
        return _LEVELS[raw.strip().upper()]
    except KeyError:
        raise StructLogConfigError(
            f"{ENV_LEVEL}={raw!r}: expected one of {', '.join(sorted(_LEVELS))}"
        ) from None


def init_struct_log_from_env(
    environ: Mapping[str, str],
    fallback_logger: logging.Logger,
) -> StructLogger:
    """
    Build the structured event sink from environment variables.

    Args:
        environ: Process environment (os.environ in production)
        fallback_logger: Application logger used when no sink is configured

    Raises:
        StructLogConfigError: If a variable is present but malformed
    """
    level = logging.INFO
    if environ.get(ENV_LEVEL):
        level = parse_level(environ[ENV_LEVEL])

    handlers: List[logging.Handler] = []
    formatter = StructuredJSONFormatter()

    file_path = environ.get(ENV_FILE)
    if file_path is not None:
        if not file_path.strip():
            raise StructLogConfigError(f"{ENV_FILE} is set but empty")
        path = Path(file_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        except OSError as e:
            raise StructLogConfigError(f"{ENV_FILE}={file_path!r}: {e}") from e
        handlers.append(file_handler)

    tcp_addr = environ.get(ENV_TCP_ADDR)
    if tcp_addr is not None:
        host, port = parse_tcp_addr(tcp_addr)
        handlers.append(TCPJSONHandler(host, port))

    logger = logging.getLogger(STRUCT_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    if not handlers:
        fallback = fallback_logger.getChild(LogStream.EVENTS)
        fallback.setLevel(level)
        return StructLogger(logger=logger, fallback=fallback)

    context_filter = PeerContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        logger.addHandler(handler)

    return StructLogger(logger=logger, handlers=handlers)
