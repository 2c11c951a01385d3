"""
Core logging module: unstructured sink setup and per-peer log context.

Architecture:
- One application logger ("nodekeeper") returned inside a LoggerHandle;
  components get it passed in and derive stream children from it
- Optional background flusher (QueueHandler -> bounded queue -> QueueListener)
- Human-readable console output, optional rotating JSON file
- peer_id context injected into every record from a ContextVar
"""

from __future__ import annotations

import copy
import logging
import logging.handlers
import queue
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from .formatters import ConsoleFormatter, JSONFormatter

if TYPE_CHECKING:
    from nodekeeper.config.schema import LoggerConfig

ROOT_LOGGER_NAME = "nodekeeper"
SILENT_LOGGER_NAME = "nodekeeper.silent"

# Network identity the current thread is working for (thread-local by default)
_peer_id: ContextVar[Optional[str]] = ContextVar('peer_id', default=None)


# ============================================================================
# LOG STREAM DEFINITIONS
# ============================================================================

class LogStream:
    """Log stream identifiers."""
    SYSTEM = "system"           # Startup, shutdown, orchestration
    CONFIG = "config"           # Config load and validation
    CRASH = "crash"             # Crash handler reports
    METRICS = "metrics"         # Metrics dump tasks
    RUNTIME = "runtime"         # Environment setup, runtime handle
    EVENTS = "events"           # Structured events without a dedicated sink


# ============================================================================
# PEER CONTEXT
# ============================================================================

def get_peer_id() -> Optional[str]:
    """Get the network identity bound to the current context."""
    return _peer_id.get()


class LogContext:
    """
    Context manager binding a network identity to log records.

    Usage:
        with LogContext("validator-0"):
            logger.info("Dumping metrics")  # record carries peer_id
    """

    def __init__(self, peer_id: Optional[str]):
        self.peer_id = peer_id
        self._token = None

    def __enter__(self):
        self._token = _peer_id.set(self.peer_id)
        return self.peer_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _peer_id.reset(self._token)


class PeerContextFilter(logging.Filter):
    """Inject the context peer_id into log records."""

    def filter(self, record):
        if not hasattr(record, 'peer_id'):
            record.peer_id = get_peer_id()
        return True


# ============================================================================
# ASYNC FLUSHER
# ============================================================================

class BoundedQueueHandler(logging.handlers.QueueHandler):
    """
    QueueHandler over a bounded queue that drops records when full.

    Emitting threads never block on a slow sink; the drop count is exposed
    through LoggerHandle.dropped.
    """

    def __init__(self, q: queue.Queue):
        super().__init__(q)
        self.dropped = 0
        self._drop_lock = threading.Lock()

    def prepare(self, record):
        # Same process: keep exc_info, only freeze the message.
        record = copy.copy(record)
        record.message = record.getMessage()
        record.msg = record.message
        record.args = None
        return record

    def enqueue(self, record):
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._drop_lock:
                self.dropped += 1


class FlusherListener(logging.handlers.QueueListener):
    """QueueListener whose stop sentinel waits for room in a full queue."""

    def enqueue_sentinel(self):
        self.queue.put(self._sentinel)


# ============================================================================
# LOGGER SETUP
# ============================================================================

@dataclass
class LoggerHandle:
    """Result of setup_logging(); owns every handler it installed."""
    logger: logging.Logger
    handlers: List[logging.Handler] = field(default_factory=list)
    queue_handler: Optional[BoundedQueueHandler] = None
    listener: Optional[FlusherListener] = None
    _closed: bool = False

    @property
    def dropped(self) -> int:
        return self.queue_handler.dropped if self.queue_handler else 0

    def get_logger(self, stream: str) -> logging.Logger:
        return self.logger.getChild(stream)

    def shutdown(self) -> None:
        """Flush pending records, stop the flusher and detach handlers."""
        if self._closed:
            return
        self._closed = True

        if self.listener is not None:
            self.listener.stop()
        if self.queue_handler is not None:
            self.logger.removeHandler(self.queue_handler)
            self.queue_handler.close()

        for handler in self.handlers:
            self.logger.removeHandler(handler)
            handler.flush()
            handler.close()


def setup_logging(cfg: "LoggerConfig", logger_name: str = ROOT_LOGGER_NAME) -> LoggerHandle:
    """
    Initialize the unstructured logging sink.

    Args:
        cfg: LoggerConfig section of the node config
        logger_name: Application logger to configure

    Returns:
        LoggerHandle whose `logger` is passed to every component
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, cfg.level.value))
    logger.propagate = False

    # Remove existing handlers
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    handlers: List[logging.Handler] = []

    if cfg.console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(JSONFormatter() if cfg.json_logs else ConsoleFormatter())
        handlers.append(console_handler)

    if cfg.log_dir is not None:
        cfg.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            cfg.log_dir / "node.log",
            maxBytes=cfg.max_bytes,
            backupCount=cfg.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    context_filter = PeerContextFilter()

    if cfg.is_async:
        q: queue.Queue = queue.Queue(maxsize=cfg.chan_size)
        queue_handler = BoundedQueueHandler(q)
        queue_handler.addFilter(context_filter)
        listener = FlusherListener(q, *handlers, respect_handler_level=True)
        listener.start()
        logger.addHandler(queue_handler)
        handle = LoggerHandle(logger=logger, handlers=handlers,
                              queue_handler=queue_handler, listener=listener)
    else:
        for handler in handlers:
            handler.addFilter(context_filter)
            logger.addHandler(handler)
        handle = LoggerHandle(logger=logger, handlers=handlers)

    logger.getChild(LogStream.SYSTEM).debug(
        "Logging system initialized",
        extra={
            "level": cfg.level.value,
            "is_async": cfg.is_async,
            "chan_size": cfg.chan_size,
            "log_dir": str(cfg.log_dir) if cfg.log_dir else None,
        }
    )
    return handle


def silent_logger() -> logging.Logger:
    """
    Logger used when logging is disabled.

    It has a NullHandler and does not propagate, so neither its children nor
    Python's last-resort handler produce any output.
    """
    logger = logging.getLogger(SILENT_LOGGER_NAME)
    logger.propagate = False
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())
    return logger


def get_logger(stream: str, parent: Optional[logging.Logger] = None) -> logging.Logger:
    """
    Get logger for specific stream.

    Example:
        logger = get_logger(LogStream.METRICS, handle.logger)
        logger.info("Dump written", extra={"path": "A.metrics"})
    """
    if parent is not None:
        return parent.getChild(stream)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{stream}")


# ============================================================================
# STEP TIMING
# ============================================================================

@contextmanager
def log_execution_time(operation: str, logger: logging.Logger, **metadata):
    """
    Context manager to log execution time of a startup step.

    Usage:
        with log_execution_time("environment_setup", logger):
            handle = setup_environment(config)
    """
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        logger.error(
            f"{operation} failed after {elapsed:.2f}ms: {e}",
            extra={
                "operation": operation,
                "duration_ms": round(elapsed, 2),
                "error_type": type(e).__name__,
                **metadata
            },
        )
        raise
    elapsed = (time.perf_counter() - start) * 1000
    logger.debug(
        f"{operation} completed in {elapsed:.2f}ms",
        extra={"operation": operation, "duration_ms": round(elapsed, 2), **metadata}
    )
