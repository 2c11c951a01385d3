"""
Logging infrastructure for nodekeeper.

Features:
- Unstructured sink with optional background flusher (bounded queue)
- Structured event sink configured from the process environment
- peer_id context tracking for per-identity background threads
- Explicit handles instead of ambient global configuration
"""

from .logger import (
    LogContext,
    LoggerHandle,
    LogStream,
    get_logger,
    get_peer_id,
    log_execution_time,
    setup_logging,
    silent_logger,
)

from .formatters import (
    JSONFormatter,
    ConsoleFormatter,
)

from .structured import (
    StructLogger,
    StructuredLogEntry,
    init_struct_log_from_env,
)

__all__ = [
    "LogContext",
    "LoggerHandle",
    "LogStream",
    "get_logger",
    "get_peer_id",
    "log_execution_time",
    "setup_logging",
    "silent_logger",
    "JSONFormatter",
    "ConsoleFormatter",
    "StructLogger",
    "StructuredLogEntry",
    "init_struct_log_from_env",
]
