"""
Process-wide crash handler as a scoped guard.

INVARIANT:
    While the guard is held, an uncaught exception in ANY thread is
    reported (stderr always, plus the bound logger if any) and the
    process terminates with CRASH_EXIT_CODE.  A background thread dying
    silently while the node keeps running is never an option.

DESIGN:
    - Enter: enable faulthandler (all threads), replace sys.excepthook
      and threading.excepthook.
    - Exit (every path): restore the previous hooks and faulthandler state.
    - Installation never raises: a stderr without a file descriptor only
      skips faulthandler.
"""

from __future__ import annotations

import faulthandler
import logging
import os
import sys
import threading
import traceback
from typing import Callable, Optional, TextIO

CRASH_EXIT_CODE = 12


class CrashHandlerGuard:
    """Owns the process fault hooks between __enter__ and __exit__."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        exit_fn: Callable[[int], None] = os._exit,
        stream: Optional[TextIO] = None,
    ) -> None:
        self._logger = logger
        self._flush: Optional[Callable[[], None]] = None
        self._exit_fn = exit_fn
        self._stream = stream
        self._installed = False
        self._prev_excepthook = None
        self._prev_threading_hook = None
        self._faulthandler_was_enabled = False
        self.crashes = 0

    @property
    def installed(self) -> bool:
        return self._installed

    def bind_logger(self, logger: logging.Logger, flush: Optional[Callable[[], None]] = None) -> None:
        """Report crashes through `logger`; `flush` runs before the process exits."""
        self._logger = logger
        self._flush = flush

    # -- lifecycle -----------------------------------------------------------

    def __enter__(self) -> "CrashHandlerGuard":
        self.install()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.restore()
        return False

    def install(self) -> None:
        if self._installed:
            return
        self._prev_excepthook = sys.excepthook
        self._prev_threading_hook = threading.excepthook
        self._faulthandler_was_enabled = faulthandler.is_enabled()

        try:
            faulthandler.enable(file=self._stream or sys.stderr, all_threads=True)
        except (OSError, ValueError, RuntimeError, AttributeError):
            # stderr has no usable file descriptor (redirected or captured)
            pass

        sys.excepthook = self._handle_main_exception
        threading.excepthook = self._handle_thread_exception
        self._installed = True

    def restore(self) -> None:
        if not self._installed:
            return
        sys.excepthook = self._prev_excepthook
        threading.excepthook = self._prev_threading_hook
        if not self._faulthandler_was_enabled and faulthandler.is_enabled():
            faulthandler.disable()
        self._installed = False

    # -- hooks ---------------------------------------------------------------

    def _handle_main_exception(self, exc_type, exc_value, exc_tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            self._prev_excepthook(exc_type, exc_value, exc_tb)
            return
        self._crash("MainThread", exc_type, exc_value, exc_tb)

    def _handle_thread_exception(self, args) -> None:
        if args.exc_type is SystemExit:
            return
        thread_name = args.thread.name if args.thread is not None else "<unknown>"
        self._crash(thread_name, args.exc_type, args.exc_value, args.exc_traceback)

    def handle_fault(self, exc: BaseException) -> None:
        """Route a fault caught on the current thread through the crash path."""
        self._crash(threading.current_thread().name, type(exc), exc, exc.__traceback__)

    def _crash(self, thread_name: str, exc_type, exc_value, exc_tb) -> None:
        self.crashes += 1
        details = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
        stream = self._stream or sys.stderr
        try:
            stream.write(f"CRASH in thread {thread_name}: {exc_type.__name__}: {exc_value}\n{details}")
            stream.flush()
        except (OSError, ValueError):
            pass

        if self._logger is not None:
            self._logger.critical(
                f"Unrecoverable fault in thread {thread_name}: {exc_value}",
                exc_info=(exc_type, exc_value, exc_tb),
                extra={"fault_thread": thread_name, "exit_code": CRASH_EXIT_CODE},
            )
            if self._flush is not None:
                self._flush()

        self._exit_fn(CRASH_EXIT_CODE)
