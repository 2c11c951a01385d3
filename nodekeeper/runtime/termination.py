"""
Termination gate: the only cancellation point of the supervisor.

States: RUNNING (initial) -> TERMINATED (terminal), exactly once.
The main thread parks in wait() and is woken by trigger(); every wake
re-checks the flag, so a spurious wake just parks again.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from enum import Enum
from typing import Callable, Iterable, Optional


class GateState(str, Enum):
    RUNNING = "RUNNING"
    TERMINATED = "TERMINATED"


class TerminationGate:
    """Explicitly owned shutdown context, passed to whoever may stop the node."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._terminated = False
        self.reason: Optional[str] = None
        self.wakeups = 0

    @property
    def state(self) -> GateState:
        return GateState.TERMINATED if self._terminated else GateState.RUNNING

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    def trigger(self, reason: str = "requested") -> bool:
        """
        Move to TERMINATED and wake all waiters.

        Returns True only for the call that performed the transition.
        """
        with self._cond:
            if self._terminated:
                return False
            self._terminated = True
            self.reason = reason
            self._cond.notify_all()
            return True

    def notify(self) -> None:
        """Wake waiters without changing state."""
        with self._cond:
            self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Park until TERMINATED.

        Returns True once terminated, False if `timeout` elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._terminated:
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    self._cond.wait(remaining)
                self.wakeups += 1
            return True


def install_signal_handlers(
    gate: TerminationGate,
    signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
    logger: Optional[logging.Logger] = None,
) -> Callable[[], None]:
    """
    Route termination signals to `gate`.

    The handler hands off to a short-lived thread: the main thread may be
    holding the gate's lock when the signal lands, and trigger() must be
    able to wait for it.

    Returns:
        Callable restoring the previous handlers (no-op off the main thread)
    """
    if threading.current_thread() is not threading.main_thread():
        if logger is not None:
            logger.debug("Not on main thread; signal handlers not installed")
        return lambda: None

    def _stop(signum, _frame):
        name = signal.Signals(signum).name
        threading.Thread(
            target=gate.trigger,
            args=(f"signal:{name}",),
            name="termination-signal",
            daemon=True,
        ).start()

    previous = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, _stop)

    def _restore() -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return _restore
