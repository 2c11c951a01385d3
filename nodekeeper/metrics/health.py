"""
Per-identity dump health.

Tracks consecutive and total dump failures per network identity so an
operator can see which metrics file has gone stale. Tracking only: a
failing identity never stops its own task or any other.
"""

from __future__ import annotations

import threading
from typing import Dict


class DumpHealthMonitor:
    """
    Tracks health of named metrics dump tasks.

    - `record_ok(peer_id)` resets the consecutive failure counter.
    - `record_failure(peer_id)` increments it.
    - `degraded()` lists identities at or above the warning threshold.
    """

    def __init__(self, warn_after: int = 3) -> None:
        self._warn_after: int = warn_after
        self._consecutive: Dict[str, int] = {}
        self._totals: Dict[str, Dict[str, int]] = {}
        self._lock = threading.Lock()

    def _totals_for(self, peer_id: str) -> Dict[str, int]:
        return self._totals.setdefault(peer_id, {"dumps": 0, "failures": 0})

    def record_ok(self, peer_id: str) -> None:
        with self._lock:
            self._consecutive[peer_id] = 0
            self._totals_for(peer_id)["dumps"] += 1

    def record_failure(self, peer_id: str) -> int:
        """Returns the consecutive failure count after this failure."""
        with self._lock:
            count = self._consecutive.get(peer_id, 0) + 1
            self._consecutive[peer_id] = count
            self._totals_for(peer_id)["failures"] += 1
            return count

    def should_warn(self, consecutive: int) -> bool:
        return consecutive == self._warn_after

    def degraded(self) -> list[str]:
        with self._lock:
            return sorted(
                name for name, count in self._consecutive.items()
                if count >= self._warn_after
            )

    def get_status(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {
                name: {
                    "consecutive_failures": self._consecutive.get(name, 0),
                    **totals,
                }
                for name, totals in self._totals.items()
            }
