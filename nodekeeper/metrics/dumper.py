"""
Periodic metrics dump task.

One MetricsDumpTask per network identity. Each task owns its output file
and its timer; tasks share nothing but the (internally locked) metrics
registry, so a slow or failing write in one never delays another.

File contents are the Prometheus text exposition format of every metric
registered at dump time, rewritten in full on every interval.
"""

from __future__ import annotations

import logging
import threading
import weakref
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from prometheus_client import CollectorRegistry, Counter, REGISTRY, write_to_textfile

from nodekeeper.logging import LogContext

from .health import DumpHealthMonitor

METRICS_SUFFIX = ".metrics"


class DumpCounters(NamedTuple):
    dumps: Counter
    failures: Counter


_COUNTERS: "weakref.WeakKeyDictionary[CollectorRegistry, DumpCounters]" = weakref.WeakKeyDictionary()
_COUNTERS_LOCK = threading.Lock()


def dump_counters(registry: CollectorRegistry = REGISTRY) -> DumpCounters:
    """
    Self-metrics of the dump tasks, registered once on `registry`.

    They live in the registry being dumped so every .metrics file reports
    its own dump history.
    """
    with _COUNTERS_LOCK:
        counters = _COUNTERS.get(registry)
        if counters is None:
            counters = DumpCounters(
                dumps=Counter(
                    "nodekeeper_metrics_dumps_total",
                    "Metrics dumps written, by network identity",
                    ["peer_id"],
                    registry=registry,
                ),
                failures=Counter(
                    "nodekeeper_metrics_dump_failures_total",
                    "Metrics dumps that failed to write, by network identity",
                    ["peer_id"],
                    registry=registry,
                ),
            )
            _COUNTERS[registry] = counters
        return counters


def metrics_file_name(peer_id: str) -> str:
    return f"{peer_id}{METRICS_SUFFIX}"


def dump_all_metrics_to_file(path: Path, registry: CollectorRegistry = REGISTRY) -> None:
    """
    Write every metric in `registry` to `path`, replacing it atomically.

    The parent directory is created on demand, so a directory that could
    not be made at startup is retried on every dump.

    Raises:
        OSError: If the directory or the file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), registry)


class MetricsDumpTask(threading.Thread):
    """
    Background thread dumping all metrics for one identity.

    Dumps once immediately, then every `interval_ms` until stop() is called.
    """

    def __init__(
        self,
        peer_id: str,
        metrics_dir: Path,
        interval_ms: int,
        logger: logging.Logger,
        registry: CollectorRegistry = REGISTRY,
        health: Optional[DumpHealthMonitor] = None,
        dump_fn: Callable[[Path, CollectorRegistry], None] = dump_all_metrics_to_file,
    ):
        super().__init__(name=f"metrics-dump-{peer_id}", daemon=True)
        self.peer_id = peer_id
        self.path = Path(metrics_dir) / metrics_file_name(peer_id)
        self.interval_s = interval_ms / 1000.0
        self._logger = logger
        self._registry = registry
        self._health = health or DumpHealthMonitor()
        self._dump_fn = dump_fn
        self._counters = dump_counters(registry)
        self._stop_event = threading.Event()
        self.dump_count = 0
        self.failure_count = 0

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        self._stop_event.set()

    def dump_once(self) -> bool:
        """Write one dump. Failures are logged and counted, never raised."""
        try:
            self._dump_fn(self.path, self._registry)
        except Exception as e:
            self.failure_count += 1
            self._counters.failures.labels(peer_id=self.peer_id).inc()
            consecutive = self._health.record_failure(self.peer_id)
            log = self._logger.warning if self._health.should_warn(consecutive) else self._logger.debug
            log(
                f"Metrics dump failed: {e}",
                extra={"path": str(self.path), "consecutive_failures": consecutive},
            )
            return False

        self.dump_count += 1
        self._counters.dumps.labels(peer_id=self.peer_id).inc()
        self._health.record_ok(self.peer_id)
        return True

    def run(self) -> None:
        with LogContext(self.peer_id):
            self._logger.info(
                "Metrics task started",
                extra={"path": str(self.path), "interval_s": self.interval_s},
            )
            while not self._stop_event.is_set():
                self.dump_once()
                if self._stop_event.wait(self.interval_s):
                    break
            self._logger.info("Metrics task stopped", extra={"dumps": self.dump_count})
