"""
Metrics supervisor.

Starts one MetricsDumpTask per configured network identity (every
full-node network, plus the validator network if present) and keeps
track of them so shutdown can stop and join every task.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from prometheus_client import CollectorRegistry, REGISTRY

from nodekeeper.config.schema import NodeConfig

from .dumper import MetricsDumpTask
from .health import DumpHealthMonitor


class MetricsSupervisor:
    """Owns the metrics dump threads for the lifetime of the node."""

    def __init__(
        self,
        config: NodeConfig,
        logger: logging.Logger,
        registry: CollectorRegistry = REGISTRY,
        health: Optional[DumpHealthMonitor] = None,
    ):
        self._config = config
        self._logger = logger
        self._registry = registry
        self.health = health or DumpHealthMonitor()
        self._tasks: Dict[str, MetricsDumpTask] = {}

    @property
    def tasks(self) -> List[MetricsDumpTask]:
        return list(self._tasks.values())

    def start(self) -> List[MetricsDumpTask]:
        """
        Start a dump task per identity.

        A no-op when metrics are disabled or no identities are configured.
        Calling start() twice does not start duplicate tasks.
        """
        if not self._config.metrics.enabled:
            self._logger.debug("Metrics disabled; no dump tasks started")
            return []

        identities = self._config.network_identities()
        if not identities:
            self._logger.info("Metrics enabled but no network identities configured")
            return []

        metrics_dir = self._config.metrics_dir()
        try:
            metrics_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Not fatal: each task retries on every dump and counts the failures
            self._logger.warning(
                f"Cannot create metrics directory: {e}",
                extra={"metrics_dir": str(metrics_dir)},
            )

        started: List[MetricsDumpTask] = []
        for peer_id in identities:
            if peer_id in self._tasks:
                continue
            task = MetricsDumpTask(
                peer_id=peer_id,
                metrics_dir=metrics_dir,
                interval_ms=self._config.metrics.collection_interval_ms,
                logger=self._logger,
                registry=self._registry,
                health=self.health,
            )
            task.start()
            self._tasks[peer_id] = task
            started.append(task)

        self._logger.info(
            f"Started {len(started)} metrics task(s)",
            extra={
                "metrics_dir": str(metrics_dir),
                "identities": identities,
                "interval_ms": self._config.metrics.collection_interval_ms,
            },
        )
        return started

    def stop(self, timeout: float = 5.0) -> List[str]:
        """
        Signal every task to stop, then join them.

        Returns:
            peer_ids of tasks still alive after `timeout` (per task)
        """
        for task in self._tasks.values():
            task.stop()

        stuck: List[str] = []
        for peer_id, task in self._tasks.items():
            task.join(timeout)
            if task.is_alive():
                stuck.append(peer_id)

        if stuck:
            self._logger.warning(
                "Metrics tasks did not stop in time",
                extra={"identities": stuck, "timeout_s": timeout},
            )
        elif self._tasks:
            self._logger.info(f"Stopped {len(self._tasks)} metrics task(s)")
        return stuck

    def status(self) -> Dict[str, Dict]:
        return {
            peer_id: {
                "alive": task.is_alive(),
                "path": str(task.path),
                "dumps": task.dump_count,
                "failures": task.failure_count,
            }
            for peer_id, task in self._tasks.items()
        }
