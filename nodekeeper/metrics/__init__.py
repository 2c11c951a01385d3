"""
Metrics dumping: one background thread per network identity writing
`<peer_id>.metrics` in Prometheus text format.
"""

from .dumper import (
    METRICS_SUFFIX,
    MetricsDumpTask,
    dump_all_metrics_to_file,
    dump_counters,
    metrics_file_name,
)
from .health import DumpHealthMonitor
from .supervisor import MetricsSupervisor

__all__ = [
    "METRICS_SUFFIX",
    "MetricsDumpTask",
    "dump_all_metrics_to_file",
    "dump_counters",
    "metrics_file_name",
    "DumpHealthMonitor",
    "MetricsSupervisor",
]
