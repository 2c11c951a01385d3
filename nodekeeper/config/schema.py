"""
Node configuration schema using Pydantic for validation.

Single source of truth for all startup parameters.
Validates on load, fails fast on invalid config.

Every model is frozen: the snapshot handed out by the loader is shared
read-only by the metrics threads and must never change after load.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


_PEER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_ENTRYPOINT_RE = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_][\w.]*$")


# ============================================================================
# ENUMS
# ============================================================================

class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

class LoggerConfig(_Frozen):
    """Unstructured logging sink settings."""

    chan_size: int = Field(
        ge=1,
        le=1_000_000,
        default=256,
        description="Bounded queue capacity for async log records"
    )

    is_async: bool = Field(
        default=True,
        description="Emit through a background flusher thread instead of inline"
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum retained severity"
    )

    console: bool = Field(
        default=True,
        description="Write records to stderr"
    )

    json_logs: bool = Field(
        default=False,
        description="Use JSON formatting on the console"
    )

    log_dir: Optional[Path] = Field(
        default=None,
        description="Directory for rotating JSON log file (disabled if unset)"
    )

    max_bytes: int = Field(
        ge=1_000_000,
        le=100_000_000,
        default=10_000_000,
        description="Max bytes per log file"
    )

    backup_count: int = Field(
        ge=1,
        le=20,
        default=5,
        description="Number of backup files"
    )


# ============================================================================
# METRICS CONFIGURATION
# ============================================================================

class MetricsConfig(_Frozen):
    """Periodic metrics dump settings."""

    enabled: bool = Field(
        default=False,
        description="Dump metrics to files periodically"
    )

    dir: Path = Field(
        default=Path("metrics"),
        description="Metrics output directory (relative to data_dir)"
    )

    collection_interval_ms: int = Field(
        ge=1,
        le=86_400_000,
        default=1000,
        description="Milliseconds between two dumps of the same identity"
    )


# ============================================================================
# NETWORK CONFIGURATION
# ============================================================================

class NetworkConfig(_Frozen):
    """One network attachment (full-node or validator)."""

    peer_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Network identity; also names the metrics file"
    )

    listen_address: str = Field(
        default="/ip4/0.0.0.0/tcp/6180",
        description="Address the runtime listens on"
    )

    seed_addrs: Dict[str, Tuple[str, ...]] = Field(
        default_factory=dict,
        description="Seed peers by peer_id"
    )

    @field_validator("peer_id")
    @classmethod
    def validate_peer_id(cls, v: str) -> str:
        """Peer ids end up in file names: keep them path-safe."""
        v = v.strip()
        if not _PEER_ID_RE.match(v):
            raise ValueError(
                f"peer_id {v!r} must start with a letter or digit and contain "
                f"only letters, digits, '_', '.' or '-'"
            )
        return v


# ============================================================================
# RUNTIME CONFIGURATION
# ============================================================================

class RuntimeConfig(_Frozen):
    """Where the node runtime builder lives."""

    entrypoint: Optional[str] = Field(
        default=None,
        description="Runtime builder as 'package.module:callable'"
    )

    @field_validator("entrypoint")
    @classmethod
    def validate_entrypoint(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not _ENTRYPOINT_RE.match(v):
            raise ValueError(f"entrypoint {v!r} must look like 'package.module:callable'")
        return v


# ============================================================================
# MASTER CONFIGURATION
# ============================================================================

class NodeConfig(_Frozen):
    """
    Master node configuration.

    Single source of truth for startup parameters.
    Validates on load, fails fast on invalid config.
    """

    data_dir: Path = Field(
        default=Path("."),
        description="Base directory for node output"
    )

    logger: LoggerConfig = Field(default_factory=LoggerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    full_node_networks: Tuple[NetworkConfig, ...] = Field(default=())
    validator_network: Optional[NetworkConfig] = None

    @model_validator(mode="after")
    def validate_unique_identities(self):
        """Metrics files are named by peer_id, so identities must not collide."""
        seen = set()
        for peer_id in self.network_identities():
            if peer_id in seen:
                raise ValueError(f"Duplicate network identity: {peer_id}")
            seen.add(peer_id)
        return self

    def network_identities(self) -> List[str]:
        """Full-node identities in config order, then the validator identity."""
        ids = [net.peer_id for net in self.full_node_networks]
        if self.validator_network is not None:
            ids.append(self.validator_network.peer_id)
        return ids

    def metrics_dir(self) -> Path:
        """Resolved metrics output directory."""
        if self.metrics.dir.is_absolute():
            return self.metrics.dir
        return self.data_dir / self.metrics.dir

    @classmethod
    def load(cls, path: Union[str, Path]) -> "NodeConfig":
        """Load and validate config from a YAML file."""
        from .loader import load_config
        return load_config(path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeConfig":
        """Load config from dictionary."""
        return cls.model_validate(data)

    def to_yaml(self, path: Path) -> None:
        """Save config to YAML file."""
        import yaml

        data = self.model_dump(mode="json")
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
