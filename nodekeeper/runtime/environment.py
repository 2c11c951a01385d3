"""
Environment setup: build and start the node runtime.

The runtime itself (consensus, storage, networking) lives outside this
package. It is reached through a builder callable taking the NodeConfig,
either injected or named in the config as 'package.module:callable'.
Whatever the builder returns is kept alive in a NodeRuntimeHandle until
shutdown.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from nodekeeper.config.schema import NodeConfig
from nodekeeper.errors import EnvironmentSetupError

RuntimeBuilder = Callable[[NodeConfig], Any]


@dataclass
class NodeRuntimeHandle:
    """Opaque runtime returned by the builder, held for the process lifetime."""
    runtime: Any
    entrypoint: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    closed: bool = False

    def close(self) -> None:
        """Release the runtime through its close()/shutdown() if it has one."""
        if self.closed:
            return
        self.closed = True
        for name in ("close", "shutdown"):
            fn = getattr(self.runtime, name, None)
            if callable(fn):
                fn()
                return


def resolve_entrypoint(entrypoint: str) -> RuntimeBuilder:
    """Import 'package.module:attr.path' and return the callable."""
    module_name, sep, attr_path = entrypoint.partition(":")
    if not sep or not module_name or not attr_path:
        raise EnvironmentSetupError(f"Invalid runtime entrypoint {entrypoint!r}: expected 'module:callable'")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise EnvironmentSetupError(f"Cannot import runtime module {module_name!r}: {e}") from e

    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError:
            raise EnvironmentSetupError(f"Runtime entrypoint {entrypoint!r} not found") from None

    if not callable(target):
        raise EnvironmentSetupError(f"Runtime entrypoint {entrypoint!r} is not callable")
    return target


def _builder_name(builder: RuntimeBuilder) -> str:
    module = getattr(builder, "__module__", None) or "<unknown>"
    name = getattr(builder, "__qualname__", None) or type(builder).__name__
    return f"{module}:{name}"


def setup_environment(
    config: NodeConfig,
    builder: Optional[RuntimeBuilder] = None,
    logger: Optional[logging.Logger] = None,
) -> NodeRuntimeHandle:
    """
    Build and start the node runtime synchronously.

    Raises:
        EnvironmentSetupError: No builder available, or the builder failed
    """
    if builder is None:
        if not config.runtime.entrypoint:
            raise EnvironmentSetupError("No runtime entrypoint configured (runtime.entrypoint)")
        entrypoint = config.runtime.entrypoint
        builder = resolve_entrypoint(entrypoint)
    else:
        entrypoint = _builder_name(builder)

    if logger is not None:
        logger.info("Setting up node environment", extra={"entrypoint": entrypoint})

    try:
        runtime = builder(config)
    except Exception as e:
        raise EnvironmentSetupError(f"Runtime setup via {entrypoint} failed: {e}") from e

    handle = NodeRuntimeHandle(runtime=runtime, entrypoint=entrypoint)
    if logger is not None:
        logger.info("Node runtime started", extra={"entrypoint": entrypoint,
                                                   "runtime_type": type(runtime).__name__})
    return handle
