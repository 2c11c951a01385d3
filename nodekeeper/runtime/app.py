"""
Runtime Application - boot the node and keep it alive.

ARCHITECTURE:
    load config -> crash guard -> logging -> structured log + startup record
    -> metrics tasks -> environment setup -> termination gate

- Startup is strictly sequential; every startup failure is fatal
- The main thread's only long-lived suspension is the termination gate
- After the gate opens: stop and join metrics tasks, close the runtime,
  shut down logging, release the crash guard
- A main-thread fault once the node is up takes the crash path (exit 12)
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional

from prometheus_client import CollectorRegistry, REGISTRY

from nodekeeper.config import NodeConfig, config_hash, load_config
from nodekeeper.config.env import env_flag
from nodekeeper.errors import StartupError
from nodekeeper.logging import (
    LoggerHandle,
    LogStream,
    StructLogger,
    StructuredLogEntry,
    get_logger,
    init_struct_log_from_env,
    log_execution_time,
    setup_logging,
    silent_logger,
)
from nodekeeper.metrics import MetricsSupervisor
from nodekeeper.runtime.crash_handler import CRASH_EXIT_CODE, CrashHandlerGuard
from nodekeeper.runtime.environment import NodeRuntimeHandle, RuntimeBuilder, setup_environment
from nodekeeper.runtime.termination import TerminationGate, install_signal_handlers

INJECT_ERROR_ENV = "NODE_INJECT_ERROR"


@dataclass
class RunOptions:
    config_path: Path
    no_logging: bool = False
    builder: Optional[RuntimeBuilder] = None
    gate: Optional[TerminationGate] = None
    environ: Optional[Mapping[str, str]] = None
    install_signals: bool = True
    registry: CollectorRegistry = REGISTRY
    stop_timeout_s: float = 5.0
    crash_exit_fn: Callable[[int], None] = os._exit


@dataclass
class NodeSession:
    """Everything started during boot, released in reverse order."""
    config: NodeConfig
    logger: logging.Logger
    log_handle: Optional[LoggerHandle] = None
    struct_log: Optional[StructLogger] = None
    supervisor: Optional[MetricsSupervisor] = None
    node_handle: Optional[NodeRuntimeHandle] = None
    restore_signals: Callable[[], None] = lambda: None

    def shutdown(self, stop_timeout_s: float) -> None:
        system_log = get_logger(LogStream.SYSTEM, self.logger)
        self.restore_signals()

        if self.supervisor is not None:
            self.supervisor.stop(timeout=stop_timeout_s)

        if self.node_handle is not None:
            try:
                self.node_handle.close()
            except Exception as e:
                system_log.error(f"Runtime close failed: {e}", exc_info=True)

        system_log.info("Node supervisor stopped")

        if self.struct_log is not None:
            self.struct_log.close()
        if self.log_handle is not None:
            self.log_handle.shutdown()


def startup_entry(config: NodeConfig) -> StructuredLogEntry:
    """The one audit record emitted at boot: the full loaded config."""
    dumped = config.model_dump(mode="json")
    return StructuredLogEntry(
        name="config",
        category="startup",
        level=logging.INFO,
        data={"config": dumped, "config_hash": config_hash(dumped)},
    )


def run(opts: RunOptions) -> int:
    """Boot the node and block until terminated. Returns exit code 0."""
    config = load_config(opts.config_path)

    gate = opts.gate or TerminationGate()
    environ = os.environ if opts.environ is None else opts.environ

    with CrashHandlerGuard(exit_fn=opts.crash_exit_fn) as crash:
        session = NodeSession(config=config, logger=silent_logger())
        started = False
        try:
            if not opts.no_logging:
                session.log_handle = setup_logging(config.logger)
                session.logger = session.log_handle.logger
                crash.bind_logger(
                    get_logger(LogStream.CRASH, session.logger),
                    flush=session.log_handle.shutdown,
                )
                session.struct_log = init_struct_log_from_env(environ, session.logger)
                session.struct_log.send(startup_entry(config))

            logger = session.logger
            system_log = get_logger(LogStream.SYSTEM, logger)

            if env_flag(INJECT_ERROR_ENV, environ=environ):
                system_log.warning("Running with error injection enabled!")

            if opts.install_signals:
                session.restore_signals = install_signal_handlers(gate, logger=system_log)

            session.supervisor = MetricsSupervisor(
                config, get_logger(LogStream.METRICS, logger), registry=opts.registry
            )
            with log_execution_time("metrics_start", system_log):
                session.supervisor.start()

            with log_execution_time("environment_setup", system_log):
                session.node_handle = setup_environment(
                    config, opts.builder, get_logger(LogStream.RUNTIME, logger)
                )

            started = True
            system_log.info("Node started; waiting for termination")
            gate.wait()
            system_log.info("Termination requested", extra={"reason": gate.reason})
            return 0

        except StartupError as e:
            get_logger(LogStream.SYSTEM, session.logger).error(f"Startup failed: {e}")
            raise

        except Exception as e:
            if not started:
                raise
            # Past startup a main-thread fault is a crash, not a startup failure
            crash.handle_fault(e)
            return CRASH_EXIT_CODE

        finally:
            session.shutdown(opts.stop_timeout_s)


def run_app(opts: RunOptions) -> int:
    """
    Public entrypoint used by the CLI and tests. MUST return an int exit code.
    0 = terminated on request
    non-zero = fatal startup failure (see nodekeeper.errors)
    12 = fault on the main thread after startup (crash path)
    """
    try:
        return run(opts)
    except StartupError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return e.exit_code
    except Exception as e:
        print(f"FATAL: unexpected startup failure: {e!r}", file=sys.stderr)
        return 1
