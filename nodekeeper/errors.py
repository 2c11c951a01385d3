"""
Fatal startup errors.

Every startup failure is fatal: the supervisor never runs a half-started
node. Each error type carries the process exit code ``run_app`` returns.
"""

from __future__ import annotations

from typing import Sequence


class StartupError(Exception):
    """Base class for failures that abort startup."""

    exit_code: int = 1


class ConfigLoadError(StartupError):
    """Config file missing, unreadable or schema-invalid."""

    exit_code = 2

    def __init__(self, message: str, errors: Sequence = ()) -> None:
        super().__init__(message)
        self.errors = tuple(errors)

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        details = "; ".join(str(e) for e in self.errors)
        return f"{base}: {details}"


class StructLogConfigError(StartupError):
    """Structured-logging environment is present but malformed."""

    exit_code = 3


class EnvironmentSetupError(StartupError):
    """The node runtime could not be built or started."""

    exit_code = 4
