"""
Config validation reports.

validate_config() never raises: it collects every schema violation in one
pass and returns them as ConfigError entries with a dotted path, so an
operator fixing node.yaml sees the whole list at once.

config_hash() fingerprints the loaded config for the startup record.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from pydantic import ValidationError

ROOT_PATH = "<root>"

# pydantic error type -> our coarse category; unknown types are value errors
_EXACT_KINDS = {
    "extra_forbidden": "extra_key",
    "missing": "missing",
}


def _kind_of(pydantic_type: str) -> str:
    if pydantic_type in _EXACT_KINDS:
        return _EXACT_KINDS[pydantic_type]
    if "missing" in pydantic_type:
        return "missing"
    if "type" in pydantic_type:
        return "type_error"
    return "value_error"


def _dotted(loc: Iterable[Any]) -> str:
    return ".".join(str(part) for part in loc) or ROOT_PATH


@dataclass(frozen=True)
class ConfigError:
    """One violation: where (dotted path), what, and which kind."""
    path: str
    message: str
    error_type: str     # missing | type_error | value_error | extra_key

    def __str__(self) -> str:
        return f"[{self.error_type}] {self.path}: {self.message}"


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    errors: Tuple[ConfigError, ...] = ()

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary(self) -> str:
        if self.ok:
            return "Config OK (0 errors)"
        header = f"Config INVALID ({self.error_count} errors):"
        return "\n".join([header, *(f"  - {e}" for e in self.errors)])


def pydantic_errors_to_config_errors(exc: ValidationError) -> List[ConfigError]:
    """Flatten a pydantic ValidationError into ConfigError entries."""
    return [
        ConfigError(
            path=_dotted(detail.get("loc", ())),
            message=detail.get("msg", "invalid value"),
            error_type=_kind_of(detail.get("type", "")),
        )
        for detail in exc.errors()
    ]


def validate_config(raw: Any) -> ValidationResult:
    """Check a raw config mapping (as parsed from YAML) against NodeConfig."""
    from .schema import NodeConfig

    if not isinstance(raw, dict):
        return ValidationResult(ok=False, errors=(
            ConfigError(ROOT_PATH, f"expected a mapping, got {type(raw).__name__}", "type_error"),
        ))

    try:
        NodeConfig.model_validate(raw)
    except ValidationError as exc:
        return ValidationResult(ok=False, errors=tuple(pydantic_errors_to_config_errors(exc)))
    return ValidationResult(ok=True)


def config_hash(raw: Dict[str, Any]) -> str:
    """Short sha256 of the canonical JSON form; key order does not matter."""
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
