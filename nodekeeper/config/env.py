"""
Process environment helpers.

Operators keep per-host settings (STRUCT_LOG_*, NODE_INJECT_ERROR) in an
env file next to node.yaml instead of exporting them by hand.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Mapping, Optional

from dotenv import load_dotenv

ENV_FILENAMES = (".env.local",)

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})


def load_env(
    directories: Iterable[Path],
    filenames: Iterable[str] = ENV_FILENAMES,
    override: bool = False,
) -> list[Path]:
    """
    Load every existing env file found in `directories`.

    Variables already present in the process environment win unless
    `override` is set.

    Returns:
        Env files actually loaded, in load order
    """
    names = tuple(filenames)
    loaded: list[Path] = []
    for directory in directories:
        for candidate in (Path(directory) / name for name in names):
            if candidate.is_file():
                load_dotenv(dotenv_path=candidate, override=override)
                loaded.append(candidate)
    return loaded


def env_flag(name: str, default: bool = False, environ: Optional[Mapping[str, str]] = None) -> bool:
    raw = (os.environ if environ is None else environ).get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY
