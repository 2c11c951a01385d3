# tests/conftest.py
from __future__ import annotations

import logging
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, Optional

import pytest
import yaml

from nodekeeper.logging.logger import ROOT_LOGGER_NAME
from nodekeeper.logging.structured import ENV_FILE, ENV_LEVEL, ENV_TCP_ADDR, STRUCT_LOGGER_NAME
from tests.fixtures.node_harness import RecordingBuilder, base_config


# -------------------------
# Isolation
# -------------------------

@pytest.fixture(autouse=True)
def _clean_struct_env(monkeypatch):
    """Structured logging must only see what a test sets explicitly."""
    for name in (ENV_FILE, ENV_TCP_ADDR, ENV_LEVEL, "NODE_INJECT_ERROR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def fake_faulthandler(monkeypatch):
    """
    Keep pytest's own faulthandler untouched: the crash guard talks to
    this stand-in instead.
    """
    import faulthandler

    state = SimpleNamespace(enabled=False, enable_calls=0, disable_calls=0)

    def _enable(file=None, all_threads=True):
        state.enabled = True
        state.enable_calls += 1

    def _disable():
        state.enabled = False
        state.disable_calls += 1

    monkeypatch.setattr(faulthandler, "enable", _enable)
    monkeypatch.setattr(faulthandler, "disable", _disable)
    monkeypatch.setattr(faulthandler, "is_enabled", lambda: state.enabled)
    return state


@pytest.fixture(autouse=True)
def _reset_loggers():
    yield
    for name in (ROOT_LOGGER_NAME, STRUCT_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


# -------------------------
# Config / runtime fixtures
# -------------------------

@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    def _write(raw: Optional[Dict[str, Any]] = None, name: str = "node.yaml", **overrides: Any) -> Path:
        data = raw if raw is not None else base_config(tmp_path, **overrides)
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def builder() -> RecordingBuilder:
    return RecordingBuilder()
