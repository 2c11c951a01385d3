"""
Environment setup: runtime builder resolution and the runtime handle.
"""

from __future__ import annotations

import logging

import pytest

from nodekeeper.config.schema import NodeConfig
from nodekeeper.errors import EnvironmentSetupError
from nodekeeper.runtime.environment import (
    NodeRuntimeHandle,
    resolve_entrypoint,
    setup_environment,
)
from tests.fixtures.node_harness import RecordingBuilder, base_config


@pytest.fixture
def config(tmp_path):
    return NodeConfig.from_dict(base_config(tmp_path, full_node_networks=[{"peer_id": "A"}]))


class TestSetupEnvironment:

    def test_injected_builder_called_once_with_config(self, config, builder):
        handle = setup_environment(config, builder=builder)
        assert builder.calls == [config]
        assert handle.runtime is builder.runtimes[0]
        assert handle.entrypoint.endswith("RecordingBuilder")
        assert handle.closed is False

    def test_builder_failure_wrapped(self, config):
        failing = RecordingBuilder(fail_with=RuntimeError("port in use"))
        with pytest.raises(EnvironmentSetupError, match="port in use") as exc:
            setup_environment(config, builder=failing)
        assert exc.value.exit_code == 4
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_no_builder_no_entrypoint(self, config):
        with pytest.raises(EnvironmentSetupError, match="No runtime entrypoint"):
            setup_environment(config)

    def test_entrypoint_from_config(self, tmp_path):
        cfg = NodeConfig.from_dict(base_config(tmp_path, runtime={"entrypoint": "copy:deepcopy"}))
        handle = setup_environment(cfg)
        assert handle.entrypoint == "copy:deepcopy"
        assert handle.runtime == cfg
        assert handle.runtime is not cfg

    def test_logs_through_given_logger(self, config, builder, caplog):
        logger = logging.getLogger("nk_test.runtime")
        with caplog.at_level(logging.INFO, logger="nk_test.runtime"):
            setup_environment(config, builder=builder, logger=logger)
        messages = [r.getMessage() for r in caplog.records]
        assert "Setting up node environment" in messages
        assert "Node runtime started" in messages


class TestResolveEntrypoint:

    def test_dotted_attribute_path(self):
        fn = resolve_entrypoint("os:path.join")
        assert fn("a", "b").endswith("b")

    @pytest.mark.parametrize("entrypoint,match", [
        ("nodekeeper_no_such_module:build", "Cannot import"),
        ("copy:no_such_builder", "not found"),
        ("os:sep", "not callable"),
        ("copy", "expected 'module:callable'"),
        (":build", "expected 'module:callable'"),
    ])
    def test_invalid(self, entrypoint, match):
        with pytest.raises(EnvironmentSetupError, match=match):
            resolve_entrypoint(entrypoint)


class TestRuntimeHandle:

    def test_close_idempotent(self, config, builder):
        handle = setup_environment(config, builder=builder)
        handle.close()
        handle.close()
        assert builder.runtimes[0].closed == 1
        assert handle.closed

    def test_close_falls_back_to_shutdown(self):
        class _Runtime:
            stopped = 0

            def shutdown(self):
                self.stopped += 1

        runtime = _Runtime()
        NodeRuntimeHandle(runtime=runtime, entrypoint="x:y").close()
        assert runtime.stopped == 1

    def test_close_without_hooks(self):
        handle = NodeRuntimeHandle(runtime=object(), entrypoint="x:y")
        handle.close()
        assert handle.closed
