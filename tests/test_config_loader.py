"""
Config loading and validation.

INVARIANT:
    load_config() either returns a frozen NodeConfig whose fields match
    the file exactly, or raises ConfigLoadError.  There is no partial
    result and the snapshot can never be mutated after load.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from nodekeeper.config import (
    NodeConfig,
    config_hash,
    load_config,
    validate_config,
)
from nodekeeper.config.schema import LogLevel
from nodekeeper.errors import ConfigLoadError
from tests.fixtures.node_harness import base_config


def _networks(*peer_ids):
    return [{"peer_id": p} for p in peer_ids]


class TestLoadValid:

    def test_fields_match_input(self, tmp_path, write_config):
        raw = base_config(
            tmp_path,
            logger={"chan_size": 64, "is_async": True, "level": "WARNING", "console": False},
            metrics={"enabled": True, "dir": "m", "collection_interval_ms": 250},
            full_node_networks=[
                {"peer_id": "A", "listen_address": "/ip4/127.0.0.1/tcp/7000"},
                {"peer_id": "B"},
            ],
            validator_network={"peer_id": "V"},
            runtime={"entrypoint": "copy:deepcopy"},
        )
        cfg = load_config(write_config(raw))

        assert cfg.logger.chan_size == 64
        assert cfg.logger.is_async is True
        assert cfg.logger.level == LogLevel.WARNING
        assert cfg.metrics.enabled is True
        assert cfg.metrics.collection_interval_ms == 250
        assert [n.peer_id for n in cfg.full_node_networks] == ["A", "B"]
        assert cfg.full_node_networks[0].listen_address == "/ip4/127.0.0.1/tcp/7000"
        assert cfg.validator_network.peer_id == "V"
        assert cfg.runtime.entrypoint == "copy:deepcopy"
        assert cfg.data_dir == Path(raw["data_dir"])

    def test_defaults_applied(self, tmp_path, write_config):
        cfg = load_config(write_config({"full_node_networks": []}))
        assert cfg.metrics.enabled is False
        assert cfg.validator_network is None
        assert cfg.runtime.entrypoint is None
        assert cfg.logger.level == LogLevel.INFO

    def test_nodeconfig_load_classmethod(self, write_config):
        path = write_config(full_node_networks=_networks("A"))
        assert NodeConfig.load(path).network_identities() == ["A"]

    def test_identities_fullnodes_then_validator(self, tmp_path, write_config):
        path = write_config(
            full_node_networks=_networks("A", "B"),
            validator_network={"peer_id": "V"},
        )
        assert load_config(path).network_identities() == ["A", "B", "V"]

    def test_metrics_dir_relative_to_data_dir(self, tmp_path, write_config):
        cfg = load_config(write_config())
        assert cfg.metrics_dir() == tmp_path / "data" / "metrics"

    def test_metrics_dir_absolute(self, tmp_path, write_config):
        absolute = tmp_path / "abs-metrics"
        cfg = load_config(write_config(metrics={"enabled": True, "dir": str(absolute)}))
        assert cfg.metrics_dir() == absolute

    def test_yaml_round_trip(self, tmp_path, write_config):
        cfg = load_config(write_config(full_node_networks=_networks("A")))
        out = tmp_path / "dumped.yaml"
        cfg.to_yaml(out)
        assert load_config(out) == cfg


class TestImmutability:

    def test_assignment_rejected(self, write_config):
        cfg = load_config(write_config())
        with pytest.raises(ValidationError):
            cfg.data_dir = Path("/elsewhere")

    def test_nested_assignment_rejected(self, write_config):
        cfg = load_config(write_config())
        with pytest.raises(ValidationError):
            cfg.metrics.enabled = True

    def test_networks_are_tuples(self, write_config):
        cfg = load_config(write_config(full_node_networks=_networks("A")))
        assert isinstance(cfg.full_node_networks, tuple)


class TestLoadInvalid:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError) as exc:
            load_config(tmp_path / "does-not-exist.yaml")
        assert exc.value.exit_code == 2
        assert "not found" in str(exc.value)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="Empty"):
            load_config(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="mapping"):
            load_config(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("metrics: {enabled: true\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="Malformed YAML"):
            load_config(path)

    def test_unknown_key_reported(self, tmp_path, write_config):
        raw = base_config(tmp_path, bogus_section={"x": 1})
        with pytest.raises(ConfigLoadError) as exc:
            load_config(write_config(raw))
        errors = exc.value.errors
        assert any(e.error_type == "extra_key" and e.path == "bogus_section" for e in errors)

    def test_all_errors_collected(self, tmp_path, write_config):
        raw = base_config(
            tmp_path,
            metrics={"enabled": True, "collection_interval_ms": 0},
            logger={"chan_size": 0},
        )
        with pytest.raises(ConfigLoadError) as exc:
            load_config(write_config(raw))
        paths = {e.path for e in exc.value.errors}
        assert "metrics.collection_interval_ms" in paths
        assert "logger.chan_size" in paths

    def test_duplicate_identity_rejected(self, write_config):
        path = write_config(
            full_node_networks=_networks("A"),
            validator_network={"peer_id": "A"},
        )
        with pytest.raises(ConfigLoadError, match="Duplicate network identity"):
            load_config(path)

    @pytest.mark.parametrize("peer_id", ["../escape", "a/b", "", " "])
    def test_unsafe_peer_id_rejected(self, write_config, peer_id):
        with pytest.raises(ConfigLoadError):
            load_config(write_config(full_node_networks=_networks(peer_id)))

    def test_bad_entrypoint_format(self, write_config):
        with pytest.raises(ConfigLoadError):
            load_config(write_config(runtime={"entrypoint": "no_colon_here"}))

    def test_non_string_key_is_config_error(self, tmp_path):
        path = tmp_path / "int-key.yaml"
        path.write_text("1: x\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError) as exc:
            load_config(path)
        assert exc.value.exit_code == 2
        assert exc.value.errors

    def test_invalid_utf8_is_config_error(self, tmp_path):
        path = tmp_path / "latin1.yaml"
        path.write_bytes(b"data_dir: \xff\xfe\n")
        with pytest.raises(ConfigLoadError, match="not valid UTF-8") as exc:
            load_config(path)
        assert exc.value.exit_code == 2


class TestEnvCompanionFile:

    def test_env_local_loaded_without_override(self, tmp_path, write_config, monkeypatch):
        monkeypatch.setenv("NK_TEST_PRESET", "from-process")
        (tmp_path / ".env.local").write_text(
            "NK_TEST_PRESET=from-file\nNK_TEST_NEW=loaded\n", encoding="utf-8"
        )
        try:
            load_config(write_config())
            assert os.environ["NK_TEST_PRESET"] == "from-process"
            assert os.environ["NK_TEST_NEW"] == "loaded"
        finally:
            os.environ.pop("NK_TEST_NEW", None)

    def test_env_local_untouched_when_config_invalid(self, tmp_path, write_config, monkeypatch):
        monkeypatch.delenv("NK_TEST_LEAK", raising=False)
        (tmp_path / ".env.local").write_text("NK_TEST_LEAK=leaked\n", encoding="utf-8")
        path = write_config(metrics={"collection_interval_ms": -1})
        try:
            with pytest.raises(ConfigLoadError):
                load_config(path)
            assert "NK_TEST_LEAK" not in os.environ
        finally:
            os.environ.pop("NK_TEST_LEAK", None)


class TestValidateConfig:

    def test_valid(self, tmp_path):
        result = validate_config(base_config(tmp_path))
        assert result.ok
        assert result.error_count == 0
        assert result.summary() == "Config OK (0 errors)"

    def test_missing_required_field(self, tmp_path):
        result = validate_config(base_config(tmp_path, full_node_networks=[{}]))
        assert not result.ok
        err = result.errors[0]
        assert err.error_type == "missing"
        assert err.path == "full_node_networks.0.peer_id"
        assert "INVALID (1 errors)" in result.summary()

    def test_non_mapping(self):
        result = validate_config(["not", "a", "mapping"])
        assert not result.ok
        assert result.errors[0].error_type == "type_error"

    def test_non_string_key_reported_not_raised(self):
        result = validate_config({1: "x"})
        assert not result.ok
        assert result.error_count >= 1

    def test_config_error_str(self, tmp_path):
        result = validate_config(base_config(tmp_path, extra=1))
        assert str(result.errors[0]) == f"[extra_key] extra: {result.errors[0].message}"


class TestConfigHash:

    def test_deterministic(self):
        assert config_hash({"a": 1, "b": [1, 2]}) == config_hash({"b": [1, 2], "a": 1})

    def test_differs(self):
        assert config_hash({"a": 1}) != config_hash({"a": 2})
