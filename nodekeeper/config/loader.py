"""
Configuration loader.

Loads the node configuration from:
1. node.yaml (the path given on the command line)
2. .env.local beside it (loaded into process env once the config
   validates, never overriding)

No partial success: either a fully validated NodeConfig comes back or
ConfigLoadError is raised.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from nodekeeper.errors import ConfigLoadError

from .env import load_env
from .schema import NodeConfig
from .validator import pydantic_errors_to_config_errors


class ConfigLoader:
    """
    Reads and validates one node config file.

    The .env.local companion file is how operators hand the structured
    logging sink its settings without touching the YAML.
    """

    SECRETS_FILENAME = ".env.local"

    def __init__(self, config_path: Union[str, Path]):
        self.config_file = Path(config_path)

    def load(self) -> Dict[str, Any]:
        """
        Read the raw config mapping.

        Raises:
            ConfigLoadError: If the file is missing, unreadable or not a mapping
        """
        if not self.config_file.is_file():
            raise ConfigLoadError(f"Configuration file not found: {self.config_file}")

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except OSError as e:
            raise ConfigLoadError(f"Cannot read configuration file {self.config_file}: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigLoadError(f"Configuration file {self.config_file} is not valid UTF-8: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Malformed YAML in {self.config_file}: {e}") from e

        if config is None:
            raise ConfigLoadError(f"Empty configuration file: {self.config_file}")
        if not isinstance(config, dict):
            raise ConfigLoadError(
                f"Configuration root must be a mapping, got {type(config).__name__}: {self.config_file}"
            )

        return config

    def load_and_validate(self) -> NodeConfig:
        """
        Load and validate configuration.

        Returns:
            Frozen NodeConfig instance
        """
        config_dict = self.load()

        try:
            config = NodeConfig.model_validate(config_dict)
        except ValidationError as e:
            raise ConfigLoadError(
                f"Configuration validation failed for {self.config_file}",
                errors=pydantic_errors_to_config_errors(e),
            ) from e

        # Only a valid config may touch the process environment
        load_env([self.config_file.parent], filenames=(self.SECRETS_FILENAME,))
        return config


def load_config(config_path: Union[str, Path]) -> NodeConfig:
    """
    Convenience function to load and validate configuration.

    Args:
        config_path: Path to the node config YAML

    Returns:
        Validated NodeConfig instance
    """
    return ConfigLoader(config_path).load_and_validate()
