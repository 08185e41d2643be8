import os
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from reference_discovery.models.config import PipelineConfig
from reference_discovery.utils.exceptions import ConfigValidationError

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = "config/pipeline_config.yaml"


class ConfigManager:
    """Reads, expands and validates the pipeline YAML once per instance"""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH, load_env: bool = True):
        self.config_path = Path(config_path)
        self.env_loaded = not load_env
        self._config: Optional[PipelineConfig] = None

    def _read_mapping(self) -> Dict[str, Any]:
        try:
            text = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigValidationError(f"Cannot read {self.config_path}: {e}")

        # Unknown ${VAR}s stay literal; provider settings read them as unset
        expanded = Template(text).safe_substitute(os.environ)
        try:
            data = yaml.safe_load(expanded)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"Top level of {self.config_path} must be a mapping, "
                f"got {type(data).__name__}"
            )
        return data

    def load_config(self) -> PipelineConfig:
        """Parse the config file into a PipelineConfig.

        Variables from a .env file are loaded into the environment first,
        unless the manager was built with ``load_env=False``.

        Raises:
            FileNotFoundError: No file at config_path
            ConfigValidationError: Unreadable file, bad YAML or bad values
        """
        if self._config:
            return self._config

        if not self.env_loaded:
            load_dotenv()
            self.env_loaded = True

        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        data = self._read_mapping()
        try:
            self._config = PipelineConfig(**data)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid configuration: {e}")

        logger.info(
            "config_loaded",
            path=str(self.config_path),
            providers=[
                p.value for p, s in self._config.search.providers.items() if s.enabled
            ],
        )
        return self._config

    def load_or_default(self) -> PipelineConfig:
        """Like load_config, but a missing file yields the built-in defaults."""
        if self.config_path.exists():
            return self.load_config()
        logger.info("config_default_used", path=str(self.config_path))
        self._config = PipelineConfig()
        return self._config
