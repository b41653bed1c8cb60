"""Configuration management for plan inspector."""

import yaml
from typing import Dict, Any, List, Optional, Union
from pathlib import Path

from .exceptions import ConfigurationError


DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
CONFIG_FILE = "inspector.yaml"


class ConfigManager:
    """Manages application configuration from YAML files."""

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self._settings: Optional[Dict[str, Any]] = None

    @property
    def settings(self) -> Dict[str, Any]:
        """Load and cache the inspector configuration."""
        if self._settings is None:
            self._settings = self._load_yaml(CONFIG_FILE)
        return self._settings

    def use_config_dir(self, config_dir: Union[str, Path]) -> None:
        """Point the manager at another directory and drop cached settings."""
        self.config_dir = Path(config_dir)
        self._settings = None

    def _load_yaml(self, filename: str) -> Dict[str, Any]:
        """Load YAML configuration file."""
        file_path = self.config_dir / filename

        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {filename}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"{filename} must contain a mapping at the top level")
        return data

    def get_classifier_config(self) -> Dict[str, Any]:
        """Get archive classification settings."""
        return self.settings.get("classifier", {})

    def get_parser_config(self) -> Dict[str, Any]:
        """Get log parser settings."""
        return self.settings.get("parser", {})

    def get_archive_config(self) -> Dict[str, Any]:
        """Get archive dispatch settings."""
        return self.settings.get("archive", {})

    def get_log_signatures(self) -> List[str]:
        """Get substrings that identify controller log content."""
        return self.get_classifier_config().get("log_signatures", [])

    def get_api_group(self) -> str:
        """Get the platform API group for YAML resources."""
        return self.get_classifier_config().get("api_group", "forklift.konveyor.io")


# Global configuration instance
config = ConfigManager()
