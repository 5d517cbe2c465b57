"""Configuration management for the provisioner.

This module provides YAML-based configuration loading and saving,
following the XDG Base Directory Specification. One document holds both
what to install (``config``) and how the provisioner behaves
(``settings``).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from .models import ProvisionerSettings, ProvisioningConfig

logger = structlog.get_logger(__name__)


class ConfigError(Exception):
    """Raised when a configuration file is missing or invalid."""


def get_config_dir() -> Path:
    """Get the configuration directory following XDG spec.

    Returns:
        Path to the configuration directory.
    """
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    return base / "puerts-provisioner"


def get_default_config_path() -> Path:
    """Get the default configuration file path.

    Returns:
        Path to the default config file.
    """
    return get_config_dir() / "config.yaml"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from ``path``.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    if not path.exists():
        logger.debug("config_file_not_found", path=str(path))
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {path}")
    return data


class ConfigManager:
    """Loads and saves the provisioner configuration file.

    Example file::

        config:
          project_path: /work/Game/Game.uproject
          plugin_source: remote-mirror
          script_engine: binary-engine
          artifact_source: auto
          proxy:
            enabled: true
            url: http://127.0.0.1:7890
        settings:
          log_level: debug
          transfer_timeout_seconds: 600
    """

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to configuration file.
                        Uses default path if not provided.
        """
        self.config_path = config_path or get_default_config_path()
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            try:
                self._data = load_yaml(self.config_path)
            except FileNotFoundError:
                logger.info("using_default_config", path=str(self.config_path))
                self._data = {}
        return self._data

    def load_settings(self) -> ProvisionerSettings:
        """Load provisioner settings, falling back to defaults.

        Raises:
            ConfigError: If the settings section is invalid.
        """
        section = self._load().get("settings") or {}
        try:
            return ProvisionerSettings(**section)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings in {self.config_path}: {e}") from e

    def load_config(self, **overrides: Any) -> ProvisioningConfig:
        """Load the provisioning configuration.

        Args:
            **overrides: Field values that replace those from the file
                (None values are ignored).

        Raises:
            ConfigError: If required fields are missing or invalid.
        """
        section = dict(self._load().get("config") or {})
        section.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return ProvisioningConfig(**section)
        except ValidationError as e:
            raise ConfigError(f"Invalid provisioning config: {e}") from e

    def save(
        self,
        config: ProvisioningConfig | None = None,
        settings: ProvisionerSettings | None = None,
    ) -> None:
        """Write configuration and settings to the file.

        Sections not given keep their current on-disk content.
        """
        data = dict(self._load())
        if config is not None:
            data["config"] = config.model_dump(mode="json", exclude_none=True)
        if settings is not None:
            data["settings"] = settings.model_dump(mode="json", exclude_defaults=True)

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        content = yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
        self.config_path.write_text(content, encoding="utf-8")
        self._data = data
        logger.info("config_saved", path=str(self.config_path))

    def init_config(self, project_path: Path, force: bool = False) -> bool:
        """Initialize a new configuration file with defaults.

        Args:
            project_path: Project manifest to record.
            force: If True, overwrite existing configuration.

        Returns:
            True if configuration was created, False if it already exists.
        """
        if self.config_path.exists() and not force:
            logger.info("config_exists", path=str(self.config_path))
            return False

        self._data = {}
        self.save(ProvisioningConfig(project_path=project_path), ProvisionerSettings())
        logger.info("config_initialized", path=str(self.config_path))
        return True
