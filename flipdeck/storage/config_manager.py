"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from flipdeck.exceptions import ConfigurationError
from flipdeck.models.config import AppConfig

log = logging.getLogger(__name__)

# Environment variables take precedence over the file, CLI options over both
ENV_OVERRIDES = {
    "FLIPDECK_REMOTE_URL": "remote_url",
    "FLIPDECK_API_KEY": "api_key",
}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> AppConfig:
        """
        Loads configuration from the INI file and the environment, applies CLI
        overrides, and validates it.

        A missing file is not an error when the environment supplies the remote
        endpoint and key.

        Raises:
            ConfigurationError: If the config file is invalid or validation fails.
        """
        config_values: dict[str, Any] = {}

        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_values = self._get_config_as_dict()

        for env_var, key in ENV_OVERRIDES.items():
            if value := os.environ.get(env_var):
                config_values[key] = value

        if cli_options:
            config_values.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return AppConfig(**config_values, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file, filling unspecified keys
        with model defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = AppConfig.model_construct()
        for key in sorted(AppConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if isinstance(value, bool):
                config["DEFAULT"][key] = "true" if value else "false"
            elif value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        try:
            return {
                "remote_url": section.get("remote_url", ""),
                "api_key": section.get("api_key", ""),
                "load_timeout": section.getfloat("load_timeout", 10.0),
                "refresh_timeout": section.getfloat("refresh_timeout", 5.0),
                "probe_interval": section.getfloat("probe_interval", 30.0),
                "json_logs": section.getboolean("json_logs", False),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def get_display_dict(self) -> dict[str, Any]:
        """Returns the file's settings for display, without validating them."""
        if self.config_file_path.is_file():
            self._parser.read(self.config_file_path, encoding="utf-8")
        return self._get_config_as_dict()

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = AppConfig.model_construct()
        needs_saving = False
        config_section = self._parser["DEFAULT"]

        for key in sorted(AppConfig.get_ini_keys()):
            if key in config_section:
                continue
            default_value = getattr(defaults, key)
            if isinstance(default_value, bool):
                config_section[key] = "true" if default_value else "false"
            else:
                config_section[key] = str(default_value)
            needs_saving = True
            log.debug(
                f"Migrating config: added missing key '{key}' with "
                f"value '{config_section[key]}'."
            )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
