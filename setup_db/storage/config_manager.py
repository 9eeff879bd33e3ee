"""
Manages loading, validation, and saving of the optional INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from setup_db.exceptions import ConfigurationError
from setup_db.models.config import ResolverConfig

log = logging.getLogger(__name__)

LIST_KEYS = {"excluded_id_prefixes", "excluded_ids", "library_prefixes"}
INT_KEYS = {"max_workers", "max_attempts"}
FLOAT_KEYS = {"request_timeout", "base_delay"}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> ResolverConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        A missing file is not an error: built-in defaults apply.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated ResolverConfig object.

        Raises:
            ConfigurationError: If the file cannot be parsed or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e
            config_from_file = self._get_config_as_dict()
        else:
            log.debug(
                f"No configuration file at '{self.config_file_path}', using defaults."
            )

        if cli_options:
            config_from_file.update(
                {k: v for k, v in cli_options.items() if v is not None}
            )

        try:
            return ResolverConfig(**config_from_file)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """
        Creates and saves a complete configuration file.

        Args:
            settings: Values to store; every other key gets its default.
        """
        try:
            values = ResolverConfig(**(settings or {}))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        for key in sorted(ResolverConfig.get_ini_keys()):
            value = getattr(values, key)
            if isinstance(value, list):
                config["DEFAULT"][key] = ",".join(value)
            else:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the known keys of the 'DEFAULT' section into a dictionary."""
        section = self._parser["DEFAULT"]
        known = ResolverConfig.get_ini_keys()
        result: dict[str, Any] = {}
        for key in section:
            if key not in known:
                log.warning(f"[yellow]Ignoring unknown config key '{key}'.[/yellow]")
                continue
            try:
                if key in LIST_KEYS:
                    result[key] = [
                        s.strip() for s in section.get(key, "").split(",") if s.strip()
                    ]
                elif key in INT_KEYS:
                    result[key] = section.getint(key)
                elif key in FLOAT_KEYS:
                    result[key] = section.getfloat(key)
                else:
                    result[key] = section.get(key)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for '{key}': {e}") from e
        return result
