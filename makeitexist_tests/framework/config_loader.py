"""
================================================================================
Configuration Loader
================================================================================

YAML-based configuration management with environment variable override and
per-environment sections.

Features:
    - Hierarchical YAML configuration loading
    - Environment variable override (API_BASE_URL overrides api.base_url)
    - Target environment selection (dev, staging, prod) via TEST_ENV
    - Dot notation path access
    - Default value support

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger


# Default configuration file path
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"

DEFAULT_ENV = "dev"
SUPPORTED_ENVS = ("dev", "staging", "prod")


class ConfigurationError(Exception):
    """Raised when configuration loading or access fails."""
    pass


class ConfigLoader:
    """
    Configuration loader with YAML, per-environment and env var support.

    Configuration hierarchy (highest to lowest priority):
        1. Environment variables (API_BASE_URL)
        2. environments.<active env> section of the YAML file
        3. Top-level YAML configuration
        4. Default values

    The active environment comes from the TEST_ENV variable, then the
    ``test.env`` key, then ``dev``.

    Usage:
        >>> config = ConfigLoader()
        >>> config.env
        'dev'
        >>> config.get("api.base_url")
        'http://localhost:8080/api/v1'
        >>> config.get("api.retry_count", 1)
        1

    Environment Variable Mapping:
        - api.base_url -> API_BASE_URL
        - auth.admin_password -> AUTH_ADMIN_PASSWORD
        - google.auth_client_id -> GOOGLE_AUTH_CLIENT_ID
    """

    _instance: Optional["ConfigLoader"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls, config_path: Optional[Path] = None) -> "ConfigLoader":
        """
        Singleton pattern - return existing instance if available.

        Configuration is loaded once per process so every suite run and
        fixture sees the same target environment.
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """
        Initialize configuration loader.

        Args:
            config_path: Path to YAML configuration file.
                        Uses DEFAULT_CONFIG_PATH if not specified.
        """
        if getattr(self, "_initialized", False):
            return

        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._load_config()
        self._initialized = True

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            logger.warning(
                f"Configuration file not found: {self._config_path}. "
                f"Using defaults and environment variables only."
            )
            self._config = {}
            return

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                self._config = yaml.safe_load(f) or {}
            logger.debug(f"Loaded configuration from: {self._config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {e}"
            ) from e

        if not isinstance(self._config, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping: {self._config_path}"
            )

    @property
    def env(self) -> str:
        """Name of the active target environment."""
        env = os.environ.get("TEST_ENV") or _lookup(self._config, "test.env") or DEFAULT_ENV
        env = str(env).lower()
        if env not in SUPPORTED_ENVS:
            raise ConfigurationError(
                f"Unknown environment '{env}'. Expected one of: {', '.join(SUPPORTED_ENVS)}"
            )
        return env

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        First checks environment variables, then the active environment
        section, then the top-level YAML config, then the default.

        Args:
            key: Dot-notation path (e.g., "api.base_url")
            default: Default value if key not found

        Returns:
            Configuration value or default

        Examples:
            >>> config.get("api.base_url")
            'http://localhost:8080/api/v1'

            >>> config.get("api.retry_count", 1)
            1
        """
        # Check environment variable first
        env_key = key.upper().replace(".", "_")
        env_value = os.environ.get(env_key)
        if env_value is not None:
            return self._convert_type(env_value, default)

        value = _lookup(self._config, f"environments.{self.env}.{key}")
        if value is not None:
            return value

        value = _lookup(self._config, key)
        if value is None:
            return default
        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get entire configuration section, merged with the active environment.

        Args:
            section: Section name (e.g., "api", "auth")

        Returns:
            Section dictionary or empty dict if not found
        """
        merged = dict(self._config.get(section) or {})
        env_section = _lookup(self._config, f"environments.{self.env}.{section}")
        if isinstance(env_section, dict):
            merged.update(env_section)
        return merged

    def reload(self) -> None:
        """
        Reload configuration from file.

        Useful when configuration file has been updated during runtime.
        """
        self._load_config()
        logger.info(f"Configuration reloaded from: {self._config_path}")

    def _convert_type(self, value: str, reference: Any) -> Any:
        """
        Convert string value to match reference type.

        Used for environment variables which are always strings.
        """
        if reference is None:
            return value

        if isinstance(reference, bool):
            return value.lower() in ("true", "1", "yes", "on")
        if isinstance(reference, int):
            try:
                return int(value)
            except ValueError:
                return value
        if isinstance(reference, float):
            try:
                return float(value)
            except ValueError:
                return value

        return value

    @classmethod
    def reset(cls) -> None:
        """
        Reset singleton instance.

        Useful for testing when configuration needs to be reloaded
        with different settings.
        """
        cls._instance = None
        cls._config = {}


def _lookup(data: Dict[str, Any], key: str) -> Any:
    """Navigate nested dictionaries by dot notation, None when absent."""
    value: Any = data
    for part in key.split("."):
        if isinstance(value, dict):
            value = value.get(part)
        else:
            return None
        if value is None:
            return None
    return value


__all__ = [
    "ConfigLoader",
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "SUPPORTED_ENVS",
]
