"""Configuration resolver with 4-level priority.

Priority (highest to lowest):
1. CLI arguments (or explicit overrides from the host application)
2. Environment variables (WASTETRACE_*)
3. Config files (user > system)
4. Defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from wastetrace.core.errors import ConfigError

ALLOWED_LOGGING_LEVELS = frozenset({"quiet", "normal", "verbose", "debug"})
DEFAULT_LOGGING_LEVEL = "normal"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class ConfigSource:
    """Represents where a config value came from."""

    value: Any
    source: str  # 'cli' | 'env' | 'user_config' | 'system_config' | 'default'


class ConfigResolver:
    """Resolve configuration with strict 4-level priority.

    Example:
        resolver = ConfigResolver(
            cli_args={'uploads': {'max_concurrency': 2}},
            user_config_path=Path('~/.config/wastetrace/config.yaml')
        )

        value, source = resolver.resolve('uploads.max_concurrency')
        # value = 2, source = 'cli'
    """

    def __init__(
        self,
        cli_args: dict[str, Any] | None = None,
        user_config_path: Path | None = None,
        system_config_path: Path | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        """Initialize config resolver.

        Args:
            cli_args: Explicit overrides (highest priority)
            user_config_path: Path to user config file
            system_config_path: Path to system config file
            defaults: Default values (lowest priority)
        """
        self.cli_args = cli_args or {}
        self.user_config_path = user_config_path or Path.home() / ".config/wastetrace/config.yaml"
        self.system_config_path = system_config_path or Path("/etc/wastetrace/config.yaml")
        self.defaults = defaults if defaults is not None else self._default_config()

        self._user_config: dict[str, Any] | None = None
        self._system_config: dict[str, Any] | None = None

    def resolve(self, key: str) -> tuple[Any, str]:
        """Resolve config value with priority.

        Args:
            key: Config key (supports dot notation: 'logging.level')

        Returns:
            (value, source) tuple

        Raises:
            ConfigError: If key not found in any source
        """
        value = self._get_nested(self.cli_args, key)
        if value is not None:
            return value, "cli"

        value = self._from_env(key)
        if value is not None:
            return value, "env"

        value = self._get_nested(self._get_user_config(), key)
        if value is not None:
            return value, "user_config"

        value = self._get_nested(self._get_system_config(), key)
        if value is not None:
            return value, "system_config"

        value = self._get_nested(self.defaults, key)
        if value is not None:
            return value, "default"

        raise ConfigError(f"Config key '{key}' not found in any source")

    def resolve_or(self, key: str, fallback: Any) -> Any:
        """Resolve a key, returning fallback when no source provides it."""
        try:
            value, _src = self.resolve(key)
        except ConfigError as e:
            if "not found in any source" in str(e):
                return fallback
            raise
        return value

    def resolve_int(self, key: str, fallback: int, *, minimum: int | None = None) -> int:
        """Resolve an integer key; env values arrive as strings and are parsed."""
        value = self.resolve_or(key, fallback)
        if isinstance(value, bool):
            raise ConfigError(f"Config key '{key}' must be an int, got bool")
        if isinstance(value, str):
            if not value.strip().lstrip("-").isdigit():
                raise ConfigError(f"Config key '{key}' must be an int, got {value!r}")
            value = int(value.strip())
        if not isinstance(value, int):
            raise ConfigError(f"Config key '{key}' must be an int, got {type(value).__name__}")
        if minimum is not None and value < minimum:
            raise ConfigError(f"Config key '{key}' must be >= {minimum}, got {value}")
        return value

    def resolve_bool(self, key: str, fallback: bool) -> bool:
        """Resolve a boolean key; accepts true/false style strings."""
        value = self.resolve_or(key, fallback)
        if isinstance(value, bool):
            return value
        s = str(value).strip().lower()
        if s in _TRUE_VALUES:
            return True
        if s in _FALSE_VALUES:
            return False
        raise ConfigError(f"Config key '{key}' must be a bool, got {value!r}")

    def resolve_logging_level(self) -> str:
        """Resolve and validate logging.level.

        Allowed values (after normalization):
            quiet | normal | verbose | debug

        Raises:
            ConfigError: If the resolved value is invalid.
        """
        key = "logging.level"
        value = self.resolve_or(key, DEFAULT_LOGGING_LEVEL)
        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")

        norm = value.strip().lower()
        if norm not in ALLOWED_LOGGING_LEVELS:
            allowed = ", ".join(sorted(ALLOWED_LOGGING_LEVELS))
            raise ConfigError(f"Invalid '{key}': {value!r}. Allowed values: {allowed}")
        return norm

    def resolve_all(self) -> dict[str, ConfigSource]:
        """Resolve every leaf key known from defaults and explicit overrides.

        Returns:
            Dict of dot-notation key -> ConfigSource
        """
        keys = sorted(set(self._leaf_keys(self.defaults)) | set(self._leaf_keys(self.cli_args)))
        result: dict[str, ConfigSource] = {}
        for key in keys:
            try:
                value, source = self.resolve(key)
            except ConfigError as e:
                if "not found in any source" in str(e):
                    continue
                raise
            result[key] = ConfigSource(value=value, source=source)
        return result

    def _leaf_keys(self, data: dict[str, Any], prefix: str = "") -> list[str]:
        keys: list[str] = []
        for name, value in data.items():
            key = f"{prefix}{name}"
            if isinstance(value, dict):
                keys.extend(self._leaf_keys(value, f"{key}."))
            else:
                keys.append(key)
        return keys

    def _from_env(self, key: str) -> Any | None:
        """Get value from environment variables.

        Environment variable format: WASTETRACE_KEY_NAME
        Example: WASTETRACE_UPLOADS_MAX_CONCURRENCY
        """
        env_key = f"WASTETRACE_{key.upper().replace('.', '_')}"
        return os.environ.get(env_key)

    def _get_user_config(self) -> dict[str, Any]:
        if self._user_config is None:
            self._user_config = self._load_yaml(self.user_config_path)
        return self._user_config

    def _get_system_config(self) -> dict[str, Any]:
        if self._system_config is None:
            self._system_config = self._load_yaml(self.system_config_path)
        return self._system_config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    def _get_nested(self, data: dict[str, Any], key: str) -> Any | None:
        """Get nested value using dot notation.

        Example:
            data = {'logging': {'level': 'debug'}}
            _get_nested(data, 'logging.level') -> 'debug'
        """
        current: Any = data
        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None
        return current

    @staticmethod
    def _default_config() -> dict[str, Any]:
        """Default configuration."""
        return {
            "logging": {
                "level": "normal",
                "color": True,
            },
            "uploads": {
                "max_concurrency": 4,
            },
            "attachments": {
                "max_files": {
                    "evidence_photo": 10,
                    "quality_metrics": 3,
                    "output_quality_metrics": 3,
                    "haz_waste_certificate": 5,
                },
            },
            # Legacy API convention: falsy numerics (including 0) are sent as null.
            "payload": {
                "legacy_falsy_numeric_null": True,
            },
            "diagnostics": {
                "enabled": False,
                "path": str(Path.home() / ".wastetrace" / "diagnostics.jsonl"),
            },
        }
