# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for the context engine.

ContextConfig is an immutable snapshot. The engine swaps in a new snapshot on
update_config(), so a collection that already captured the previous snapshot
is never affected by a later override.

Two validation modes exist:
- from_file(): lenient. Invalid or unknown parameters are logged as warnings
  and the default is kept.
- merge(): strict. Any invalid or unknown parameter raises ConfigurationError
  and the receiver is left untouched.
"""

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from context_engine.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".context_engine.yml"

DEFAULT_EXCLUDE_PATTERNS: Tuple[str, ...] = (
    "node_modules/**",
    "dist/**",
    "build/**",
    "coverage/**",
    ".git/**",
    "*.min.js",
    "*.bundle.js",
    "*.map",
    "*.log",
    "package-lock.json",
    "yarn.lock",
)

_POSITIVE_INT_KEYS = ("max_files", "max_lines_per_file", "max_total_tokens")
_POSITIVE_SECONDS_KEYS = ("cache_max_age", "cache_cleanup_interval")
_BOOL_KEYS = ("include_imports", "enable_caching")


@dataclass(frozen=True)
class ContextConfig:
    """Budgets and cache settings for one engine session."""

    max_files: int = 5
    max_lines_per_file: int = 200
    max_total_tokens: int = 8000  # Conservative estimate for common context windows
    include_imports: bool = True
    exclude_patterns: Tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    enable_caching: bool = True
    cache_directory: str = ".context-cache"
    cache_max_age: float = 24 * 60 * 60  # seconds
    cache_cleanup_interval: float = 60 * 60  # seconds

    @classmethod
    def parameter_names(cls) -> Tuple[str, ...]:
        """Names of all configuration parameters."""
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextConfig":
        """Build a config from defaults plus the given overrides (strict)."""
        return cls().merge(data)

    @classmethod
    def from_file(cls, config_path: Optional[Path] = None) -> "ContextConfig":
        """Load configuration from a YAML file, falling back to defaults.

        Args:
            config_path: Path to configuration file. If None, uses
                .context_engine.yml in the current directory.

        Returns:
            ContextConfig with every valid parameter from the file applied.
        """
        if config_path is None:
            config_path = Path.cwd() / CONFIG_FILENAME

        if not config_path.exists():
            logger.info(f"Configuration file not found at {config_path}, using defaults")
            return cls()

        try:
            with open(config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(f"Error parsing configuration file {config_path}: {e}, using defaults")
            return cls()
        except OSError as e:
            logger.warning(f"Cannot read configuration file {config_path}: {e}, using defaults")
            return cls()

        if loaded_config is None:
            logger.warning("Configuration file is empty, using defaults")
            return cls()

        if not isinstance(loaded_config, dict):
            logger.warning(
                f"Configuration file must contain a YAML dictionary, "
                f"got {type(loaded_config)}, using defaults"
            )
            return cls()

        accepted: Dict[str, Any] = {}
        defaults = cls()
        for key, value in loaded_config.items():
            if key not in cls.parameter_names():
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue
            if not _validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {getattr(defaults, key)}"
                )
                continue
            accepted[key] = value

        return replace(defaults, **_normalize(accepted))

    def merge(self, partial: Dict[str, Any]) -> "ContextConfig":
        """Return a new config with partial applied on top of this one.

        Raises:
            ConfigurationError: If any key is unknown or any value is invalid.
        """
        errors = []
        for key, value in partial.items():
            if key not in self.parameter_names():
                errors.append(f"unknown parameter '{key}'")
            elif not _validate_parameter(key, value):
                errors.append(f"invalid value for '{key}': {value!r}")
        if errors:
            raise ConfigurationError("; ".join(errors))
        return replace(self, **_normalize(partial))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "max_files": self.max_files,
            "max_lines_per_file": self.max_lines_per_file,
            "max_total_tokens": self.max_total_tokens,
            "include_imports": self.include_imports,
            "exclude_patterns": list(self.exclude_patterns),
            "enable_caching": self.enable_caching,
            "cache_directory": self.cache_directory,
            "cache_max_age": self.cache_max_age,
            "cache_cleanup_interval": self.cache_cleanup_interval,
        }


def _validate_parameter(key: str, value: Any) -> bool:
    """Validate a configuration parameter.

    Returns:
        True if valid, False if invalid
    """
    # bool is a subclass of int and must not pass as a budget
    if key in _POSITIVE_INT_KEYS:
        return isinstance(value, int) and not isinstance(value, bool) and value > 0
    elif key in _POSITIVE_SECONDS_KEYS:
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
    elif key in _BOOL_KEYS:
        return isinstance(value, bool)
    elif key == "exclude_patterns":
        return isinstance(value, (list, tuple)) and all(isinstance(p, str) for p in value)
    elif key == "cache_directory":
        return isinstance(value, (str, Path)) and str(value) != ""
    return False


def _normalize(values: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce validated values to the field types stored on ContextConfig."""
    normalized = dict(values)
    if "exclude_patterns" in normalized:
        normalized["exclude_patterns"] = tuple(normalized["exclude_patterns"])
    if "cache_directory" in normalized:
        normalized["cache_directory"] = str(normalized["cache_directory"])
    for key in _POSITIVE_SECONDS_KEYS:
        if key in normalized:
            normalized[key] = float(normalized[key])
    return normalized
