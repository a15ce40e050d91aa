"""Configuration file management for LUTWright.

Supports loading configuration from:
1. User config: ~/.lutwright/config.yaml
2. Project config: .lutwright.yaml (in current directory)
3. CLI arguments (highest precedence)

Config files are merged with CLI taking precedence over project over user.
A named profile (``--profile``) is applied on top of the file defaults and
below explicit CLI arguments.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.config import (
    DEFAULT_COMPLETED_GRACE,
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_MAX_CONCURRENT_DETECTIONS,
    DEFAULT_QUALITY,
    DEFAULT_SETTLE_DELAY,
    DEFAULT_STRENGTH,
    PipelineConfig,
)
from ..core.errors import ConfigError
from ..core.types import DitherMode

logger = logging.getLogger(__name__)


# Keys accepted under ``defaults`` and inside each profile
CONFIG_SCHEMA: Dict[str, Dict[str, Any]] = {
    "watch_dir": {"type": str, "default": None},
    "output_dir": {"type": str, "default": None},
    "lut_path": {"type": str, "default": None},
    "lut_dir": {"type": str, "default": None},
    "strength": {"type": int, "range": (0, 100), "default": DEFAULT_STRENGTH},
    "quality": {"type": int, "range": (1, 100), "default": DEFAULT_QUALITY},
    "dither": {"type": str, "choices": [m.value for m in DitherMode], "default": DitherMode.NONE.value},
    "settle_delay": {"type": float, "range": (0, 3600), "default": DEFAULT_SETTLE_DELAY},
    "completed_grace": {"type": float, "range": (0, 3600), "default": DEFAULT_COMPLETED_GRACE},
    "history_capacity": {"type": int, "range": (1, 100000), "default": DEFAULT_HISTORY_CAPACITY},
    "max_concurrent_detections": {
        "type": int,
        "range": (1, 64),
        "default": DEFAULT_MAX_CONCURRENT_DETECTIONS,
    },
    "process_timeout": {"type": float, "range": (0, 86400), "default": None},
}

# Config keys that are not PipelineConfig fields
_NON_PIPELINE_KEYS = {"lut_dir"}

DEFAULT_CONFIG_TEMPLATE = """\
# LUTWright Configuration File
# Location: ~/.lutwright/config.yaml or .lutwright.yaml (project-local)
#
# CLI arguments take precedence over config file values.
# Project-local config (.lutwright.yaml) overrides user config (~/.lutwright/config.yaml).

defaults:
  # Folder monitored by `lutwright watch`
  # watch_dir: ~/Pictures/incoming

  # Folder receiving transformed images
  # output_dir: ~/Pictures/graded

  # LUT applied to every image, and the folder `lutwright luts` lists
  # lut_path: ~/luts/film.cube
  # lut_dir: ~/luts

  # Blend strength, 0 (original) to 100 (full LUT)
  strength: 60

  # Encoder quality for JPEG/WebP output, 1-100
  quality: 90

  # Dithering before 8-bit output
  # Options: none, floyd, random
  dither: none

  # Seconds to wait after a file appears before reading it
  settle_delay: 1.0

  # Seconds a completed item stays visible in the queue
  completed_grace: 2.0

# Named profiles, applied with: lutwright batch --profile <name>
profiles:
  subtle:
    strength: 35
    dither: floyd

  full:
    strength: 100
    quality: 95
"""


@dataclass
class ValidationError:
    """Represents a config validation error."""
    path: str
    message: str
    value: Any = None


@dataclass
class ConfigFileManager:
    """Manages configuration file loading, saving, and merging.

    Attributes:
        user_config_path: Path to user-level config file
        project_config_path: Path to project-local config file
        loaded_config: The merged configuration dictionary
    """

    user_config_path: Path = field(default_factory=lambda: Path.home() / ".lutwright" / "config.yaml")
    project_config_path: Path = field(default_factory=lambda: Path.cwd() / ".lutwright.yaml")
    loaded_config: Dict[str, Any] = field(default_factory=dict)
    _validation_errors: List[ValidationError] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.user_config_path, Path):
            self.user_config_path = Path(self.user_config_path)
        if not isinstance(self.project_config_path, Path):
            self.project_config_path = Path(self.project_config_path)

    def load(self) -> Dict[str, Any]:
        """Load and merge configuration from all sources.

        Order of precedence (later overrides earlier):
        1. Built-in defaults
        2. User config (~/.lutwright/config.yaml)
        3. Project config (.lutwright.yaml)

        Returns:
            Merged configuration dictionary
        """
        self._validation_errors = []
        config: Dict[str, Any] = self._get_builtin_defaults()

        for path in (self.user_config_path, self.project_config_path):
            if path.exists():
                loaded = self._load_yaml_file(path)
                if loaded:
                    logger.debug(f"Loaded config file {path}")
                    config = self._deep_merge(config, loaded)

        self._validate_config(config)
        self.loaded_config = config
        return config

    def _get_builtin_defaults(self) -> Dict[str, Any]:
        defaults = {key: schema["default"] for key, schema in CONFIG_SCHEMA.items()}
        return {"defaults": defaults, "profiles": {}}

    def _load_yaml_file(self, path: Path) -> Optional[Dict[str, Any]]:
        """Parse one YAML file; problems are recorded as validation errors."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            self._validation_errors.append(
                ValidationError(path=str(path), message=f"YAML parsing error: {e}")
            )
            return None
        except OSError as e:
            self._validation_errors.append(
                ValidationError(path=str(path), message=f"Failed to read file: {e}")
            )
            return None

        if not isinstance(data, dict):
            self._validation_errors.append(
                ValidationError(path=str(path), message="Top level must be a mapping", value=data)
            )
            return None
        return data

    def _deep_merge(self, base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, overlay takes precedence."""
        result = base.copy()

        for key, value in overlay.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _validate_config(self, config: Dict[str, Any]) -> None:
        self._validate_section("defaults", config.get("defaults", {}))

        profiles = config.get("profiles", {})
        if not isinstance(profiles, dict):
            self._validation_errors.append(
                ValidationError(path="profiles", message="Profiles must be a mapping", value=profiles)
            )
            return
        for name, profile in profiles.items():
            if isinstance(profile, dict):
                self._validate_section(f"profiles.{name}", profile)
            else:
                self._validation_errors.append(
                    ValidationError(path=f"profiles.{name}", message="Profile must be a mapping", value=profile)
                )

    def _validate_section(self, prefix: str, section: Dict[str, Any]) -> None:
        for key, value in section.items():
            schema = CONFIG_SCHEMA.get(key)
            if schema is None:
                self._validation_errors.append(
                    ValidationError(path=f"{prefix}.{key}", message="Unknown setting", value=value)
                )
                continue
            if value is None:
                continue

            expected_type = schema.get("type")
            # bool is an int subclass but never a valid number here
            if isinstance(value, bool) or (
                expected_type and not isinstance(value, expected_type)
                and not (expected_type is float and isinstance(value, int))
            ):
                self._validation_errors.append(
                    ValidationError(
                        path=f"{prefix}.{key}",
                        message=f"Expected {expected_type.__name__}, got {type(value).__name__}",
                        value=value,
                    )
                )
                continue

            choices = schema.get("choices")
            if choices and value not in choices:
                self._validation_errors.append(
                    ValidationError(
                        path=f"{prefix}.{key}",
                        message=f"Invalid value. Must be one of: {choices}",
                        value=value,
                    )
                )

            value_range = schema.get("range")
            if value_range and isinstance(value, (int, float)):
                min_val, max_val = value_range
                if not (min_val <= value <= max_val):
                    self._validation_errors.append(
                        ValidationError(
                            path=f"{prefix}.{key}",
                            message=f"Value must be between {min_val} and {max_val}",
                            value=value,
                        )
                    )

    def get_validation_errors(self) -> List[ValidationError]:
        """Validation errors from the last load."""
        return self._validation_errors

    def raise_for_errors(self) -> None:
        """Raise ConfigError for the first validation error, if any."""
        if self._validation_errors:
            first = self._validation_errors[0]
            raise ConfigError(
                f"Invalid configuration at {first.path}: {first.message}",
                config_key=first.path,
                config_value=first.value,
            )

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a value by dot-notation path (e.g. ``"defaults.strength"``)."""
        value: Any = self.loaded_config
        for key in key_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value: Any, persist: bool = True) -> None:
        """Set a value by dot-notation path, saving the user file if ``persist``."""
        keys = key_path.split(".")
        config = self.loaded_config
        for key in keys[:-1]:
            config = config.setdefault(key, {})
        config[keys[-1]] = value

        if persist:
            self.save_user_config()

    def get_profile(self, profile_name: str) -> Optional[Dict[str, Any]]:
        """Defaults overlaid with a named profile, or None if it does not exist."""
        profiles = self.loaded_config.get("profiles", {})
        if profile_name not in profiles:
            return None

        merged = dict(self.loaded_config.get("defaults", {}))
        profile = profiles[profile_name]
        if isinstance(profile, dict):
            merged.update(profile)
        return merged

    def list_profiles(self) -> List[str]:
        profiles = self.loaded_config.get("profiles", {})
        return list(profiles.keys()) if isinstance(profiles, dict) else []

    def save_user_config(self) -> None:
        self.user_config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.user_config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.loaded_config, f, default_flow_style=False, sort_keys=False)

    def init_config(self, target: str = "user") -> Path:
        """Write the commented default template.

        Args:
            target: "user" for ~/.lutwright/config.yaml,
                   "project" for .lutwright.yaml

        Returns:
            Path to created config file
        """
        config_path = self.user_config_path if target == "user" else self.project_config_path
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(DEFAULT_CONFIG_TEMPLATE)
        return config_path

    def show_config(self, as_yaml: bool = True) -> str:
        """Current configuration as YAML, or as ``key=value`` lines."""
        if as_yaml:
            return yaml.safe_dump(self.loaded_config, default_flow_style=False, sort_keys=False)
        lines: List[str] = []
        self._flatten_config(self.loaded_config, "", lines)
        return "\n".join(lines)

    def _flatten_config(self, config: Dict[str, Any], prefix: str, lines: List[str]) -> None:
        for key, value in config.items():
            full_key = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict):
                self._flatten_config(value, full_key, lines)
            else:
                lines.append(f"{full_key}={value}")

    def merge_with_cli_args(self, cli_args: Dict[str, Any]) -> Dict[str, Any]:
        """Merge loaded config with CLI arguments.

        Starts from the file defaults (or the selected profile) and
        overrides with every CLI value that is not None.

        Raises:
            ConfigError: If ``cli_args["profile"]`` names an unknown profile.
        """
        result = dict(self.loaded_config.get("defaults", {}))

        profile_name = cli_args.get("profile")
        if profile_name:
            profile_config = self.get_profile(profile_name)
            if profile_config is None:
                raise ConfigError(
                    f"Unknown profile: {profile_name}",
                    config_key="profile",
                    config_value=profile_name,
                    valid_values=self.list_profiles(),
                )
            result = profile_config

        for key in CONFIG_SCHEMA:
            if cli_args.get(key) is not None:
                result[key] = cli_args[key]

        return result

    def to_pipeline_config(self, cli_args: Optional[Dict[str, Any]] = None) -> PipelineConfig:
        """Build a ``PipelineConfig`` from files, profile and CLI arguments.

        A ``lut_path`` that does not exist as given is looked up by name
        in ``lut_dir``.
        """
        self.raise_for_errors()
        merged = self.merge_with_cli_args(cli_args or {})

        lut_path, lut_dir = merged.get("lut_path"), merged.get("lut_dir")
        if lut_path and lut_dir and not Path(lut_path).expanduser().exists():
            candidate = Path(lut_dir).expanduser() / lut_path
            if candidate.is_file():
                merged["lut_path"] = str(candidate)

        values = {
            k: v for k, v in merged.items()
            if k not in _NON_PIPELINE_KEYS and v is not None
        }
        return PipelineConfig.from_dict(values)

    def config_exists(self) -> bool:
        return self.user_config_path.exists() or self.project_config_path.exists()


def get_config_manager(config_path: Optional[Path] = None) -> ConfigFileManager:
    """Return a loaded ConfigFileManager.

    Args:
        config_path: Explicit config file used in place of the project file
    """
    manager = ConfigFileManager()
    if config_path is not None:
        config_path = Path(config_path).expanduser()
        if not config_path.is_file():
            raise ConfigError(
                f"Config file not found: {config_path}",
                config_key="config",
                config_value=str(config_path),
            )
        manager.project_config_path = config_path
    manager.load()
    return manager


__all__ = [
    "CONFIG_SCHEMA",
    "DEFAULT_CONFIG_TEMPLATE",
    "ValidationError",
    "ConfigFileManager",
    "get_config_manager",
]
