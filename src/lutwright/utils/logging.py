"""Structured logging utilities for LUTWright.

This module provides configurable logging with support for:
- JSON format for machine parsing
- Human-readable text format for terminals
- Component-specific log levels
- Rotating log files
- Item lifecycle helpers that attach structured fields

Example usage:
    >>> from lutwright.utils.logging import get_logger, LogConfig, configure_logging
    >>>
    >>> # Configure logging at application startup
    >>> config = LogConfig(
    ...     log_level="INFO",
    ...     log_format="json",
    ...     log_file="./logs/lutwright.log",
    ...     component_levels={"orchestrator": "DEBUG"},
    ... )
    >>> configure_logging(config)
    >>>
    >>> logger = get_logger("cli")
    >>> logger.info("Batch queued", total=12, lut="film.cube")
"""

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Literal, Optional

# Type aliases
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]

ROOT_LOGGER_NAME = "lutwright"
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class LogConfig:
    """Configuration for LUTWright logging.

    Attributes:
        log_level: Default log level for all components
        log_format: Output format ('text' for human-readable, 'json' for structured)
        log_file: Optional file path for log output
        component_levels: Component-specific log levels, keyed by the
            logger name below ``lutwright`` (e.g. ``"orchestrator"``)
        max_file_size_mb: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
        include_timestamp: Whether to include timestamps in text output
        include_source: Whether to include source file/line information
    """

    log_level: LogLevel = "INFO"
    log_format: LogFormat = "text"
    log_file: Optional[str] = None
    component_levels: Dict[str, LogLevel] = field(default_factory=dict)
    max_file_size_mb: int = 10
    backup_count: int = 5
    include_timestamp: bool = True
    include_source: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.log_level.upper() not in VALID_LEVELS:
            raise ValueError(
                f"Invalid log_level '{self.log_level}'. "
                f"Must be one of: {', '.join(VALID_LEVELS)}"
            )
        if self.log_format not in ("text", "json"):
            raise ValueError(
                f"Invalid log_format '{self.log_format}'. "
                "Must be 'text' or 'json'"
            )
        for component, level in self.component_levels.items():
            if level.upper() not in VALID_LEVELS:
                raise ValueError(
                    f"Invalid log level '{level}' for component '{component}'"
                )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogConfig":
        """Create LogConfig from dictionary."""
        return cls(
            log_level=data.get("log_level", "INFO"),
            log_format=data.get("log_format", "text"),
            log_file=data.get("log_file"),
            component_levels=data.get("component_levels", {}),
            max_file_size_mb=data.get("max_file_size_mb", 10),
            backup_count=data.get("backup_count", 5),
            include_timestamp=data.get("include_timestamp", True),
            include_source=data.get("include_source", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log_level": self.log_level,
            "log_format": self.log_format,
            "log_file": self.log_file,
            "component_levels": dict(self.component_levels),
            "max_file_size_mb": self.max_file_size_mb,
            "backup_count": self.backup_count,
            "include_timestamp": self.include_timestamp,
            "include_source": self.include_source,
        }


class JSONFormatter(logging.Formatter):
    """JSON log formatter, one object per line.

    {
        "timestamp": "2026-01-05T10:30:45.123Z",
        "level": "INFO",
        "component": "orchestrator",
        "message": "Completed IMG_0001.jpg",
        "item_id": "3f2a9c1d0b7e"
    }
    """

    def __init__(self, include_source: bool = False) -> None:
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "component": record.name.split(".")[-1],
            "message": record.getMessage(),
        }

        if self.include_source:
            log_entry["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_entry.update(extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter.

    2026-01-05 10:30:45 | INFO     | orchestrator | Completed IMG_0001.jpg [item_id=3f2a9c1d0b7e]
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_source: bool = False,
    ) -> None:
        self.include_timestamp = include_timestamp
        self.include_source = include_source

        if include_timestamp:
            fmt = "%(asctime)s | %(levelname)-8s | %(component)-12s | %(message)s"
        else:
            fmt = "%(levelname)-8s | %(component)-12s | %(message)s"

        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so other handlers see the original record
        record = logging.makeLogRecord(record.__dict__)
        record.component = record.name.split(".")[-1]

        message = record.getMessage()
        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            extra_str = ", ".join(f"{k}={v}" for k, v in extra_fields.items())
            message = f"{message} [{extra_str}]"
        if self.include_source:
            message = f"{message} ({record.filename}:{record.lineno})"

        record.msg = message
        record.args = None
        return super().format(record)


class LutwrightLogger(logging.LoggerAdapter):
    """Logger adapter that turns keyword arguments into structured fields.

    >>> logger = get_logger("cli")
    >>> logger.info("Batch queued", total=4)
    """

    def __init__(
        self,
        logger: logging.Logger,
        component: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(logger, extra or {})
        self.component = component

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra_fields = {}
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra_fields[key] = kwargs.pop(key)

        if self.extra:
            extra_fields.update(self.extra)

        kwargs.setdefault("extra", {})
        kwargs["extra"]["extra_fields"] = extra_fields
        return msg, kwargs

    def item_queued(self, item_id: str, file_name: str, **kwargs: Any) -> None:
        self.debug(f"Queued {file_name}", item_id=item_id, **kwargs)

    def item_completed(
        self,
        item_id: str,
        file_name: str,
        duration_seconds: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        if duration_seconds is not None:
            kwargs["duration_seconds"] = round(duration_seconds, 2)
        self.info(f"Completed {file_name}", item_id=item_id, **kwargs)

    def item_failed(self, item_id: str, file_name: str, reason: str, **kwargs: Any) -> None:
        self.warning(f"Failed {file_name}: {reason}", item_id=item_id, **kwargs)

    def batch_progress(self, index: int, total: int, **kwargs: Any) -> None:
        """Log position within a manual batch (1-based index)."""
        progress_pct = (index / total * 100) if total > 0 else 0
        self.info(
            f"Batch progress: {index}/{total}",
            index=index,
            total=total,
            progress_pct=round(progress_pct, 1),
            **kwargs,
        )


# Global configuration
_log_config: Optional[LogConfig] = None
_configured_loggers: Dict[str, LutwrightLogger] = {}


def _make_formatter(config: LogConfig, log_format: Optional[str] = None) -> logging.Formatter:
    if (log_format or config.log_format) == "json":
        return JSONFormatter(include_source=config.include_source)
    return TextFormatter(
        include_timestamp=config.include_timestamp,
        include_source=config.include_source,
    )


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """Configure handlers and levels on the ``lutwright`` logger.

    Call once at application startup. Calling again replaces the handlers.
    """
    global _log_config

    if config is None:
        config = LogConfig()

    _log_config = config

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, config.log_level.upper()))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = _make_formatter(config)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(getattr(logging, config.log_level.upper()))
    root_logger.addHandler(console_handler)

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(getattr(logging, config.log_level.upper()))
        root_logger.addHandler(file_handler)

    for component, level in config.component_levels.items():
        logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}").setLevel(
            getattr(logging, level.upper())
        )

    root_logger.propagate = False


def get_logger(component: str) -> LutwrightLogger:
    """Get a structured logger for a component.

    Configures logging with defaults on first use.

    Example:
        >>> logger = get_logger("cli")
        >>> logger.info("Watching", directory="./incoming")
    """
    if _log_config is None:
        configure_logging()

    if component in _configured_loggers:
        return _configured_loggers[component]

    base_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
    if _log_config and component in _log_config.component_levels:
        base_logger.setLevel(getattr(logging, _log_config.component_levels[component].upper()))

    logger = LutwrightLogger(base_logger, component)
    _configured_loggers[component] = logger
    return logger


def get_config() -> Optional[LogConfig]:
    """Get current logging configuration."""
    return _log_config


def set_level(level: LogLevel, component: Optional[str] = None) -> None:
    """Set a log level at runtime on one component or the package root."""
    name = f"{ROOT_LOGGER_NAME}.{component}" if component else ROOT_LOGGER_NAME
    logging.getLogger(name).setLevel(getattr(logging, level.upper()))


# Convenience functions for CLI integration


def configure_from_cli(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> LogConfig:
    """Configure logging from ``--log-level``, ``--log-format`` and ``--log-file``."""
    config = LogConfig(
        log_level=log_level.upper() if log_level else "INFO",
        log_format=log_format if log_format in ("text", "json") else "text",
        log_file=log_file,
    )
    configure_logging(config)
    return config


def get_cli_args_parser():
    """Argument specs for logging options, as ``(flags, kwargs)`` tuples."""
    return [
        (
            ("--log-level",),
            {
                "type": str.upper,
                "choices": list(VALID_LEVELS),
                "default": "INFO",
                "help": "Set logging level (default: INFO)",
            },
        ),
        (
            ("--log-format",),
            {
                "type": str,
                "choices": ["text", "json"],
                "default": "text",
                "help": "Set logging format (default: text)",
            },
        ),
        (
            ("--log-file",),
            {
                "type": str,
                "default": None,
                "help": "Path to log file (default: stderr only)",
            },
        ),
    ]


__all__ = [
    "LogConfig",
    "JSONFormatter",
    "TextFormatter",
    "LutwrightLogger",
    "configure_logging",
    "get_logger",
    "get_config",
    "set_level",
    "configure_from_cli",
    "get_cli_args_parser",
]
