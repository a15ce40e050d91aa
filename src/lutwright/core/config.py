"""Run configuration for the LUTWright pipeline.

``PipelineConfig`` carries everything a processing run needs: where images
come from and go to, which LUT to apply, the blend/encode settings, and the
timing knobs of the orchestrator. ``validate()`` raises ``ConfigError``
before any work is accepted.

Example usage:

    >>> from lutwright.core.config import PipelineConfig
    >>> config = PipelineConfig(
    ...     output_dir="./graded",
    ...     lut_path="./luts/film.cube",
    ...     strength=80,
    ...     dither="floyd",
    ... )
    >>> config.validate()
    >>> params = config.run_parameters()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import ConfigError
from .types import DitherMode, RunParameters

logger = logging.getLogger(__name__)


DEFAULT_STRENGTH = 60
DEFAULT_QUALITY = 90
DEFAULT_SETTLE_DELAY = 1.0
DEFAULT_COMPLETED_GRACE = 2.0
DEFAULT_HISTORY_CAPACITY = 100
DEFAULT_MAX_CONCURRENT_DETECTIONS = 2

DEFAULT_IMAGE_PATTERNS = [
    "*.jpg", "*.jpeg", "*.png", "*.tiff", "*.bmp", "*.webp",
]


@dataclass
class PipelineConfig:
    """Configuration for one processing run.

    Attributes:
        output_dir: Directory that receives transformed images
        lut_path: The ``.cube`` file to apply
        watch_dir: Directory monitored for new images (watch mode only)
        strength: LUT blend strength, 0-100
        quality: Encoder quality, 1-100
        dither: Dither mode name ("none", "floyd", "random")
        settle_delay: Seconds to wait after detection before reading a file
        completed_grace: Seconds a completed item stays in the active queue
        history_capacity: Most-recent-N processed records kept
        max_concurrent_detections: Detected files processed at the same time
        process_timeout: Optional bound in seconds on one item's processing
        file_patterns: Glob patterns of images picked up by the watcher
    """

    output_dir: Optional[Path] = None
    lut_path: Optional[Path] = None
    watch_dir: Optional[Path] = None
    strength: int = DEFAULT_STRENGTH
    quality: int = DEFAULT_QUALITY
    dither: Union[str, DitherMode] = DitherMode.NONE
    settle_delay: float = DEFAULT_SETTLE_DELAY
    completed_grace: float = DEFAULT_COMPLETED_GRACE
    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    max_concurrent_detections: int = DEFAULT_MAX_CONCURRENT_DETECTIONS
    process_timeout: Optional[float] = None
    file_patterns: List[str] = field(default_factory=lambda: DEFAULT_IMAGE_PATTERNS.copy())

    def __post_init__(self) -> None:
        """Convert paths and normalize the dither mode."""
        for name in ("output_dir", "lut_path", "watch_dir"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                setattr(self, name, Path(str(value)).expanduser() if str(value) else None)
        self.dither = DitherMode.parse(self.dither)

        if self.settle_delay < 0:
            raise ConfigError("settle_delay cannot be negative", config_key="settle_delay", config_value=self.settle_delay)
        if self.completed_grace < 0:
            raise ConfigError("completed_grace cannot be negative", config_key="completed_grace", config_value=self.completed_grace)
        if self.history_capacity < 1:
            raise ConfigError("history_capacity must be at least 1", config_key="history_capacity", config_value=self.history_capacity)
        if self.max_concurrent_detections < 1:
            raise ConfigError(
                "max_concurrent_detections must be at least 1",
                config_key="max_concurrent_detections",
                config_value=self.max_concurrent_detections,
            )
        if self.process_timeout is not None and self.process_timeout <= 0:
            raise ConfigError("process_timeout must be positive", config_key="process_timeout", config_value=self.process_timeout)

    def validate(self, require_watch_dir: bool = False) -> None:
        """Check that a run can start with this configuration.

        Args:
            require_watch_dir: Also require an existing watch directory

        Raises:
            ConfigError: If the output directory or LUT selection is
                missing, the LUT file does not exist, or the blend
                settings are out of range.
        """
        if self.output_dir is None:
            raise ConfigError("No output directory selected", config_key="output_dir")
        if self.output_dir.exists() and not self.output_dir.is_dir():
            raise ConfigError(
                f"Output path is not a directory: {self.output_dir}",
                config_key="output_dir",
                config_value=str(self.output_dir),
            )
        if self.lut_path is None:
            raise ConfigError("No LUT file selected", config_key="lut_path")
        if not self.lut_path.is_file():
            raise ConfigError(
                f"LUT file not found: {self.lut_path}",
                config_key="lut_path",
                config_value=str(self.lut_path),
            )
        if require_watch_dir:
            if self.watch_dir is None:
                raise ConfigError("No watch directory selected", config_key="watch_dir")
            if not self.watch_dir.is_dir():
                raise ConfigError(
                    f"Watch directory not found: {self.watch_dir}",
                    config_key="watch_dir",
                    config_value=str(self.watch_dir),
                )
            if self.watch_dir.resolve() == self.output_dir.resolve():
                raise ConfigError(
                    "Watch and output directories must differ",
                    config_key="watch_dir",
                    config_value=str(self.watch_dir),
                )
        # Range checks live on RunParameters
        self.run_parameters()

    def run_parameters(self) -> RunParameters:
        """Snapshot the blend/encode settings for a dispatch."""
        return RunParameters(
            strength=self.strength,
            quality=self.quality,
            dither_mode=self.dither,
            lut_name=self.lut_path.name if self.lut_path else "",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Path):
                value = str(value)
            elif isinstance(value, DitherMode):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})


__all__ = [
    "PipelineConfig",
    "DEFAULT_STRENGTH",
    "DEFAULT_QUALITY",
    "DEFAULT_SETTLE_DELAY",
    "DEFAULT_COMPLETED_GRACE",
    "DEFAULT_HISTORY_CAPACITY",
    "DEFAULT_MAX_CONCURRENT_DETECTIONS",
    "DEFAULT_IMAGE_PATTERNS",
]
