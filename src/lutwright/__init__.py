"""LUTWright - 3D LUT color grading for photos, watched folders and batches."""
__version__ = "0.4.0"

from .core.config import PipelineConfig
from .core.errors import (
    LutwrightError,
    FormatError,
    ConfigError,
    StateTransitionError,
    ProcessingError,
    ImageIOError,
    SourceMissingError,
    ProcessingTimeoutError,
)
from .core.events import EventChannel, EventType, Event
from .core.types import (
    DitherMode,
    WorkStatus,
    RunParameters,
    WorkItem,
    ProcessedRecord,
)

# LUT and per-image processing
from .lut import LatticeTable, LatticeCache, list_lut_files
from .processors import ColorTransformEngine, apply_dither, blend

# Queue, orchestration and watch mode
from .queue import WorkQueue, ProcessedHistory
from .orchestrator import Orchestrator
from .watch import DirectoryWatcher, QueueFileSource

# Structured logging
from .utils.logging import (
    LogConfig,
    LutwrightLogger,
    configure_logging,
    get_logger,
    configure_from_cli,
)

__all__ = [
    "__version__",
    # Configuration
    "PipelineConfig",
    # Errors
    "LutwrightError",
    "FormatError",
    "ConfigError",
    "StateTransitionError",
    "ProcessingError",
    "ImageIOError",
    "SourceMissingError",
    "ProcessingTimeoutError",
    # Events
    "EventChannel",
    "EventType",
    "Event",
    # Types
    "DitherMode",
    "WorkStatus",
    "RunParameters",
    "WorkItem",
    "ProcessedRecord",
    # LUT and processing
    "LatticeTable",
    "LatticeCache",
    "list_lut_files",
    "ColorTransformEngine",
    "apply_dither",
    "blend",
    # Orchestration
    "WorkQueue",
    "ProcessedHistory",
    "Orchestrator",
    "DirectoryWatcher",
    "QueueFileSource",
    # Logging
    "LogConfig",
    "LutwrightLogger",
    "configure_logging",
    "get_logger",
    "configure_from_cli",
]
