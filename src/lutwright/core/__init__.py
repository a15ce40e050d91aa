"""Core module for LUTWright.

Provides the foundational pieces shared by every other module:
- Configuration: run settings and their validation
- Events: per-orchestrator publish/subscribe channel
- Types: work items, run parameters, history records
- Errors: the exception taxonomy
"""

from .config import (
    PipelineConfig,
    DEFAULT_STRENGTH,
    DEFAULT_QUALITY,
    DEFAULT_SETTLE_DELAY,
    DEFAULT_COMPLETED_GRACE,
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_MAX_CONCURRENT_DETECTIONS,
    DEFAULT_IMAGE_PATTERNS,
)
from .errors import (
    LutwrightError,
    FormatError,
    ConfigError,
    StateTransitionError,
    ProcessingError,
    ImageIOError,
    SourceMissingError,
    ProcessingTimeoutError,
    failure_reason,
)
from .events import (
    EventType,
    Event,
    ItemQueuedEvent,
    ItemStatusEvent,
    ItemProcessedEvent,
    EventCallback,
    EventStream,
    EventChannel,
)
from .types import (
    DitherMode,
    WorkStatus,
    RunParameters,
    WorkItem,
    ProcessedRecord,
)

__all__ = [
    # Configuration
    "PipelineConfig",
    "DEFAULT_STRENGTH",
    "DEFAULT_QUALITY",
    "DEFAULT_SETTLE_DELAY",
    "DEFAULT_COMPLETED_GRACE",
    "DEFAULT_HISTORY_CAPACITY",
    "DEFAULT_MAX_CONCURRENT_DETECTIONS",
    "DEFAULT_IMAGE_PATTERNS",
    # Errors
    "LutwrightError",
    "FormatError",
    "ConfigError",
    "StateTransitionError",
    "ProcessingError",
    "ImageIOError",
    "SourceMissingError",
    "ProcessingTimeoutError",
    "failure_reason",
    # Events
    "EventType",
    "Event",
    "ItemQueuedEvent",
    "ItemStatusEvent",
    "ItemProcessedEvent",
    "EventCallback",
    "EventStream",
    "EventChannel",
    # Types
    "DitherMode",
    "WorkStatus",
    "RunParameters",
    "WorkItem",
    "ProcessedRecord",
]
