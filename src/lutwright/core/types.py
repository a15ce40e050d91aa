"""Core data types for LUTWright.

Work items, run parameters and history records are immutable: every state
change produces a new instance, so a snapshot handed to an observer can
never be mutated behind the orchestrator's back.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Union

from .errors import ConfigError, StateTransitionError


# =============================================================================
# Enums
# =============================================================================


class DitherMode(Enum):
    """Quantization noise applied after the strength blend."""

    NONE = "none"
    FLOYD_STEINBERG = "floyd"
    RANDOM = "random"

    @classmethod
    def parse(cls, value: Union[str, "DitherMode", None]) -> "DitherMode":
        """Parse a user supplied dither name.

        Accepts the enum itself, its value (``none``, ``floyd``, ``random``),
        its member name, or ``None``/empty for no dithering.
        """
        if isinstance(value, DitherMode):
            return value
        if value is None:
            return cls.NONE
        text = str(value).strip().lower()
        if not text:
            return cls.NONE
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        if text in ("floyd-steinberg", "floydsteinberg", "fs"):
            return cls.FLOYD_STEINBERG
        raise ConfigError(
            f"Unknown dither mode: {value}",
            config_key="dither",
            config_value=value,
            valid_values=[m.value for m in cls],
        )


class WorkStatus(Enum):
    """Lifecycle of a work item."""

    WAITING = "Waiting"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkStatus.COMPLETED, WorkStatus.FAILED)


# Waiting may fail directly when the source vanishes during the settle delay.
ALLOWED_TRANSITIONS: Dict[WorkStatus, FrozenSet[WorkStatus]] = {
    WorkStatus.WAITING: frozenset({WorkStatus.PROCESSING, WorkStatus.FAILED}),
    WorkStatus.PROCESSING: frozenset({WorkStatus.PROCESSING, WorkStatus.COMPLETED, WorkStatus.FAILED}),
    WorkStatus.COMPLETED: frozenset(),
    WorkStatus.FAILED: frozenset(),
}


# =============================================================================
# Run Parameters
# =============================================================================


@dataclass(frozen=True)
class RunParameters:
    """Immutable snapshot of the settings applied to one dispatched item.

    Attributes:
        strength: LUT blend strength, 0 (original) to 100 (full LUT)
        quality: Encoder quality, 1 to 100
        dither_mode: Dithering applied before encoding
        lut_name: Display name of the LUT in use
    """

    strength: int = 60
    quality: int = 90
    dither_mode: DitherMode = DitherMode.NONE
    lut_name: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.strength <= 100:
            raise ConfigError(
                "strength must be between 0 and 100",
                config_key="strength",
                config_value=self.strength,
            )
        if not 1 <= self.quality <= 100:
            raise ConfigError(
                "quality must be between 1 and 100",
                config_key="quality",
                config_value=self.quality,
            )
        if not isinstance(self.dither_mode, DitherMode):
            object.__setattr__(self, "dither_mode", DitherMode.parse(self.dither_mode))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strength": self.strength,
            "quality": self.quality,
            "dither": self.dither_mode.value,
            "lut_name": self.lut_name,
        }


# =============================================================================
# Work Items
# =============================================================================


def new_item_id() -> str:
    """Generate a unique work item id."""
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class WorkItem:
    """One image tracked through the processing lifecycle.

    Attributes:
        id: Unique identifier
        source_path: Image to transform
        dest_path: Where the transformed image is written
        status: Current lifecycle status
        progress: Fraction in [0, 1]
        error_reason: Failure reason when status is FAILED
        created_at: Creation time (seconds since the epoch)
    """

    source_path: Path
    dest_path: Path
    id: str = field(default_factory=new_item_id)
    status: WorkStatus = WorkStatus.WAITING
    progress: float = 0.0
    error_reason: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not isinstance(self.source_path, Path):
            object.__setattr__(self, "source_path", Path(self.source_path))
        if not isinstance(self.dest_path, Path):
            object.__setattr__(self, "dest_path", Path(self.dest_path))
        if not 0.0 <= self.progress <= 1.0:
            raise ValueError("progress must be between 0.0 and 1.0")

    @property
    def file_name(self) -> str:
        return self.source_path.name

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def with_status(
        self,
        status: WorkStatus,
        progress: Optional[float] = None,
        error_reason: Optional[str] = None,
    ) -> "WorkItem":
        """Return a copy moved to ``status``.

        Raises:
            StateTransitionError: If the lifecycle does not allow the move.
        """
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise StateTransitionError(self.id, self.status.value, status.value)
        return replace(
            self,
            status=status,
            progress=self.progress if progress is None else progress,
            error_reason=error_reason if status is WorkStatus.FAILED else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "source_path": str(self.source_path),
            "dest_path": str(self.dest_path),
            "status": self.status.value,
            "progress": self.progress,
            "error_reason": self.error_reason,
            "created_at": self.created_at,
        }


# =============================================================================
# History
# =============================================================================


@dataclass(frozen=True)
class ProcessedRecord:
    """A finished transform kept in the bounded history log.

    ``source_path`` is None for records rebuilt from the output directory.
    """

    source_path: Optional[Path]
    dest_path: Path
    parameters: RunParameters
    completed_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.source_path is not None and not isinstance(self.source_path, Path):
            object.__setattr__(self, "source_path", Path(self.source_path))
        if not isinstance(self.dest_path, Path):
            object.__setattr__(self, "dest_path", Path(self.dest_path))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "source_path": str(self.source_path) if self.source_path is not None else None,
            "dest_path": str(self.dest_path),
            "completed_at": self.completed_at,
        }
        data.update(self.parameters.to_dict())
        return data


__all__ = [
    "DitherMode",
    "WorkStatus",
    "ALLOWED_TRANSITIONS",
    "RunParameters",
    "WorkItem",
    "ProcessedRecord",
    "new_item_id",
]
