"""Unified error handling for LUTWright.

Every exception carries a plain message, optional structured details,
a user-facing explanation and a suggested fix, and chains the original
cause for tracebacks.

Exception Hierarchy:
    LutwrightError (base)
    +-- FormatError            malformed LUT source
    +-- ConfigError            run configuration missing or invalid
    +-- StateTransitionError   illegal work item status change
    +-- ProcessingError        scoped to a single work item
        +-- ImageIOError       decode/encode/read/write failure
        +-- SourceMissingError source file gone when processing starts
        +-- ProcessingTimeoutError

Propagation:
    FormatError and ConfigError surface synchronously before any work is
    queued. ProcessingError subclasses are caught by the orchestrator and
    recorded as the failing item's reason.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union


# =============================================================================
# Base Exception
# =============================================================================


class LutwrightError(Exception):
    """Base exception for all LUTWright errors.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context
        cause: Original exception that caused this error (if any)
    """

    _default_user_message = "An unexpected error occurred while processing images."
    _default_suggested_fix = "Please check the logs for more details and try again."

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def user_message(self) -> str:
        """Return a clear, non-technical description of what went wrong."""
        return self._default_user_message

    def suggested_fix(self) -> str:
        """Return an actionable suggestion for resolving the error."""
        return self._default_suggested_fix

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message(),
            "suggested_fix": self.suggested_fix(),
            "details": self.details,
            "cause": str(self.cause) if self.cause else None,
        }

    def format_for_user(self) -> str:
        """Format error for display on a terminal."""
        lines = [
            "",
            "=" * 60,
            f"ERROR: {self.__class__.__name__}",
            "=" * 60,
            "",
            self.user_message(),
            "",
            "What to try:",
            "  " + self.suggested_fix(),
            "",
        ]
        if self.details:
            lines.append("Details:")
            for key, value in self.details.items():
                lines.append(f"  {key}: {value}")
            lines.append("")
        lines.append("=" * 60)
        return "\n".join(lines)


# =============================================================================
# Run-level Errors
# =============================================================================


class FormatError(LutwrightError):
    """Malformed LUT source.

    Raised for a missing ``LUT_3D_SIZE`` directive, a size that is not a
    positive integer, or a data row count that does not match ``n**3``.
    No table is ever built from a partially parsed source.
    """

    _default_user_message = "The LUT file could not be read as a 3D cube lattice."
    _default_suggested_fix = (
        "Check that the file contains a 'LUT_3D_SIZE <n>' line followed by "
        "exactly n*n*n rows of three numbers."
    )

    def __init__(
        self,
        message: str,
        source: Optional[Union[str, Path]] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
        line_number: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if source:
            details["source"] = str(source)
        if expected is not None:
            details["expected"] = expected
        if actual is not None:
            details["actual"] = actual
        if line_number is not None:
            details["line"] = line_number
        super().__init__(message, details=details, cause=cause)

    def user_message(self) -> str:
        if "expected" in self.details and "actual" in self.details:
            return (
                f"The LUT file should contain {self.details['expected']} color "
                f"rows but {self.details['actual']} were found."
            )
        return self._default_user_message


class ConfigError(LutwrightError):
    """Required run configuration missing or invalid."""

    _default_user_message = "The processing configuration is incomplete or invalid."
    _default_suggested_fix = (
        "Select an output directory and a LUT file, and keep strength in "
        "0-100 and quality in 1-100."
    )

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        valid_values: Optional[list] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if config_key:
            details["config_key"] = config_key
        if config_value is not None:
            details["config_value"] = config_value
        if valid_values:
            details["valid_values"] = valid_values
        super().__init__(message, details=details, cause=cause)

    def user_message(self) -> str:
        if self.details.get("config_key"):
            key = self.details["config_key"]
            if self.details.get("valid_values"):
                return (
                    f"Invalid value for '{key}'. "
                    f"Valid options: {self.details['valid_values']}"
                )
            return f"Invalid configuration for '{key}'."
        return self._default_user_message


class StateTransitionError(LutwrightError):
    """A work item was asked to move to a status it cannot reach."""

    _default_user_message = "A queue item was updated out of order."
    _default_suggested_fix = (
        "Failed items cannot be resumed; submit the image again instead."
    )

    def __init__(self, item_id: str, current: Any, requested: Any) -> None:
        super().__init__(
            f"Cannot move item {item_id} from {current} to {requested}",
            details={"item_id": item_id, "current": str(current), "requested": str(requested)},
        )


# =============================================================================
# Per-item Processing Errors
# =============================================================================


class ProcessingError(LutwrightError):
    """Error scoped to a single work item."""

    _default_user_message = "An error occurred while applying the LUT to an image."
    _default_suggested_fix = "Check that the image is readable and the output directory is writable."

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if path:
            details["path"] = str(path)
        if stage:
            details["stage"] = stage
        super().__init__(message, details=details, cause=cause)

    def user_message(self) -> str:
        if self.details.get("stage"):
            return f"Processing failed during {self.details['stage']}."
        return self._default_user_message


class ImageIOError(ProcessingError):
    """Decode, encode, read or write failure on an image file."""

    _default_user_message = "An image file could not be read or written."
    _default_suggested_fix = (
        "Make sure the file is a supported image (JPEG, PNG, TIFF, BMP, WebP) "
        "and that there is space in the output directory."
    )


class SourceMissingError(ProcessingError):
    """The source file is absent when processing is attempted."""

    _default_user_message = "The image disappeared before it could be processed."
    _default_suggested_fix = "Copy the image into the folder again once it is fully written."


class ProcessingTimeoutError(ProcessingError):
    """Processing an item exceeded the configured time bound."""

    _default_user_message = "Processing an image took longer than allowed."
    _default_suggested_fix = "Raise process_timeout or check the image for corruption."


# =============================================================================
# Helpers
# =============================================================================


def failure_reason(error: BaseException) -> str:
    """Return the reason string recorded on a failed work item."""
    if isinstance(error, LutwrightError):
        return error.message
    text = str(error)
    return text or error.__class__.__name__


__all__ = [
    "LutwrightError",
    "FormatError",
    "ConfigError",
    "StateTransitionError",
    "ProcessingError",
    "ImageIOError",
    "SourceMissingError",
    "ProcessingTimeoutError",
    "failure_reason",
]
