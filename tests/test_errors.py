"""Tests for the LUTWright exception hierarchy."""
import pytest

from lutwright.core.errors import (
    ConfigError,
    FormatError,
    ImageIOError,
    LutwrightError,
    ProcessingError,
    ProcessingTimeoutError,
    SourceMissingError,
    StateTransitionError,
    failure_reason,
)


class TestHierarchy:
    """Tests for inheritance relationships."""

    @pytest.mark.parametrize("cls", [FormatError, ConfigError, StateTransitionError, ProcessingError])
    def test_base_class(self, cls):
        assert issubclass(cls, LutwrightError)

    @pytest.mark.parametrize("cls", [ImageIOError, SourceMissingError, ProcessingTimeoutError])
    def test_per_item_errors(self, cls):
        assert issubclass(cls, ProcessingError)

    def test_catchable_as_base(self):
        with pytest.raises(LutwrightError):
            raise SourceMissingError("gone", path="a.jpg")


class TestLutwrightError:
    """Tests for the base error behavior."""

    def test_str_includes_details(self):
        error = LutwrightError("broken", details={"a": 1})

        assert str(error) == "broken [a=1]"

    def test_str_without_details(self):
        assert str(LutwrightError("broken")) == "broken"

    def test_cause_chained(self):
        cause = ValueError("bad")
        error = ImageIOError("cannot decode", cause=cause)

        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "bad"

    def test_to_dict(self):
        data = ConfigError("No LUT file selected", config_key="lut_path").to_dict()

        assert data["error_type"] == "ConfigError"
        assert data["message"] == "No LUT file selected"
        assert data["details"] == {"config_key": "lut_path"}
        assert "lut_path" in data["user_message"]

    def test_format_for_user(self):
        text = FormatError("bad rows", source="film.cube", expected=8, actual=3).format_for_user()

        assert "ERROR: FormatError" in text
        assert "8 color rows but 3" in text
        assert "source: film.cube" in text


class TestSpecificErrors:
    """Tests for error-specific details."""

    def test_format_error_details(self):
        error = FormatError("bad size", source="x.cube", line_number=4)

        assert error.details == {"source": "x.cube", "line": 4}
        assert error.user_message() == FormatError._default_user_message

    def test_config_error_valid_values(self):
        error = ConfigError("bad dither", config_key="dither", config_value="x", valid_values=["none", "floyd"])

        assert "Valid options" in error.user_message()

    def test_processing_error_stage(self):
        error = ImageIOError("disk full", path="out/a.jpg", stage="encode")

        assert error.details == {"path": "out/a.jpg", "stage": "encode"}
        assert error.user_message() == "Processing failed during encode."

    def test_state_transition_error(self):
        error = StateTransitionError("abc", "Completed", "Processing")

        assert "abc" in error.message
        assert error.details["requested"] == "Processing"


class TestHelpers:
    """Tests for module helpers."""

    def test_failure_reason_uses_message(self):
        assert failure_reason(SourceMissingError("source gone", path="a.jpg")) == "source gone"

    def test_failure_reason_plain_exception(self):
        assert failure_reason(RuntimeError("kaboom")) == "kaboom"

    def test_failure_reason_empty_message(self):
        assert failure_reason(KeyError()) == "KeyError"
