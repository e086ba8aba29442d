"""
Unit tests for error reporting.

Tests the error.log records, the exception to message mapping and the API
error message formatting.
"""

import pytest
import logging
from unittest.mock import Mock, patch

from gemini_ocr_capture.core.exceptions import (
    ConfigLoadError,
    ConfigSaveError,
    InvalidArgumentError,
    MissingApiKeyError,
    NetworkError,
    OcrApiError,
    OcrError,
    OcrResponseParseError,
    RequestCancelledError,
)
from gemini_ocr_capture.utils.error_handler import (
    ERROR_LOG_FILE,
    ErrorHandler,
    MESSAGE_API_MODEL,
    MESSAGE_API_QUOTA,
    MESSAGE_API_UNAUTHORIZED,
    MESSAGE_CANCELLED,
    MESSAGE_CONFIG_LOAD,
    MESSAGE_CONFIG_SAVE,
    MESSAGE_INVALID_ARGUMENT,
    MESSAGE_MISSING_KEY,
    MESSAGE_NETWORK,
    MESSAGE_PARSE,
    MESSAGE_PERMISSION,
    MESSAGE_UNKNOWN,
    format_api_error_message,
)


@pytest.fixture
def error_handler(temp_dir):
    return ErrorHandler(temp_dir, logger=logging.getLogger("test_error_handler"))


class TestLogError:
    """Test writing error.log."""

    def test_writes_record(self, error_handler, temp_dir):
        """Test that an error record is appended to the log file."""
        error_handler.log_error(NetworkError("connection refused"), "OCR failed")

        content = (temp_dir / ERROR_LOG_FILE).read_text(encoding="utf-8")
        assert "OCR failed" in content
        assert "Type: NetworkError" in content
        assert "Message: connection refused" in content
        assert "-" * 40 in content

    def test_appends(self, error_handler, temp_dir):
        """Test that records accumulate."""
        error_handler.log_error(ValueError("first"))
        error_handler.log_error(ValueError("second"))

        content = (temp_dir / ERROR_LOG_FILE).read_text(encoding="utf-8")
        assert "first" in content and "second" in content
        assert content.count("An error occurred") == 2

    def test_traceback_only_when_debugging(self, temp_dir):
        """Test that tracebacks are recorded at DEBUG level only."""
        logger = logging.getLogger("test_error_handler_debug")
        handler = ErrorHandler(temp_dir, logger=logger)

        try:
            raise RuntimeError("with trace")
        except RuntimeError as e:
            logger.setLevel(logging.INFO)
            handler.log_error(e)
            logger.setLevel(logging.DEBUG)
            handler.log_error(e)

        content = (temp_dir / ERROR_LOG_FILE).read_text(encoding="utf-8")
        assert content.count("Traceback (most recent call last)") == 1

    def test_write_failure_is_not_raised(self, error_handler, caplog):
        """Test that a broken log file does not mask the original error."""
        with patch("builtins.open", side_effect=PermissionError("read-only")):
            error_handler.log_error(ValueError("boom"))

        assert "Failed to write error log" in caplog.text


class TestUserFriendlyMessage:
    """Test mapping exceptions to messages."""

    @pytest.mark.parametrize("exc, expected", [
        (NetworkError("dns"), MESSAGE_NETWORK),
        (MissingApiKeyError(), MESSAGE_MISSING_KEY),
        (ConfigLoadError("bad json"), MESSAGE_CONFIG_LOAD),
        (ConfigSaveError("disk full"), MESSAGE_CONFIG_SAVE),
        (OcrResponseParseError("shape"), MESSAGE_PARSE),
        (RequestCancelledError("deadline"), MESSAGE_CANCELLED),
        (InvalidArgumentError(), MESSAGE_INVALID_ARGUMENT),
        (PermissionError("denied"), MESSAGE_PERMISSION),
        (KeyError("x"), MESSAGE_UNKNOWN),
    ])
    def test_mapping(self, error_handler, exc, expected):
        assert error_handler.get_user_friendly_message(exc) == expected

    def test_api_error_uses_own_message(self, error_handler):
        """Test that API errors already carry their user facing text."""
        exc = OcrApiError("Too many requests. Please wait a moment and try again.", 429)

        assert error_handler.get_user_friendly_message(exc) == exc.message

    def test_invalid_argument_includes_detail(self, error_handler):
        """Test that the reason for rejecting an input is shown."""
        message = error_handler.get_user_friendly_message(InvalidArgumentError("Image not found: a.png"))

        assert message == f"{MESSAGE_INVALID_ARGUMENT} Image not found: a.png"

    def test_generic_ocr_error_is_formatted(self, error_handler):
        """Test that other OCR errors go through the API message formatting."""
        assert error_handler.get_user_friendly_message(OcrError("quota exceeded")) == MESSAGE_API_QUOTA


class TestHandleError:
    """Test the complete error handling flow."""

    def test_logs_notifies_and_returns(self, temp_dir):
        """Test that the notifier receives the same message that is returned."""
        notifier = Mock()
        handler = ErrorHandler(temp_dir, notifier=notifier)

        message = handler.handle_error(MissingApiKeyError(), "Capture")

        assert message == MESSAGE_MISSING_KEY
        notifier.assert_called_once_with(MESSAGE_MISSING_KEY)
        assert "Capture" in (temp_dir / ERROR_LOG_FILE).read_text(encoding="utf-8")

    def test_without_notifier(self, error_handler):
        """Test that a notifier is optional."""
        assert error_handler.handle_error(NetworkError("x")) == MESSAGE_NETWORK


class TestFormatApiErrorMessage:
    """Test formatting raw API error messages."""

    @pytest.mark.parametrize("raw, expected", [
        ("401 Unauthorized", MESSAGE_API_UNAUTHORIZED),
        ("Invalid API key provided", MESSAGE_API_UNAUTHORIZED),
        ("Quota exceeded for quota metric", MESSAGE_API_QUOTA),
        ("models/gemini-x: model not found", MESSAGE_API_MODEL),
        ("network unreachable", MESSAGE_NETWORK),
        ("Something else", "Something else"),
    ])
    def test_mapping(self, raw, expected):
        assert format_api_error_message(raw) == expected

    def test_truncates_long_messages(self):
        """Test that long messages are cut to 200 characters."""
        formatted = format_api_error_message("x" * 500)

        assert len(formatted) == 200
        assert formatted.endswith("...")
