"""
Error reporting for the application layer.

Records failures in ``error.log`` and turns exceptions raised by the core into
messages an end user can act on. Showing the message is left to an injected
notifier (a toast or dialog in the GUI, ``print`` on the command line).
"""

import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from .logger import get_logger
from ..core.exceptions import (
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


ERROR_LOG_FILE = "error.log"
MAX_MESSAGE_LENGTH = 200

MESSAGE_NETWORK = "A network error occurred. Please check your internet connection."
MESSAGE_MISSING_KEY = "No API key is configured. Please enter your Gemini API key."
MESSAGE_CONFIG_LOAD = "The settings file is corrupted. Please fix or delete it and restart."
MESSAGE_CONFIG_SAVE = "The settings could not be saved."
MESSAGE_PARSE = "The OCR provider's response format has changed. Please update the application."
MESSAGE_CANCELLED = "The request took too long and was cancelled."
MESSAGE_INVALID_ARGUMENT = "The input could not be used."
MESSAGE_PERMISSION = "The application does not have the permissions it needs."
MESSAGE_UNKNOWN = "An unexpected error occurred."

MESSAGE_API_UNAUTHORIZED = "The API key is invalid. Please set a valid API key."
MESSAGE_API_QUOTA = "The API quota has been exceeded. Check the billing settings in Google Cloud Console."
MESSAGE_API_MODEL = (
    "The Gemini model is not available. Check that the Gemini API is enabled in Google Cloud Console."
)


def format_api_error_message(message: str) -> str:
    """
    Shorten and translate a raw API error message for display.

    Args:
        message: Raw error text

    Returns:
        Friendly message, or the (truncated) original text
    """
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH - 3] + "..."

    lowered = message.lower()
    if "unauthorized" in lowered or ("invalid" in lowered and "key" in lowered):
        return MESSAGE_API_UNAUTHORIZED
    if "quota" in lowered:
        return MESSAGE_API_QUOTA
    if "model not found" in lowered:
        return MESSAGE_API_MODEL
    if "network" in lowered:
        return MESSAGE_NETWORK

    return message


class ErrorHandler:
    """Logs errors to a file and produces user facing messages."""

    def __init__(self, base_dir: Optional[Union[str, Path]] = None,
                 notifier: Optional[Callable[[str], None]] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the error handler.

        Args:
            base_dir: Directory for error.log (default: current directory)
            notifier: Called with the user facing message by handle_error
            logger: Logger to use (default: package logger)
        """
        self.log_file_path = Path(base_dir or ".") / ERROR_LOG_FILE
        self.notifier = notifier
        self.logger = logger or get_logger("errors")

    def handle_error(self, exc: BaseException, context: Optional[str] = None) -> str:
        """Log an error, notify the user and return the message shown."""
        message = self.get_user_friendly_message(exc)
        self.log_error(exc, context)

        if self.notifier is not None:
            self.notifier(message)

        return message

    def log_error(self, exc: BaseException, context: Optional[str] = None):
        """Append an error record to error.log. Never raises."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        lines = [
            f"[{timestamp}] {context or 'An error occurred'}",
            f"Type: {type(exc).__name__}",
            f"Message: {exc}",
        ]

        # Tracebacks may contain request data, only keep them when debugging
        if self.logger.isEnabledFor(logging.DEBUG):
            trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            lines.append(f"Traceback:\n{trace.rstrip()}")

        lines.append("-" * 40)

        try:
            self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_file_path, 'a', encoding='utf-8') as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            self.logger.error(f"Failed to write error log: {e}")

        self.logger.error(f"{context or 'Error'}: {type(exc).__name__}: {exc}")

    def get_user_friendly_message(self, exc: BaseException) -> str:
        """Map an exception to a message for the end user."""
        if isinstance(exc, OcrApiError):
            return exc.message
        if isinstance(exc, NetworkError):
            return MESSAGE_NETWORK
        if isinstance(exc, MissingApiKeyError):
            return MESSAGE_MISSING_KEY
        if isinstance(exc, ConfigLoadError):
            return MESSAGE_CONFIG_LOAD
        if isinstance(exc, ConfigSaveError):
            return MESSAGE_CONFIG_SAVE
        if isinstance(exc, OcrResponseParseError):
            return MESSAGE_PARSE
        if isinstance(exc, RequestCancelledError):
            return MESSAGE_CANCELLED
        if isinstance(exc, InvalidArgumentError):
            return f"{MESSAGE_INVALID_ARGUMENT} {exc}" if str(exc) else MESSAGE_INVALID_ARGUMENT
        if isinstance(exc, PermissionError):
            return MESSAGE_PERMISSION
        if isinstance(exc, OcrError):
            return format_api_error_message(str(exc))
        return MESSAGE_UNKNOWN
