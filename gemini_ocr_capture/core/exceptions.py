"""
Exception hierarchy for Gemini OCR Capture.

Configuration errors and OCR errors share a common base so the UI layer can
catch everything raised by the core with a single ``except GeminiOcrError``.
"""

from typing import Optional


class GeminiOcrError(Exception):
    """Base exception for all Gemini OCR Capture errors."""
    pass


class ConfigError(GeminiOcrError):
    """Base exception for configuration persistence errors."""
    pass


class ConfigLoadError(ConfigError):
    """Raised when the settings file exists but cannot be read or parsed."""
    pass


class ConfigSaveError(ConfigError):
    """Raised when the settings file cannot be written or the key encrypted."""
    pass


class EncryptionError(GeminiOcrError):
    """Raised when the API key cannot be encrypted."""
    pass


class InvalidArgumentError(GeminiOcrError, ValueError):
    """Raised when a caller passes a missing or unusable argument."""
    pass


class OcrError(GeminiOcrError):
    """Base exception for OCR request errors."""
    pass


class MissingApiKeyError(OcrError):
    """Raised when no API key is configured."""

    def __init__(self, message: str = "No API key is configured."):
        super().__init__(message)


class OcrApiError(OcrError):
    """Raised when the OCR endpoint answers with a non-success status."""

    def __init__(self, message: str, status_code: int, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:
        return f"{self.message} (HTTP {self.status_code})"


class OcrResponseParseError(OcrError):
    """Raised when a success response does not have the expected shape."""
    pass


class NetworkError(OcrError):
    """Raised on transport level failures (DNS, connection, timeout)."""
    pass


class RequestCancelledError(OcrError):
    """Raised when a request does not finish before the caller's deadline."""
    pass
