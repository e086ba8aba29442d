"""
Gemini OCR Capture - screen region OCR through the Gemini vision API.

This package provides the settings store (with the API key encrypted at rest)
and the OCR client used by the capture UI to turn a screenshot into text.
"""

import logging

__version__ = "1.0.0"
__license__ = "MIT"

# Version information for programmatic access
VERSION_INFO = {
    "major": 1,
    "minor": 0,
    "patch": 0,
    "pre_release": None,  # alpha, beta, rc
}


def get_version() -> str:
    """Get the current version string."""
    version = f"{VERSION_INFO['major']}.{VERSION_INFO['minor']}.{VERSION_INFO['patch']}"

    if VERSION_INFO['pre_release']:
        version += f"-{VERSION_INFO['pre_release']}"

    return version


# Silent unless the application configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

from .core.config import Configuration, ConfigStore
from .core.exceptions import (
    GeminiOcrError,
    ConfigLoadError,
    ConfigSaveError,
    InvalidArgumentError,
    MissingApiKeyError,
    NetworkError,
    OcrApiError,
    OcrResponseParseError,
    RequestCancelledError,
)
from .ocr.gemini_client import OcrClient

__all__ = [
    "Configuration", "ConfigStore", "OcrClient",
    "GeminiOcrError", "ConfigLoadError", "ConfigSaveError", "InvalidArgumentError",
    "MissingApiKeyError", "NetworkError", "OcrApiError", "OcrResponseParseError",
    "RequestCancelledError", "__version__", "get_version",
]
