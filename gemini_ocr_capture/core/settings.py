"""
Application level settings read from environment variables.

These cover how the application runs (where files live, logging, network
timeouts). User preferences persisted in the settings file are handled by
:mod:`gemini_ocr_capture.core.config`.
"""

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_BASE_DIR = "~/.gemini-ocr-capture"
DEFAULT_MODEL = "gemini-2.0-flash"


@dataclass
class AppSettings:
    """Runtime settings for Gemini OCR Capture."""

    base_dir: str = DEFAULT_BASE_DIR
    model: str = DEFAULT_MODEL
    request_timeout: float = 60.0

    # Logging settings
    log_level: str = "INFO"
    log_to_file: bool = False

    # Where the API key encryption key is kept: auto, keyring, file
    key_backend: str = "auto"

    def __post_init__(self):
        """Expand user paths after initialization."""
        self.base_dir = os.path.expanduser(self.base_dir)

    @property
    def base_path(self) -> Path:
        return Path(self.base_dir)


def load_settings() -> AppSettings:
    """Build settings from defaults overridden by environment variables."""
    settings = AppSettings()

    env_mappings = {
        'GEMINI_OCR_HOME': 'base_dir',
        'GEMINI_OCR_MODEL': 'model',
        'GEMINI_OCR_LOG_LEVEL': 'log_level',
        'GEMINI_OCR_KEY_BACKEND': 'key_backend',
    }

    for env_var, attr in env_mappings.items():
        value = os.getenv(env_var)
        if value:
            setattr(settings, attr, value)

    settings.base_dir = os.path.expanduser(settings.base_dir)
    settings.key_backend = settings.key_backend.lower()

    timeout = os.getenv('GEMINI_OCR_TIMEOUT')
    if timeout:
        try:
            settings.request_timeout = float(timeout)
        except ValueError:
            pass

    log_to_file = os.getenv('GEMINI_OCR_LOG_TO_FILE')
    if log_to_file:
        settings.log_to_file = log_to_file.lower() in ('true', '1', 'yes', 'on')

    return settings
