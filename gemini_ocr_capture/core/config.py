"""
Configuration management for Gemini OCR Capture.

The user's preferences live in a single JSON file. The API key is kept in
plaintext in memory and sealed with :class:`~.crypto.ApiKeyCipher` on disk.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Dict, Any, Optional, Union

from .crypto import ApiKeyCipher, DecryptStatus, KeyProvider, create_key_provider
from .exceptions import ConfigLoadError, ConfigSaveError
from .settings import DEFAULT_BASE_DIR
from ..utils.logger import get_logger


# On-disk key for each Configuration attribute
FIELD_KEYS = {
    'api_key': 'apiKey',
    'display_ocr_result': 'displayOcrResult',
    'play_sound_on_ocr_success': 'playSoundOnOcrSuccess',
    'custom_sound_file_path': 'customSoundFilePath',
    'language': 'language',
    'fullscreen_shortcut': 'fullscreenShortcut',
}

# JSON type accepted for each attribute (null is also accepted)
FIELD_TYPES = {
    'api_key': str,
    'display_ocr_result': bool,
    'play_sound_on_ocr_success': bool,
    'custom_sound_file_path': str,
    'language': str,
    'fullscreen_shortcut': str,
}
# A null for these keeps the default
DEFAULTED_WHEN_NULL = ('display_ocr_result', 'play_sound_on_ocr_success', 'language', 'fullscreen_shortcut')


@dataclass
class Configuration:
    """User preferences persisted in the settings file."""

    api_key: Optional[str] = None
    display_ocr_result: bool = True
    play_sound_on_ocr_success: bool = True
    custom_sound_file_path: Optional[str] = None
    language: str = "ja"
    fullscreen_shortcut: str = "PrintScreen"

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the on-disk key names."""
        return {FIELD_KEYS[name]: value for name, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Configuration":
        """
        Build a configuration from file data.

        Both the on-disk camelCase keys and the attribute names are accepted.
        Missing keys keep their defaults, unknown keys are ignored.

        Raises:
            TypeError: If a known key holds a value of the wrong JSON type
        """
        by_disk_key = {disk: attr for attr, disk in FIELD_KEYS.items()}
        values = {}
        for key, value in data.items():
            attr = by_disk_key.get(key, key)
            if attr not in FIELD_KEYS:
                get_logger("config").debug(f"Ignoring unknown config key: {key}")
                continue
            if value is None:
                if attr not in DEFAULTED_WHEN_NULL:
                    values[attr] = None
                continue
            expected = FIELD_TYPES[attr]
            if not isinstance(value, expected):
                raise TypeError(
                    f"'{key}' must be {expected.__name__} or null, got {type(value).__name__}"
                )
            values[attr] = value
        return cls(**values)

    def masked(self) -> Dict[str, Any]:
        """Dictionary view safe to print or log."""
        data = asdict(self)
        if self.api_key:
            data['api_key'] = mask_api_key(self.api_key)
        return data


def mask_api_key(api_key: Optional[str]) -> str:
    """Hide all but the last four characters of a key."""
    if not api_key:
        return ""
    if len(api_key) <= 4:
        return "*" * len(api_key)
    return "*" * (len(api_key) - 4) + api_key[-4:]


def default_base_dir() -> Path:
    """Application base directory, overridable with GEMINI_OCR_HOME."""
    return Path(os.getenv('GEMINI_OCR_HOME') or DEFAULT_BASE_DIR).expanduser()


class ConfigStore:
    """
    Owns the settings file.

    The store is the only component that reads or writes the file. It does
    no file locking: callers must not run ``load`` and ``save`` concurrently.
    """

    CONFIG_FILE = "config.json"

    def __init__(self, base_dir: Optional[Union[str, Path]] = None,
                 key_provider: Optional[KeyProvider] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the store and load the current configuration.

        Args:
            base_dir: Directory holding the settings file (default: application dir)
            key_provider: Source of the encryption key (default: keychain or key file)
            logger: Logger to use (default: package logger)

        Raises:
            ConfigLoadError: If an existing settings file cannot be parsed
            ConfigSaveError: If a missing settings file cannot be created
        """
        self.base_dir = Path(base_dir) if base_dir is not None else default_base_dir()
        self.logger = logger or get_logger("config")
        self.cipher = ApiKeyCipher(key_provider or create_key_provider(self.base_dir))
        self._config_path = self.base_dir / self.CONFIG_FILE
        self._current_config = Configuration()
        self.load()

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def current_config(self) -> Configuration:
        """Snapshot of the last loaded or saved configuration."""
        return replace(self._current_config)

    def load(self) -> Configuration:
        """
        Load the configuration from disk.

        A missing file is created with defaults. The stored API key is
        decrypted; a key that cannot be decrypted is kept as stored.

        Returns:
            The loaded configuration

        Raises:
            ConfigLoadError: If the file cannot be read or is not a JSON object
        """
        if not self._config_path.exists():
            self.logger.info(f"No settings file at {self._config_path}, creating defaults")
            config = Configuration()
            self.save(config)
            return replace(config)

        try:
            with open(self._config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigLoadError(f"Settings file is not valid JSON: {self._config_path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigLoadError(f"Could not read settings file: {self._config_path}") from e

        if not isinstance(data, dict):
            raise ConfigLoadError(f"Settings file does not contain a JSON object: {self._config_path}")

        try:
            config = Configuration.from_dict(data)
        except TypeError as e:
            raise ConfigLoadError(f"Settings file has invalid fields: {e}") from e

        if config.api_key:
            result = self.cipher.decrypt(config.api_key)
            if result.status is DecryptStatus.PLAINTEXT:
                self.logger.warning("Stored API key is not encrypted, using it as plaintext")
            elif result.status is DecryptStatus.UNREADABLE:
                self.logger.warning("Stored API key could not be decrypted, keeping stored value")
            config.api_key = result.value

        self._current_config = config
        self.logger.debug(f"Loaded settings from {self._config_path}")
        return replace(config)

    def save(self, config: Configuration) -> None:
        """
        Write the configuration to disk, encrypting the API key.

        Args:
            config: Configuration with the API key in plaintext

        Raises:
            ConfigSaveError: If encryption or writing fails; the previous file is kept
        """
        data = config.to_dict()

        try:
            if config.api_key:
                data[FIELD_KEYS['api_key']] = self.cipher.encrypt(config.api_key)
            self._write_atomic(json.dumps(data, indent=2, ensure_ascii=False))
        except Exception as e:
            raise ConfigSaveError(f"Failed to save settings to {self._config_path}: {e}") from e

        self._current_config = replace(config)
        self.logger.debug(f"Saved settings to {self._config_path}")

    def _write_atomic(self, content: str):
        """Replace the settings file in one step."""
        self.base_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=self.base_dir, prefix=".config-", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.chmod(tmp_path, 0o600)
            except OSError:
                pass  # not supported on every filesystem
            os.replace(tmp_path, self._config_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
