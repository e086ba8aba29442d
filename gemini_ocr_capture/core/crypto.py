"""
Encryption at rest for the API key.

The key is sealed with AES-256-GCM using a fresh random nonce for every
encryption. The 32 byte key material lives in the OS keychain (through
``keyring``) or, when no keychain backend is available, in a private file
next to the settings file.

Stored envelope::

    base64( version || nonce || ciphertext+tag )
"""

import base64
import binascii
import os
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import keyring
from keyring.backends import fail
from keyring.errors import KeyringError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import EncryptionError
from ..utils.logger import get_logger


ENVELOPE_VERSION = 1
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
ASSOCIATED_DATA = b"gemini-ocr-capture:apiKey"

KEYRING_SERVICE = "gemini-ocr-capture"
KEYRING_USERNAME = "config-encryption-key"
KEY_FILE_NAME = ".config.key"


class KeyProvider(ABC):
    """Source of the symmetric key used to seal the API key."""

    @abstractmethod
    def get_key(self, create: bool = True) -> Optional[bytes]:
        """
        Return the key material.

        Args:
            create: Generate and store a new key when none exists yet

        Returns:
            32 key bytes, or None when missing and ``create`` is False
        """
        pass


class KeyringKeyProvider(KeyProvider):
    """Keeps the key in the OS keychain."""

    def __init__(self, service: str = KEYRING_SERVICE, username: str = KEYRING_USERNAME):
        self.service = service
        self.username = username

    def get_key(self, create: bool = True) -> Optional[bytes]:
        stored = keyring.get_password(self.service, self.username)
        if stored:
            return base64.b64decode(stored)

        if not create:
            return None

        key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
        keyring.set_password(self.service, self.username, base64.b64encode(key).decode("ascii"))
        return key


class FileKeyProvider(KeyProvider):
    """Keeps the key in a file readable only by the current user."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def get_key(self, create: bool = True) -> Optional[bytes]:
        if self.path.exists():
            key = base64.b64decode(self.path.read_text(encoding="ascii").strip())
            if len(key) != KEY_SIZE:
                raise ValueError(f"Key file {self.path} does not hold a {KEY_SIZE} byte key")
            return key

        if not create:
            return None

        key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Create with restrictive permissions before the key is written
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="ascii") as f:
            f.write(base64.b64encode(key).decode("ascii"))
        return key


def keyring_available() -> bool:
    """Check whether a usable keychain backend is installed."""
    try:
        backend = keyring.get_keyring()
    except KeyringError:
        return False
    return not isinstance(backend, fail.Keyring) and getattr(backend, "priority", 0) > 0


def create_key_provider(base_dir: Union[str, Path], backend: str = "auto") -> KeyProvider:
    """
    Pick the key provider for a settings directory.

    Args:
        base_dir: Directory holding the settings file
        backend: ``"keyring"``, ``"file"`` or ``"auto"`` (keychain when available)
    """
    logger = get_logger("crypto")

    if backend == "keyring" or (backend == "auto" and keyring_available()):
        logger.debug("Using OS keychain for the encryption key")
        return KeyringKeyProvider()

    logger.debug("Using key file for the encryption key")
    return FileKeyProvider(Path(base_dir) / KEY_FILE_NAME)


class DecryptStatus(Enum):
    """Outcome of decrypting a stored API key."""
    DECRYPTED = "decrypted"    # Envelope opened, value is plaintext
    PLAINTEXT = "plaintext"    # Not an envelope, value stored unencrypted
    UNREADABLE = "unreadable"  # Envelope shape but cannot be opened


@dataclass(frozen=True)
class DecryptResult:
    """Tagged result of :meth:`ApiKeyCipher.decrypt`."""

    status: DecryptStatus
    value: str

    @property
    def decrypted(self) -> bool:
        return self.status is DecryptStatus.DECRYPTED


class ApiKeyCipher:
    """Seals and opens API keys with AES-GCM."""

    def __init__(self, key_provider: KeyProvider):
        self.key_provider = key_provider
        self.logger = get_logger("crypto")

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt an API key for storage.

        Args:
            plaintext: API key to seal

        Returns:
            Base64 envelope

        Raises:
            EncryptionError: If the key material is unavailable or sealing fails
        """
        try:
            key = self.key_provider.get_key(create=True)
            nonce = secrets.token_bytes(NONCE_SIZE)
            sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), ASSOCIATED_DATA)
        except Exception as e:
            raise EncryptionError(f"Failed to encrypt API key: {e}") from e

        envelope = bytes([ENVELOPE_VERSION]) + nonce + sealed
        return base64.b64encode(envelope).decode("ascii")

    @staticmethod
    def _parse_envelope(value: str) -> Optional[bytes]:
        try:
            raw = base64.b64decode(value.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, ValueError):
            return None

        if len(raw) < 1 + NONCE_SIZE + TAG_SIZE or raw[0] != ENVELOPE_VERSION:
            return None
        return raw

    def looks_encrypted(self, value: str) -> bool:
        """Structural check for the encryption envelope."""
        return self._parse_envelope(value) is not None

    def decrypt(self, value: str) -> DecryptResult:
        """
        Open a stored API key. Never raises.

        Values that are not an envelope are returned as plaintext. Envelopes
        that cannot be opened (other machine, rotated key, corruption) are
        returned unchanged with status ``UNREADABLE``.
        """
        raw = self._parse_envelope(value)
        if raw is None:
            return DecryptResult(DecryptStatus.PLAINTEXT, value)

        nonce = raw[1:1 + NONCE_SIZE]
        sealed = raw[1 + NONCE_SIZE:]

        try:
            key = self.key_provider.get_key(create=False)
            if key is None:
                self.logger.warning("No encryption key available to open the stored API key")
                return DecryptResult(DecryptStatus.UNREADABLE, value)

            plaintext = AESGCM(key).decrypt(nonce, sealed, ASSOCIATED_DATA)
            return DecryptResult(DecryptStatus.DECRYPTED, plaintext.decode("utf-8"))
        except InvalidTag:
            self.logger.warning("Stored API key failed authentication")
        except Exception as e:
            self.logger.warning(f"Could not decrypt stored API key: {e}")

        return DecryptResult(DecryptStatus.UNREADABLE, value)
