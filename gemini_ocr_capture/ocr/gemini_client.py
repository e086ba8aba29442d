"""
Gemini vision OCR client.

Sends a captured image to the Gemini ``generateContent`` endpoint and returns
the transcribed text. Generation parameters are fixed to favour literal
transcription over paraphrasing.
"""

import asyncio
import base64
import io
import json
import logging
import time
from dataclasses import replace
from typing import Dict, Any, Optional, Union

from PIL import Image, UnidentifiedImageError

from .transport import AiohttpTransport, HttpTransport, TransportResponse
from ..core.config import Configuration
from ..core.exceptions import (
    InvalidArgumentError,
    MissingApiKeyError,
    NetworkError,
    OcrApiError,
    OcrResponseParseError,
    RequestCancelledError,
)
from ..core.settings import DEFAULT_MODEL
from ..utils.logger import get_logger


API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

NO_TEXT_PLACEHOLDER = "No text could be extracted from the image."

PROMPT_TEMPLATE = (
    "Extract all text from this image. Ignore the layout and output only the text. "
    "Target language: {language}."
)

GENERATION_CONFIG = {
    "temperature": 0.0,
    "topP": 0.1,
    "topK": 16,
    "maxOutputTokens": 2048,
}

# Pillow modes the PNG encoder writes directly; others are converted first
PNG_MODES = ("1", "L", "LA", "I", "P", "RGB", "RGBA")

# User facing messages for non-success responses
MESSAGE_INVALID_KEY = "The API key is invalid. Please set a valid Gemini API key."
MESSAGE_QUOTA = "The API quota has been exceeded. Check the billing settings in Google Cloud Console."
MESSAGE_MODEL_NOT_FOUND = (
    "The Gemini model is not available. Check that the Gemini API is enabled in Google Cloud Console."
)
MESSAGE_BAD_REQUEST = "The request was malformed. The image may be too large."
MESSAGE_RATE_LIMITED = "Too many requests. Please wait a moment and try again."
MESSAGE_NOT_FOUND = "The API endpoint or model is not available."
MESSAGE_GENERIC = "The Gemini API request failed with status {status}."


def extract_error_message(body: str) -> Optional[str]:
    """Return ``error.message`` from an error envelope, if present."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None

    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        message = data["error"].get("message")
        if isinstance(message, str):
            return message
    return None


def map_api_error(status_code: int, body: str) -> OcrApiError:
    """
    Turn a non-success response into an actionable error.

    Args:
        status_code: HTTP status code
        body: Raw response body

    Returns:
        OcrApiError carrying the user facing message and the provider's message
    """
    details = extract_error_message(body)
    searchable = (details or body or "").lower()

    if status_code in (401, 403):
        message = MESSAGE_INVALID_KEY
    elif status_code == 400:
        if "quota" in searchable:
            message = MESSAGE_QUOTA
        elif "model not found" in searchable:
            message = MESSAGE_MODEL_NOT_FOUND
        else:
            message = MESSAGE_BAD_REQUEST
    elif status_code == 429:
        message = MESSAGE_RATE_LIMITED
    elif status_code == 404:
        message = MESSAGE_NOT_FOUND
    else:
        message = MESSAGE_GENERIC.format(status=status_code)

    return OcrApiError(message, status_code, details or body or None)


def parse_ocr_response(data: Any) -> str:
    """
    Pull the text out of a success envelope.

    Raises:
        OcrResponseParseError: If ``candidates[0].content.parts[0].text`` is missing
    """
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise OcrResponseParseError(
            "The OCR provider's response format has changed and could not be read."
        ) from e

    if text is None:
        return NO_TEXT_PLACEHOLDER
    if not isinstance(text, str):
        raise OcrResponseParseError(f"Expected text in response, got {type(text).__name__}")

    return text if text else NO_TEXT_PLACEHOLDER


class _StaticConfig:
    """Accessor wrapping a fixed configuration value."""

    def __init__(self, config: Configuration):
        self._config = replace(config)

    @property
    def current_config(self) -> Configuration:
        return replace(self._config)


class OcrClient:
    """
    Client for Gemini vision OCR.

    The configuration is read through an accessor on every call, so a key
    saved after the client was created is used by the next request.
    """

    def __init__(self, config, transport: Optional[HttpTransport] = None,
                 logger: Optional[logging.Logger] = None,
                 model: str = DEFAULT_MODEL,
                 base_url: str = API_BASE_URL):
        """
        Initialize the OCR client.

        Args:
            config: ConfigStore (or any object with ``current_config``) or a Configuration
            transport: HTTP transport (default: aiohttp)
            logger: Logger to use (default: package logger)
            model: Gemini model name
            base_url: API base URL

        Raises:
            MissingApiKeyError: If no API key is configured
        """
        if isinstance(config, Configuration):
            config = _StaticConfig(config)
        self._config_source = config
        self.logger = logger or get_logger("gemini")
        self.model = model
        self.base_url = base_url.rstrip("/")

        if not self._config_source.current_config.api_key:
            raise MissingApiKeyError("No API key is configured. Please enter a Gemini API key.")

        self._owns_transport = transport is None
        self.transport = transport or AiohttpTransport()

    @property
    def generate_url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    @property
    def models_url(self) -> str:
        return f"{self.base_url}/models"

    @staticmethod
    def encode_image(image: Union[Image.Image, bytes, bytearray]) -> str:
        """
        Encode an image as base64 PNG.

        Raises:
            InvalidArgumentError: If the image is missing or cannot be decoded
        """
        if image is None:
            raise InvalidArgumentError("image must not be None")

        if isinstance(image, (bytes, bytearray)):
            try:
                image = Image.open(io.BytesIO(image))
                image.load()
            except (UnidentifiedImageError, OSError) as e:
                raise InvalidArgumentError(f"Could not decode image data: {e}") from e

        if not isinstance(image, Image.Image):
            raise InvalidArgumentError(f"Unsupported image type: {type(image).__name__}")

        if image.mode not in PNG_MODES:
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")

        buffer = io.BytesIO()
        try:
            image.save(buffer, format="PNG")
        except (OSError, ValueError) as e:
            raise InvalidArgumentError(f"Could not encode image as PNG: {e}") from e
        return base64.b64encode(buffer.getvalue()).decode("ascii")

    @staticmethod
    def build_request(image_data: str, language: str) -> Dict[str, Any]:
        """Build the generateContent request body."""
        return {
            "contents": [
                {
                    "parts": [
                        {"text": PROMPT_TEMPLATE.format(language=language)},
                        {
                            "inline_data": {
                                "mime_type": "image/png",
                                "data": image_data,
                            }
                        },
                    ]
                }
            ],
            "generationConfig": dict(GENERATION_CONFIG),
        }

    async def analyze_image(self, image, timeout: Optional[float] = None) -> str:
        """
        Extract the text from an image.

        Args:
            image: Pillow image or encoded image bytes
            timeout: Deadline for the whole call in seconds (None: no deadline)

        Returns:
            Recognized text, or NO_TEXT_PLACEHOLDER when nothing was found

        Raises:
            InvalidArgumentError: If the image is missing or unusable
            MissingApiKeyError: If the API key has been removed
            OcrApiError: On non-success HTTP responses
            OcrResponseParseError: On unexpected success bodies
            NetworkError: On transport failures
            RequestCancelledError: If the deadline expires
        """
        if image is None:
            raise InvalidArgumentError("image must not be None")

        config = self._config_source.current_config
        if not config.api_key:
            raise MissingApiKeyError("No API key is configured. Please enter a Gemini API key.")

        image_data = self.encode_image(image)
        body = self.build_request(image_data, config.language)

        start_time = time.time()
        self.logger.info(f"Sending OCR request to {self.model} (language: {config.language})")

        response = await self._with_deadline(
            self.transport.post(self.generate_url, params={"key": config.api_key}, json=body),
            timeout,
        )

        if not response.ok:
            error = map_api_error(response.status_code, response.text)
            self.logger.error(f"OCR request failed: HTTP {response.status_code} - {error.details}")
            raise error

        text = self._parse(response)
        self.logger.info(f"OCR completed in {time.time() - start_time:.2f}s ({len(text)} characters)")
        return text

    def _parse(self, response: TransportResponse) -> str:
        try:
            data = response.json()
        except ValueError as e:
            raise OcrResponseParseError("The OCR provider returned a body that is not JSON.") from e
        return parse_ocr_response(data)

    async def validate_api_key(self, candidate_key: str, timeout: Optional[float] = None) -> bool:
        """
        Check whether an API key is accepted by the API. Never raises.

        Args:
            candidate_key: Key to check
            timeout: Deadline in seconds (None: no deadline)

        Returns:
            True if listing models succeeds with this key
        """
        if not candidate_key:
            return False

        try:
            response = await self._with_deadline(
                self.transport.get(self.models_url, params={"key": candidate_key}),
                timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"API key validation failed: {e}")
            return False

        self.logger.debug(f"API key validation returned HTTP {response.status_code}")
        return response.ok

    async def _with_deadline(self, request, timeout: Optional[float]) -> TransportResponse:
        """Await a transport call, mapping the caller's deadline."""
        try:
            if timeout is None:
                return await request
            return await asyncio.wait_for(request, timeout)
        except (NetworkError, asyncio.CancelledError):
            raise
        except asyncio.TimeoutError as e:
            # Transports report their own timeouts as NetworkError
            if timeout is None:
                raise NetworkError(f"Request timed out: {e}") from e
            raise RequestCancelledError(f"Request cancelled after {timeout}s deadline") from e
        except OSError as e:
            raise NetworkError(f"Request failed: {e}") from e

    async def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
