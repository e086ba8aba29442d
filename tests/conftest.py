"""
Pytest configuration and shared fixtures.

This module contains pytest configuration and fixtures that are available
to all test modules.
"""

import pytest
import tempfile
import shutil
import json
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageDraw

from gemini_ocr_capture.core.config import Configuration, ConfigStore
from gemini_ocr_capture.core.crypto import AESGCM, KeyProvider
from gemini_ocr_capture.ocr.transport import HttpTransport, TransportResponse


class InMemoryKeyProvider(KeyProvider):
    """Key provider that keeps the key in memory."""

    def __init__(self, key: Optional[bytes] = None):
        self.key = key

    def get_key(self, create: bool = True):
        if self.key is None and create:
            self.key = AESGCM.generate_key(bit_length=256)
        return self.key


class StubTransport(HttpTransport):
    """Transport returning canned responses and recording requests."""

    def __init__(self, response: Optional[TransportResponse] = None, error: Optional[Exception] = None):
        self.response = response or TransportResponse(200, "{}")
        self.error = error
        self.requests: List[dict] = []
        self.closed = False

    async def _respond(self, request: dict) -> TransportResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    async def get(self, url, params=None, headers=None):
        return await self._respond({"method": "GET", "url": url, "params": params})

    async def post(self, url, params=None, json=None, headers=None):
        return await self._respond({"method": "POST", "url": url, "params": params, "json": json})

    async def close(self):
        self.closed = True


def success_body(text: str) -> str:
    """Build a generateContent success envelope."""
    return json.dumps({
        "candidates": [
            {"content": {"parts": [{"text": text}], "role": "model"}, "finishReason": "STOP"}
        ]
    }, ensure_ascii=False)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def key_provider():
    """In-memory encryption key provider."""
    return InMemoryKeyProvider()


@pytest.fixture
def config_store(temp_dir, key_provider):
    """Config store writing into a temporary directory."""
    return ConfigStore(temp_dir, key_provider=key_provider)


@pytest.fixture
def sample_config():
    """Create a sample configuration."""
    return Configuration(
        api_key="AIzaSyTestKey_1234567890",
        display_ocr_result=False,
        play_sound_on_ocr_success=True,
        custom_sound_file_path="/tmp/sounds/done.wav",
        language="en",
        fullscreen_shortcut="Ctrl+PrintScreen"
    )


@pytest.fixture
def stub_transport():
    """Transport answering with a successful OCR result."""
    return StubTransport(TransportResponse(200, success_body("OCR結果")))


@pytest.fixture
def make_transport():
    """Factory for stub transports with custom responses."""
    def factory(status_code: int = 200, body: str = "{}", error: Optional[Exception] = None):
        return StubTransport(TransportResponse(status_code, body), error=error)
    return factory


@pytest.fixture
def make_success_body():
    """Factory for generateContent success bodies."""
    return success_body


@pytest.fixture
def sample_image():
    """Create a simple test image."""
    img = Image.new('RGB', (200, 60), color='white')
    draw = ImageDraw.Draw(img)
    draw.text((10, 20), 'Test OCR Text', fill='black')
    return img


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        # Mark tests in integration folder as integration tests
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        # Mark tests in unit folder as unit tests
        elif "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
