"""
Integration tests for the capture to text workflow.

Wires a file backed ConfigStore to the OcrClient the way the application
does, with only the HTTP transport stubbed.
"""

import pytest
import json

from gemini_ocr_capture.core.config import ConfigStore
from gemini_ocr_capture.core.crypto import FileKeyProvider, KEY_FILE_NAME
from gemini_ocr_capture.core.exceptions import MissingApiKeyError, OcrApiError
from gemini_ocr_capture.ocr.gemini_client import OcrClient


@pytest.fixture
def file_store(temp_dir):
    return ConfigStore(temp_dir, key_provider=FileKeyProvider(temp_dir / KEY_FILE_NAME))


class TestOcrWorkflow:
    """Test settings and OCR working together."""

    @pytest.mark.asyncio
    async def test_saved_settings_drive_requests(self, temp_dir, file_store, sample_config,
                                                 stub_transport, sample_image):
        """Test that a restarted store feeds the saved key and language to the client."""
        file_store.save(sample_config)

        reopened = ConfigStore(temp_dir, key_provider=FileKeyProvider(temp_dir / KEY_FILE_NAME))
        client = OcrClient(reopened, transport=stub_transport)

        text = await client.analyze_image(sample_image)

        assert text == "OCR結果"
        request = stub_transport.requests[0]
        assert request["params"] == {"key": sample_config.api_key}
        assert "Target language: en" in request["json"]["contents"][0]["parts"][0]["text"]

    @pytest.mark.asyncio
    async def test_settings_changes_apply_without_new_client(self, file_store, sample_config,
                                                             stub_transport, sample_image):
        """Test that the client picks up saved changes on the next call."""
        file_store.save(sample_config)
        client = OcrClient(file_store, transport=stub_transport)

        config = file_store.current_config
        config.language = "de"
        file_store.save(config)
        await client.analyze_image(sample_image)

        assert "Target language: de" in stub_transport.requests[0]["json"]["contents"][0]["parts"][0]["text"]

    @pytest.mark.asyncio
    async def test_key_removed_after_client_created(self, file_store, sample_config,
                                                    stub_transport, sample_image):
        """Test that clearing the key stops requests."""
        file_store.save(sample_config)
        client = OcrClient(file_store, transport=stub_transport)

        config = file_store.current_config
        config.api_key = None
        file_store.save(config)

        with pytest.raises(MissingApiKeyError):
            await client.analyze_image(sample_image)
        assert stub_transport.requests == []

    @pytest.mark.asyncio
    async def test_lost_key_file_keeps_stored_value(self, temp_dir, file_store, sample_config,
                                                    make_transport, sample_image):
        """Test that losing the key file leaves the envelope as the key and the API rejects it."""
        file_store.save(sample_config)
        sealed = json.loads(file_store.config_path.read_text(encoding="utf-8"))["apiKey"]
        (temp_dir / KEY_FILE_NAME).unlink()

        reopened = ConfigStore(temp_dir, key_provider=FileKeyProvider(temp_dir / KEY_FILE_NAME))
        assert reopened.current_config.api_key == sealed
        assert not (temp_dir / KEY_FILE_NAME).exists()

        transport = make_transport(400, '{"error": {"code": 400, "message": "API key not valid."}}')
        client = OcrClient(reopened, transport=transport)

        with pytest.raises(OcrApiError) as exc_info:
            await client.analyze_image(sample_image)
        assert exc_info.value.status_code == 400
