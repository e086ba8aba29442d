"""
OCR through the Gemini vision API.

This module contains the OCR client and the HTTP transports it sends
requests through.
"""

from .gemini_client import OcrClient, NO_TEXT_PLACEHOLDER, map_api_error
from .transport import HttpTransport, AiohttpTransport, RequestsTransport, TransportResponse

__all__ = [
    "OcrClient", "NO_TEXT_PLACEHOLDER", "map_api_error",
    "HttpTransport", "AiohttpTransport", "RequestsTransport", "TransportResponse",
]
