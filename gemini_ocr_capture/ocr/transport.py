"""
HTTP transports used by the OCR client.

The client only needs ``get`` and ``post``; keeping them behind a small
interface lets tests substitute a stub and lets applications choose between
``aiohttp`` and a ``requests`` session.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, Any, Optional

import aiohttp
import requests
from requests.adapters import HTTPAdapter

from ..core.exceptions import NetworkError
from ..utils.logger import get_logger


DEFAULT_HEADERS = {"Accept": "application/json"}


@dataclass
class TransportResponse:
    """Status and body of an HTTP response."""

    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.text)


class HttpTransport(ABC):
    """Minimal asynchronous HTTP interface."""

    @abstractmethod
    async def get(self, url: str, params: Optional[Dict[str, str]] = None,
                  headers: Optional[Dict[str, str]] = None) -> TransportResponse:
        """
        Send a GET request.

        Raises:
            NetworkError: On connection failures and timeouts
        """
        pass

    @abstractmethod
    async def post(self, url: str, params: Optional[Dict[str, str]] = None,
                   json: Any = None,
                   headers: Optional[Dict[str, str]] = None) -> TransportResponse:
        """
        Send a POST request with a JSON body.

        Raises:
            NetworkError: On connection failures and timeouts
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class AiohttpTransport(HttpTransport):
    """Transport backed by an ``aiohttp.ClientSession``."""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout
        self.logger = get_logger("transport")
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=DEFAULT_HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def _request(self, method: str, url: str, **kwargs) -> TransportResponse:
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                # Error pages may not match their declared charset
                text = await response.text(errors="replace")
                return TransportResponse(response.status, text, dict(response.headers))
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Request timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request failed: {e}") from e

    async def get(self, url, params=None, headers=None):
        return await self._request("GET", url, params=params, headers=headers)

    async def post(self, url, params=None, json=None, headers=None):
        return await self._request("POST", url, params=params, json=json, headers=headers)

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()


class RequestsTransport(HttpTransport):
    """
    Transport backed by a ``requests.Session``.

    Requests block, so they run in the event loop's default executor.
    Retries are disabled on the adapter; every call is a single attempt.
    """

    def __init__(self, timeout: float = 60.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.logger = get_logger("transport")
        self.session = session or self._setup_session()

    @staticmethod
    def _setup_session() -> requests.Session:
        """Setup HTTP session without retries."""
        session = requests.Session()

        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update(DEFAULT_HEADERS)
        return session

    def _send(self, method: str, url: str, **kwargs) -> TransportResponse:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise NetworkError(f"Request failed: {e}") from e

        return TransportResponse(response.status_code, response.text, dict(response.headers))

    async def _request(self, method: str, url: str, **kwargs) -> TransportResponse:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._send, method, url, **kwargs))

    async def get(self, url, params=None, headers=None):
        return await self._request("GET", url, params=params, headers=headers)

    async def post(self, url, params=None, json=None, headers=None):
        return await self._request("POST", url, params=params, json=json, headers=headers)

    async def close(self) -> None:
        self.session.close()
