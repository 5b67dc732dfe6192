"""
Narrow HTTP interface used for OAuth and subscription management calls.

Everything else in the package talks to Twitch through HttpClient.send(),
so tests can substitute a fake and applications can share one aiohttp
session across the token manager and the subscription calls.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import aiohttp

from .errors import ResponseParseError, TransportError

logger = logging.getLogger(__name__)


@dataclass
class HttpRequest:
    """An outbound HTTP request."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    data: Optional[Dict[str, str]] = None
    json: Optional[Any] = None


@dataclass
class HttpResponse:
    """A fully read HTTP response."""
    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            ResponseParseError: If the body is not valid JSON
        """
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError) as e:
            raise ResponseParseError(f"Invalid JSON in response (status {self.status}): {e}") from e

    def error_message(self) -> str:
        """Best-effort extraction of Twitch's `message` field."""
        try:
            data = self.json()
        except ResponseParseError:
            return self.text() or "Unknown error"
        if isinstance(data, dict):
            return str(data.get("message") or data.get("error") or "Unknown error")
        return "Unknown error"


class HttpClient(Protocol):
    """Anything that can send an HttpRequest and return an HttpResponse."""

    async def send(self, request: HttpRequest) -> HttpResponse:
        ...


class AiohttpClient:
    """
    HttpClient backed by aiohttp.

    The underlying ClientSession is created lazily and reused until close().
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: float = 30.0):
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def send(self, request: HttpRequest) -> HttpResponse:
        """
        Send a request and read the whole response body.

        Raises:
            TransportError: If the request fails before a response is received
        """
        session = await self._get_session()
        logger.debug(f"{request.method} {request.url}")
        try:
            async with session.request(
                request.method,
                request.url,
                headers=request.headers,
                params=request.params or None,
                data=request.data,
                json=request.json,
            ) as response:
                body = await response.read()
                return HttpResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                )
        except aiohttp.ClientError as e:
            logger.error(f"Network error during {request.method} {request.url}: {e}")
            raise TransportError(f"Network error during {request.method} {request.url}: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout during {request.method} {request.url}")
            raise TransportError(f"Timeout during {request.method} {request.url}") from e

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "AiohttpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
