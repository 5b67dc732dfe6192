import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
from websockets.exceptions import ConnectionClosedOK

from twitch_eventsub.auth import TokenManager
from twitch_eventsub.http_client import HttpRequest, HttpResponse


def json_response(status: int, data: Any = None, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
    body = b"" if data is None else json.dumps(data).encode("utf-8")
    return HttpResponse(status=status, body=body, headers=headers or {})


Responder = Union[HttpResponse, Callable[[HttpRequest], HttpResponse]]


class FakeHttpClient:
    """HttpClient answering from a table of canned responses.

    Responses registered for the same route are returned in order; the last
    one keeps being returned once the others are used up.
    """

    def __init__(self):
        self.requests: List[HttpRequest] = []
        self.routes: Dict[Tuple[str, str], List[Responder]] = {}

    def add(self, method: str, url: str, response: Responder) -> None:
        self.routes.setdefault((method, url), []).append(response)

    def calls(self, method: str, url: str) -> List[HttpRequest]:
        return [r for r in self.requests if r.method == method and r.url == url]

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        # let concurrent callers interleave
        await asyncio.sleep(0)
        responses = self.routes.get((request.method, request.url))
        if not responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if callable(response):
            return response(request)
        return response


_CLOSE = object()


class FakeWebSocket:
    """Scripted WebSocket connection.

    recv() returns the queued frames in order and then waits for more;
    close() makes pending and later recv() calls raise ConnectionClosedOK.
    """

    def __init__(self, frames: List[str] = (), name: str = "ws", log: Optional[List[str]] = None,
                 connect_delay: float = 0.0):
        self.name = name
        self.log = log if log is not None else []
        self.connect_delay = connect_delay
        self.closed = False
        self._frames: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self._frames.put_nowait(frame)

    def push(self, frame: str) -> None:
        self._frames.put_nowait(frame)

    @property
    def pending(self) -> int:
        return self._frames.qsize()

    async def recv(self) -> str:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        frame = await self._frames.get()
        if frame is _CLOSE:
            raise ConnectionClosedOK(None, None)
        if isinstance(frame, Exception):
            raise frame
        self.log.append(f"{self.name} recv {json.loads(frame)['metadata']['message_type']}")
        return frame

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.log.append(f"{self.name} closed")
            self._frames.put_nowait(_CLOSE)


class FakeConnector:
    """Connection factory handing out prepared FakeWebSockets in order."""

    def __init__(self, sockets: List[Union[FakeWebSocket, Exception]]):
        self.sockets = list(sockets)
        self.urls: List[str] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if not self.sockets:
            raise OSError("connection refused")
        item = self.sockets.pop(0)
        if isinstance(item, Exception):
            raise item
        if item.connect_delay:
            await asyncio.sleep(item.connect_delay)
        return item


async def no_sleep(delay: float) -> None:
    await asyncio.sleep(0)


def subscription_object(event_type: str, version: str = "1", status: str = "enabled",
                        subscription_id: str = "f1c2a387-161a-49f9-a165-0f21d7a4e1c4",
                        condition: Optional[Dict[str, Any]] = None,
                        transport: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "id": subscription_id,
        "type": event_type,
        "version": version,
        "status": status,
        "cost": 0,
        "condition": condition if condition is not None else {"broadcaster_user_id": "1337"},
        "transport": transport or {"method": "webhook", "callback": "https://example.com/webhooks/callback"},
        "created_at": "2019-11-16T10:11:12.634234626Z",
    }


def metadata(message_type: str, message_id: str = "befa7b53-d79d-478f-86b9-120f112b044e",
             event_type: Optional[str] = None, version: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "message_id": message_id,
        "message_type": message_type,
        "message_timestamp": "2023-07-19T10:11:12.634234626Z",
    }
    if event_type:
        data["subscription_type"] = event_type
        data["subscription_version"] = version
    return data


def welcome_frame(session_id: str = "session-1", keepalive: float = 10,
                  message_id: str = "welcome-1") -> str:
    return json.dumps({
        "metadata": metadata("session_welcome", message_id),
        "payload": {"session": {
            "id": session_id,
            "status": "connected",
            "connected_at": "2023-07-19T14:56:51.616329898Z",
            "keepalive_timeout_seconds": keepalive,
            "reconnect_url": None,
        }},
    })


def keepalive_frame(message_id: str = "keepalive-1") -> str:
    return json.dumps({"metadata": metadata("session_keepalive", message_id), "payload": {}})


def reconnect_frame(url: Optional[str], session_id: str = "session-1") -> str:
    return json.dumps({
        "metadata": metadata("session_reconnect", "reconnect-1"),
        "payload": {"session": {
            "id": session_id,
            "status": "reconnecting",
            "keepalive_timeout_seconds": None,
            "reconnect_url": url,
            "connected_at": "2023-07-19T14:56:51.616329898Z",
        }},
    })


def notification_frame(event_type: str, version: str, event: Dict[str, Any], message_id: str) -> str:
    transport = {"method": "websocket", "session_id": "session-1"}
    return json.dumps({
        "metadata": metadata("notification", message_id, event_type, version),
        "payload": {
            "subscription": subscription_object(event_type, version, transport=transport),
            "event": event,
        },
    })


def revocation_frame(event_type: str, version: str = "1", status: str = "authorization_revoked") -> str:
    transport = {"method": "websocket", "session_id": "session-1"}
    return json.dumps({
        "metadata": metadata("revocation", "revocation-1", event_type, version),
        "payload": {"subscription": subscription_object(event_type, version, status=status, transport=transport)},
    })


def follow_event(user_id: str = "1234") -> Dict[str, Any]:
    return {
        "user_id": user_id,
        "user_login": "cool_user",
        "user_name": "Cool_User",
        "broadcaster_user_id": "1337",
        "broadcaster_user_login": "cooler_user",
        "broadcaster_user_name": "Cooler_User",
        "followed_at": "2020-07-15T18:16:11.17106713Z",
    }


def stream_online_event() -> Dict[str, Any]:
    return {
        "id": "9001",
        "broadcaster_user_id": "1337",
        "broadcaster_user_login": "cool_user",
        "broadcaster_user_name": "Cool_User",
        "type": "live",
        "started_at": "2020-10-11T10:11:12.123Z",
    }


@pytest.fixture
def http() -> FakeHttpClient:
    return FakeHttpClient()


@pytest.fixture
def user_tokens(http: FakeHttpClient) -> TokenManager:
    """A fresh user token with chat and follower scopes."""
    return TokenManager.from_existing_unchecked(
        http,
        access_token="user-token",
        client_id="client-id",
        refresh_token="refresh-token",
        client_secret="client-secret",
        login="cool_user",
        scopes=["moderator:read:followers", "user:read:chat"],
        expires_at=time.time() + 3600,
    )
