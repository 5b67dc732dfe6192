"""
Base models shared by every EventSub payload and condition.

Timestamps are kept as the RFC3339 strings Twitch sends: they carry
nanosecond precision that datetime would truncate, and keeping them as
strings lets a parsed event re-serialize to exactly what was received.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class TwitchModel(BaseModel):
    """Model that keeps fields it does not declare.

    Undeclared fields end up in `model_extra`; the resolver decides whether
    they are an error (strict parsing) or a warning.
    """

    model_config = ConfigDict(extra="allow")

    def to_json(self) -> Dict[str, Any]:
        """Serialize back to the JSON object this model was parsed from."""
        return self.model_dump(mode="json", exclude_unset=True)


class EventPayload(TwitchModel):
    """Base class for the `event` object of a notification."""
    pass


class Condition(TwitchModel):
    """Base class for the `condition` object of a subscription."""
    pass


class Transport(TwitchModel):
    """Delivery transport of a subscription."""
    method: str
    callback: Optional[str] = None
    secret: Optional[str] = None
    session_id: Optional[str] = None
    conduit_id: Optional[str] = None
    connected_at: Optional[str] = None
    disconnected_at: Optional[str] = None


class SubscriptionInfo(TwitchModel):
    """The `subscription` object included with every delivery."""
    id: str
    type: str
    version: str
    status: Optional[str] = None
    cost: Optional[int] = None
    condition: Dict[str, Any] = {}
    transport: Optional[Transport] = None
    created_at: Optional[str] = None


class SessionData(TwitchModel):
    """The `session` object of welcome and reconnect WebSocket frames."""
    id: str
    status: str
    connected_at: Optional[str] = None
    keepalive_timeout_seconds: Optional[float] = None
    reconnect_url: Optional[str] = None
    recovery_url: Optional[str] = None


# Building blocks reused by several payloads

class BroadcasterEvent(EventPayload):
    broadcaster_user_id: str
    broadcaster_user_login: str
    broadcaster_user_name: str


class BroadcasterUserEvent(BroadcasterEvent):
    user_id: str
    user_login: str
    user_name: str


class ModeratorEvent(BroadcasterEvent):
    moderator_user_id: str
    moderator_user_login: str
    moderator_user_name: str


class Emote(TwitchModel):
    id: str
    begin: Optional[int] = None
    end: Optional[int] = None


class Message(TwitchModel):
    text: str
    emotes: Optional[List[Emote]] = None


class MessageFragment(TwitchModel):
    type: str
    text: str
    cheermote: Optional[Dict[str, Any]] = None
    emote: Optional[Dict[str, Any]] = None
    mention: Optional[Dict[str, Any]] = None


class ChatMessage(TwitchModel):
    text: str
    fragments: List[MessageFragment] = []


class Badge(TwitchModel):
    set_id: str
    id: str
    info: str


class Image(TwitchModel):
    url_1x: str
    url_2x: str
    url_4x: str


class Amount(TwitchModel):
    value: int
    decimal_places: int
    currency: str
