"""
Classification of inbound EventSub messages.

`parse()` handles webhook request bodies, `parse_frame()` handles WebSocket
text frames. Both only look at the outer structure; the event object of a
notification is left as raw JSON for the resolver in `events.py`.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from .errors import EnvelopeDecodeError, EnvelopeSyntaxError, UnrecognizedEnvelopeError
from .payloads.base import SessionData, SubscriptionInfo

logger = logging.getLogger(__name__)

# Subscription statuses that mean Twitch stopped delivering events
TERMINAL_STATUSES = frozenset({
    "authorization_revoked",
    "user_removed",
    "version_removed",
    "notification_failures_exceeded",
    "moderator_removed",
    "chat_user_banned",
})

_WEBHOOK_BODY_KEYS = frozenset({"challenge", "subscription", "event"})


@dataclass(frozen=True)
class ParserConfig:
    """
    Parsing options threaded through envelope parsing and event resolution.

    Attributes:
        strict: Fail on fields the models do not declare instead of
            logging a warning and keeping them
    """
    strict: bool = False


@dataclass(frozen=True)
class VerificationChallenge:
    """Webhook callback verification request; echo `challenge` back."""
    challenge: str
    subscription: Optional[SubscriptionInfo] = None


@dataclass(frozen=True)
class Revocation:
    """Twitch stopped a subscription and will not deliver its events anymore."""
    subscription_id: str
    event_type: str
    version: str
    reason: str
    subscription: SubscriptionInfo
    message_id: Optional[str] = None


@dataclass(frozen=True)
class Notification:
    """An event occurrence whose event object has not been resolved yet."""
    subscription_id: str
    event_type: str
    version: str
    condition: Dict[str, Any]
    created_at: Optional[str]
    raw_event: Dict[str, Any]
    subscription: SubscriptionInfo
    message_id: Optional[str] = None


Envelope = Union[VerificationChallenge, Revocation, Notification]


class MessageType(str, Enum):
    """`metadata.message_type` values of WebSocket frames."""
    SESSION_WELCOME = "session_welcome"
    SESSION_KEEPALIVE = "session_keepalive"
    NOTIFICATION = "notification"
    SESSION_RECONNECT = "session_reconnect"
    REVOCATION = "revocation"


@dataclass(frozen=True)
class FrameMetadata:
    message_id: str
    message_type: MessageType
    message_timestamp: str
    subscription_type: Optional[str] = None
    subscription_version: Optional[str] = None


@dataclass(frozen=True)
class Frame:
    """
    A classified WebSocket frame.

    `session` is set for welcome and reconnect frames, `envelope` for
    notification and revocation frames; keepalives carry neither.
    """
    metadata: FrameMetadata
    session: Optional[SessionData] = None
    envelope: Optional[Envelope] = None

    @property
    def message_type(self) -> MessageType:
        return self.metadata.message_type


def _decode(body: Union[bytes, str]) -> Any:
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EnvelopeDecodeError(f"Message is not valid UTF-8: {e}") from e
    try:
        return json.loads(body)
    except ValueError as e:
        raise EnvelopeSyntaxError(f"Message is not valid JSON: {e}") from e


def _subscription(data: Any) -> SubscriptionInfo:
    if not isinstance(data, dict):
        raise UnrecognizedEnvelopeError("`subscription` is not an object")
    try:
        return SubscriptionInfo.model_validate(data)
    except ValidationError as e:
        raise UnrecognizedEnvelopeError(f"Invalid `subscription` object: {e}") from e


def _notification(
    subscription: SubscriptionInfo, event: Any, message_id: Optional[str]
) -> Notification:
    if not isinstance(event, dict):
        raise UnrecognizedEnvelopeError("`event` is not an object")
    return Notification(
        subscription_id=subscription.id,
        event_type=subscription.type,
        version=subscription.version,
        condition=dict(subscription.condition),
        created_at=subscription.created_at,
        raw_event=event,
        subscription=subscription,
        message_id=message_id,
    )


def _revocation(subscription: SubscriptionInfo, message_id: Optional[str]) -> Revocation:
    return Revocation(
        subscription_id=subscription.id,
        event_type=subscription.type,
        version=subscription.version,
        reason=subscription.status or "unknown",
        subscription=subscription,
        message_id=message_id,
    )


def parse(
    body: Union[bytes, str],
    config: Optional[ParserConfig] = None,
    message_id: Optional[str] = None,
) -> Envelope:
    """
    Classify a webhook request body.

    Shapes are tried in order: verification challenge, notification,
    revocation.

    Args:
        body: Raw request body
        config: Parser options; strict parsing rejects unexpected top-level keys
        message_id: Value of the message id header, kept on the result

    Returns:
        The classified envelope

    Raises:
        EnvelopeDecodeError: If the body is not UTF-8
        EnvelopeSyntaxError: If the body is not JSON
        UnrecognizedEnvelopeError: If the JSON matches none of the shapes
    """
    config = config or ParserConfig()
    data = _decode(body)
    if not isinstance(data, dict):
        raise UnrecognizedEnvelopeError(f"Expected a JSON object, got {type(data).__name__}")

    unexpected = set(data) - _WEBHOOK_BODY_KEYS
    if unexpected:
        if config.strict:
            raise UnrecognizedEnvelopeError(f"Unexpected keys in message: {sorted(unexpected)}")
        logger.warning(f"Ignoring unexpected keys in message: {sorted(unexpected)}")

    raw_subscription = data.get("subscription")
    status = raw_subscription.get("status") if isinstance(raw_subscription, dict) else None

    if "challenge" in data and "event" not in data and status not in TERMINAL_STATUSES:
        challenge = data["challenge"]
        if not isinstance(challenge, str):
            raise UnrecognizedEnvelopeError("`challenge` is not a string")
        subscription = _subscription(raw_subscription) if raw_subscription is not None else None
        return VerificationChallenge(challenge=challenge, subscription=subscription)

    if raw_subscription is not None and "event" in data:
        return _notification(_subscription(raw_subscription), data["event"], message_id)

    if raw_subscription is not None and status in TERMINAL_STATUSES:
        return _revocation(_subscription(raw_subscription), message_id)

    raise UnrecognizedEnvelopeError(f"Message matches no known shape (keys: {sorted(data)})")


def parse_frame(text: Union[bytes, str], config: Optional[ParserConfig] = None) -> Frame:
    """
    Classify a WebSocket text frame.

    Raises:
        EnvelopeDecodeError: If the frame is not UTF-8
        EnvelopeSyntaxError: If the frame is not JSON
        UnrecognizedEnvelopeError: If metadata or payload are missing or
            the message type is unknown
    """
    config = config or ParserConfig()
    data = _decode(text)
    if not isinstance(data, dict) or not isinstance(data.get("metadata"), dict):
        raise UnrecognizedEnvelopeError("Frame has no `metadata` object")

    unexpected = set(data) - {"metadata", "payload"}
    if unexpected:
        if config.strict:
            raise UnrecognizedEnvelopeError(f"Unexpected keys in frame: {sorted(unexpected)}")
        logger.warning(f"Ignoring unexpected keys in frame: {sorted(unexpected)}")

    raw_metadata = data["metadata"]
    try:
        message_type = MessageType(raw_metadata.get("message_type"))
    except ValueError:
        raise UnrecognizedEnvelopeError(
            f"Unknown message type: {raw_metadata.get('message_type')!r}"
        ) from None

    metadata = FrameMetadata(
        message_id=str(raw_metadata.get("message_id", "")),
        message_type=message_type,
        message_timestamp=str(raw_metadata.get("message_timestamp", "")),
        subscription_type=raw_metadata.get("subscription_type"),
        subscription_version=raw_metadata.get("subscription_version"),
    )

    payload = data.get("payload")
    if not isinstance(payload, dict):
        raise UnrecognizedEnvelopeError(f"{message_type.value} frame has no `payload` object")

    if message_type is MessageType.SESSION_KEEPALIVE:
        return Frame(metadata=metadata)

    if message_type in (MessageType.SESSION_WELCOME, MessageType.SESSION_RECONNECT):
        try:
            session = SessionData.model_validate(payload.get("session"))
        except ValidationError as e:
            raise UnrecognizedEnvelopeError(f"Invalid `session` object: {e}") from e
        return Frame(metadata=metadata, session=session)

    subscription = _subscription(payload.get("subscription"))
    if message_type is MessageType.NOTIFICATION:
        if "event" not in payload:
            raise UnrecognizedEnvelopeError("Notification frame has no `event` object")
        return Frame(metadata=metadata, envelope=_notification(subscription, payload["event"], metadata.message_id))

    # revocation frames are revocations whatever the status says
    if subscription.status not in TERMINAL_STATUSES:
        logger.warning(f"Revocation with unexpected status: {subscription.status}")
    return Frame(metadata=metadata, envelope=_revocation(subscription, metadata.message_id))
