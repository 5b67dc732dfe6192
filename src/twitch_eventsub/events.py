"""
Resolution of notifications into typed events.

A notification whose (event type, version) is registered becomes an Event
carrying the matching payload model; anything else becomes an UnknownEvent
so consumers keep running when Twitch introduces new types or versions.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

from .envelope import Notification, ParserConfig, Revocation
from .errors import PayloadSchemaError
from .payloads.base import EventPayload, SubscriptionInfo
from .registry import DEFAULT_REGISTRY, Registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """
    A notification for a registered subscription type.

    `variant` names the payload model, e.g. "ChannelFollowV1"; match on
    `isinstance(event.payload, ChannelFollowV1)` or on the variant name.
    """
    subscription: SubscriptionInfo
    payload: EventPayload
    message_id: Optional[str] = None

    @property
    def variant(self) -> str:
        return type(self.payload).__name__

    @property
    def event_type(self) -> str:
        return self.subscription.type

    @property
    def version(self) -> str:
        return self.subscription.version

    def to_json(self) -> Dict[str, Any]:
        """The event object as it was received."""
        return self.payload.to_json()


@dataclass(frozen=True)
class UnknownEvent:
    """A notification for a type or version this package does not know yet."""
    event_type: str
    version: str
    raw_event: Dict[str, Any]
    subscription: SubscriptionInfo
    message_id: Optional[str] = None

    @property
    def variant(self) -> str:
        return "Unknown"

    def to_json(self) -> Dict[str, Any]:
        return dict(self.raw_event)


@dataclass(frozen=True)
class RecoverableError:
    """A delivery that could not be turned into an event; safe to skip."""
    message_id: Optional[str]
    error: Exception


# Everything a consumer can receive from a transport
Delivery = Union[Event, UnknownEvent, Revocation, RecoverableError]


def unexpected_fields(model: BaseModel, prefix: str = "") -> List[str]:
    """Dotted paths of every field in `model` that its class does not declare."""
    paths = [f"{prefix}{name}" for name in (model.model_extra or {})]
    for name in type(model).model_fields:
        value = getattr(model, name)
        values = value if isinstance(value, list) else [value]
        for index, item in enumerate(values):
            if isinstance(item, BaseModel):
                path = f"{prefix}{name}[{index}]." if isinstance(value, list) else f"{prefix}{name}."
                paths.extend(unexpected_fields(item, path))
    return paths


def resolve(
    notification: Notification,
    registry: Registry = DEFAULT_REGISTRY,
    config: Optional[ParserConfig] = None,
) -> Union[Event, UnknownEvent]:
    """
    Turn a notification into a typed Event, or an UnknownEvent if unregistered.

    Args:
        notification: Parsed notification envelope
        registry: Subscription types to resolve against
        config: Parser options; strict parsing rejects undeclared fields

    Returns:
        Event for registered (type, version) pairs, UnknownEvent otherwise

    Raises:
        PayloadSchemaError: If the event object does not match the registered
            model for its (type, version)
    """
    config = config or ParserConfig()
    descriptor = registry.get(notification.event_type, notification.version)

    if descriptor is None:
        logger.debug(f"No descriptor for {notification.event_type} v{notification.version}, passing through")
        return UnknownEvent(
            event_type=notification.event_type,
            version=notification.version,
            raw_event=notification.raw_event,
            subscription=notification.subscription,
            message_id=notification.message_id,
        )

    try:
        payload = descriptor.payload_schema.model_validate(notification.raw_event)
    except ValidationError as e:
        logger.error(
            f"Event {notification.event_type} v{notification.version} does not match "
            f"{descriptor.payload_schema_id}: {e.error_count()} error(s)"
        )
        raise PayloadSchemaError(notification.event_type, notification.version, e.errors()) from e

    extra = unexpected_fields(payload)
    if extra:
        if config.strict:
            raise PayloadSchemaError(notification.event_type, notification.version, {"unexpected_fields": extra})
        logger.warning(
            f"Event {notification.event_type} v{notification.version} has undeclared fields: {extra}"
        )

    return Event(
        subscription=notification.subscription,
        payload=payload,
        message_id=notification.message_id,
    )
