"""Typed models for EventSub conditions and event payloads."""

from . import automod, channel, chat, conditions, extension, stream, user
from .base import (
    Condition,
    EventPayload,
    SessionData,
    SubscriptionInfo,
    Transport,
    TwitchModel,
)

__all__ = [
    "Condition",
    "EventPayload",
    "SessionData",
    "SubscriptionInfo",
    "Transport",
    "TwitchModel",
    "automod",
    "channel",
    "chat",
    "conditions",
    "extension",
    "stream",
    "user",
]
