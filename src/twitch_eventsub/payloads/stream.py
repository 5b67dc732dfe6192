"""Payloads for `stream.*` events."""

from .base import BroadcasterEvent


class StreamOnlineV1(BroadcasterEvent):
    id: str
    type: str
    started_at: str


class StreamOfflineV1(BroadcasterEvent):
    pass
