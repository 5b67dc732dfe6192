"""Payloads for extension and conduit events."""

from typing import Any, Dict

from .base import BroadcasterUserEvent, EventPayload, TwitchModel


class ExtensionProduct(TwitchModel):
    name: str
    bits: int
    sku: str
    in_development: bool


class ExtensionBitsTransactionCreateV1(BroadcasterUserEvent):
    id: str
    extension_client_id: str
    product: ExtensionProduct


class ConduitShardDisabledV1(EventPayload):
    conduit_id: str
    shard_id: str
    status: str
    transport: Dict[str, Any]
