"""Payloads for `channel.chat.*` and `channel.chat_settings.*` events."""

from typing import Any, Dict, List, Optional

from .base import Badge, BroadcasterEvent, ChatMessage


class ChatterEvent(BroadcasterEvent):
    chatter_user_id: str
    chatter_user_login: str
    chatter_user_name: str


class ChannelChatClearV1(BroadcasterEvent):
    pass


class ChannelChatClearUserMessagesV1(BroadcasterEvent):
    target_user_id: str
    target_user_login: str
    target_user_name: str


class ChannelChatMessageV1(ChatterEvent):
    message_id: str
    message: ChatMessage
    message_type: str
    badges: List[Badge] = []
    cheer: Optional[Dict[str, Any]] = None
    color: str
    reply: Optional[Dict[str, Any]] = None
    channel_points_custom_reward_id: Optional[str] = None
    source_broadcaster_user_id: Optional[str] = None
    source_broadcaster_user_login: Optional[str] = None
    source_broadcaster_user_name: Optional[str] = None
    source_message_id: Optional[str] = None
    source_badges: Optional[List[Badge]] = None


class ChannelChatMessageDeleteV1(BroadcasterEvent):
    target_user_id: str
    target_user_login: str
    target_user_name: str
    message_id: str


class ChannelChatNotificationV1(ChatterEvent):
    chatter_is_anonymous: bool
    color: str
    badges: List[Badge] = []
    system_message: str
    message_id: str
    message: ChatMessage
    notice_type: str


class ChannelChatSettingsUpdateV1(BroadcasterEvent):
    emote_mode: bool
    follower_mode: bool
    follower_mode_duration_minutes: Optional[int] = None
    slow_mode: bool
    slow_mode_wait_time_seconds: Optional[int] = None
    subscriber_mode: bool
    unique_chat_mode: bool


class ChannelChatUserMessageHoldV1(BroadcasterEvent):
    user_id: str
    user_login: str
    user_name: str
    message_id: str
    message: ChatMessage


class ChannelChatUserMessageUpdateV1(ChannelChatUserMessageHoldV1):
    status: str
