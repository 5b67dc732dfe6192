"""Payloads for `automod.*` events."""

from typing import Any, Dict, List, Optional

from .base import BroadcasterEvent, ChatMessage


class AutomodMessageHoldV1(BroadcasterEvent):
    user_id: str
    user_login: str
    user_name: str
    message_id: str
    message: ChatMessage
    category: str
    level: int
    held_at: str


class AutomodMessageHoldV2(BroadcasterEvent):
    user_id: str
    user_login: str
    user_name: str
    message_id: str
    message: ChatMessage
    reason: str
    automod: Optional[Dict[str, Any]] = None
    blocked_term: Optional[Dict[str, Any]] = None
    held_at: str


class AutomodMessageUpdateV1(AutomodMessageHoldV1):
    moderator_user_id: str
    moderator_user_login: str
    moderator_user_name: str
    status: str


class AutomodMessageUpdateV2(AutomodMessageHoldV2):
    moderator_user_id: str
    moderator_user_login: str
    moderator_user_name: str
    status: str


class AutomodSettingsUpdateV1(BroadcasterEvent):
    moderator_user_id: str
    moderator_user_login: str
    moderator_user_name: str
    overall_level: Optional[int] = None
    disability: int
    aggression: int
    sexuality_sex_or_gender: int
    misogyny: int
    bullying: int
    swearing: int
    race_ethnicity_or_religion: int
    sex_based_terms: int


class AutomodTermsUpdateV1(BroadcasterEvent):
    moderator_user_id: str
    moderator_user_login: str
    moderator_user_name: str
    action: str
    from_automod: bool
    terms: List[str] = []
