"""Payloads for `user.*` events."""

from typing import Any, Dict, Optional

from .base import EventPayload


class UserUpdateV1(EventPayload):
    user_id: str
    user_login: str
    user_name: str
    # only present with the user:read:email scope
    email: Optional[str] = None
    email_verified: bool
    description: str


class UserAuthorizationGrantV1(EventPayload):
    client_id: str
    user_id: str
    user_login: str
    user_name: str


class UserAuthorizationRevokeV1(EventPayload):
    client_id: str
    user_id: str
    # null when the user was deleted
    user_login: Optional[str] = None
    user_name: Optional[str] = None


class UserWhisperMessageV1(EventPayload):
    from_user_id: str
    from_user_login: str
    from_user_name: str
    to_user_id: str
    to_user_login: str
    to_user_name: str
    whisper_id: str
    whisper: Dict[str, Any]
