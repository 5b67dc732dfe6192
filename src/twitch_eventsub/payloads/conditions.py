"""Subscription condition models, one per condition shape."""

from typing import Optional

from pydantic import model_validator

from .base import Condition


class BroadcasterCondition(Condition):
    broadcaster_user_id: str


class BroadcasterModeratorCondition(Condition):
    broadcaster_user_id: str
    moderator_user_id: str


class BroadcasterUserCondition(Condition):
    broadcaster_user_id: str
    user_id: str


class ChannelRaidCondition(Condition):
    """Exactly one of the two ids is set."""
    from_broadcaster_user_id: Optional[str] = None
    to_broadcaster_user_id: Optional[str] = None

    @model_validator(mode="after")
    def _one_direction(self) -> "ChannelRaidCondition":
        if bool(self.from_broadcaster_user_id) == bool(self.to_broadcaster_user_id):
            raise ValueError("set exactly one of from_broadcaster_user_id and to_broadcaster_user_id")
        return self


class ChannelPointsRewardCondition(Condition):
    broadcaster_user_id: str
    reward_id: Optional[str] = None


class ClientIdCondition(Condition):
    client_id: str


class UserCondition(Condition):
    user_id: str


class ConduitCondition(Condition):
    client_id: str
    conduit_id: Optional[str] = None


class ExtensionCondition(Condition):
    extension_client_id: str

