"""
Registry of the EventSub subscription types this package understands.

Each (event type, version) pair maps to one SubscriptionDescriptor naming the
pydantic models for its condition and event payload and the OAuth scopes a
token needs to create it. The default registry is built at import, so a
duplicated key fails as soon as the package is imported.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple, Type

from .payloads import automod, channel, chat, extension, stream, user
from .payloads.base import Condition, EventPayload
from .payloads.conditions import (
    BroadcasterCondition,
    BroadcasterModeratorCondition,
    BroadcasterUserCondition,
    ChannelPointsRewardCondition,
    ChannelRaidCondition,
    ClientIdCondition,
    ConduitCondition,
    ExtensionCondition,
    UserCondition,
)

Key = Tuple[str, str]


class DuplicateDescriptorError(ValueError):
    """Raised when two descriptors share a key or a payload model."""
    pass


class DescriptorNotFound(KeyError):
    """Raised when no descriptor is registered for an (event type, version) pair."""
    pass


def expand_scopes(scopes: Iterable[str]) -> Set[str]:
    """Add the read scope implied by every granted manage scope."""
    expanded = set(scopes)
    for scope in list(expanded):
        if ":manage:" in scope:
            expanded.add(scope.replace(":manage:", ":read:", 1))
    return expanded


@dataclass(frozen=True)
class SubscriptionDescriptor:
    """
    Static description of one subscription type.

    Attributes:
        event_type: Subscription type, e.g. "channel.follow"
        version: Subscription version, e.g. "2"
        payload_schema: Model the `event` object is validated against
        condition_schema: Model the `condition` object is validated against
        required_scopes: Scopes that must all be granted
        any_scopes: If not empty, at least one of these must be granted
    """
    event_type: str
    version: str
    payload_schema: Type[EventPayload]
    condition_schema: Type[Condition]
    required_scopes: FrozenSet[str] = frozenset()
    any_scopes: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def key(self) -> Key:
        return (self.event_type, self.version)

    @property
    def payload_schema_id(self) -> str:
        return self.payload_schema.__name__

    @property
    def condition_schema_id(self) -> str:
        return self.condition_schema.__name__

    def missing_scopes(self, granted: Iterable[str]) -> Set[str]:
        """
        Scopes that would have to be added to `granted` to create this subscription.

        When only the any-of requirement is unmet, all of its alternatives
        are returned.
        """
        available = expand_scopes(granted)
        missing = set(self.required_scopes - available)
        if self.any_scopes and not self.any_scopes & available:
            missing |= self.any_scopes
        return missing

    def is_authorized(self, granted: Iterable[str]) -> bool:
        return not self.missing_scopes(granted)


class Registry:
    """Read-only table of SubscriptionDescriptors keyed by (event type, version)."""

    def __init__(self, descriptors: Iterable[SubscriptionDescriptor]):
        self._descriptors: Dict[Key, SubscriptionDescriptor] = {}
        payload_owners: Dict[Type[EventPayload], Key] = {}

        for descriptor in descriptors:
            if descriptor.key in self._descriptors:
                raise DuplicateDescriptorError(
                    f"Duplicate descriptor for {descriptor.event_type} v{descriptor.version}"
                )
            # the payload class name identifies the event variant
            owner = payload_owners.get(descriptor.payload_schema)
            if owner is not None:
                raise DuplicateDescriptorError(
                    f"{descriptor.payload_schema_id} is used by both {owner} and {descriptor.key}"
                )
            self._descriptors[descriptor.key] = descriptor
            payload_owners[descriptor.payload_schema] = descriptor.key

    def resolve(self, event_type: str, version: str) -> SubscriptionDescriptor:
        """
        Look up the descriptor for an exact (event type, version) pair.

        Raises:
            DescriptorNotFound: If the pair is not registered
        """
        try:
            return self._descriptors[(event_type, version)]
        except KeyError:
            raise DescriptorNotFound((event_type, version)) from None

    def get(self, event_type: str, version: str) -> Optional[SubscriptionDescriptor]:
        return self._descriptors.get((event_type, version))

    def versions(self, event_type: str) -> List[str]:
        """All registered versions of an event type, oldest first."""
        return sorted(
            (version for (name, version) in self._descriptors if name == event_type),
            key=lambda v: (not v.isdigit(), int(v) if v.isdigit() else 0, v),
        )

    def __contains__(self, key: object) -> bool:
        return key in self._descriptors

    def __iter__(self) -> Iterator[SubscriptionDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)


def _d(
    event_type: str,
    version: str,
    payload: Type[EventPayload],
    condition: Type[Condition],
    scopes: Iterable[str] = (),
    any_of: Iterable[str] = (),
) -> SubscriptionDescriptor:
    return SubscriptionDescriptor(
        event_type=event_type,
        version=version,
        payload_schema=payload,
        condition_schema=condition,
        required_scopes=frozenset(scopes),
        any_scopes=frozenset(any_of),
    )


_B = BroadcasterCondition
_BM = BroadcasterModeratorCondition
_BU = BroadcasterUserCondition
_R = ChannelPointsRewardCondition

_CHANNEL_MODERATE_SCOPES = (
    "moderator:read:blocked_terms",
    "moderator:read:chat_settings",
    "moderator:read:unban_requests",
    "moderator:read:banned_users",
    "moderator:read:chat_messages",
    "moderator:read:moderators",
)
_CHANNEL_MODERATE_V2_SCOPES = _CHANNEL_MODERATE_SCOPES + ("moderator:read:warnings",)
_GUEST_STAR_SCOPES = ("channel:read:guest_star", "moderator:read:guest_star")

DEFAULT_DESCRIPTORS: Tuple[SubscriptionDescriptor, ...] = (
    # channel metadata
    _d("channel.update", "1", channel.ChannelUpdateV1, _B),
    _d("channel.update", "2", channel.ChannelUpdateV2, _B),
    _d("channel.follow", "1", channel.ChannelFollowV1, _B),
    _d("channel.follow", "2", channel.ChannelFollowV2, _BM, ["moderator:read:followers"]),
    _d("channel.ad_break.begin", "1", channel.ChannelAdBreakBeginV1, _B, ["channel:read:ads"]),

    # chat
    _d("channel.chat.clear", "1", chat.ChannelChatClearV1, _BU, ["user:read:chat"]),
    _d("channel.chat.clear_user_messages", "1", chat.ChannelChatClearUserMessagesV1, _BU, ["user:read:chat"]),
    _d("channel.chat.message", "1", chat.ChannelChatMessageV1, _BU, ["user:read:chat"]),
    _d("channel.chat.message_delete", "1", chat.ChannelChatMessageDeleteV1, _BU, ["user:read:chat"]),
    _d("channel.chat.notification", "1", chat.ChannelChatNotificationV1, _BU, ["user:read:chat"]),
    _d("channel.chat_settings.update", "1", chat.ChannelChatSettingsUpdateV1, _BU, ["user:read:chat"]),
    _d("channel.chat.user_message_hold", "1", chat.ChannelChatUserMessageHoldV1, _BU, ["user:read:chat"]),
    _d("channel.chat.user_message_update", "1", chat.ChannelChatUserMessageUpdateV1, _BU, ["user:read:chat"]),
    _d("channel.shared_chat.begin", "1", channel.ChannelSharedChatBeginV1, _B),
    _d("channel.shared_chat.update", "1", channel.ChannelSharedChatUpdateV1, _B),
    _d("channel.shared_chat.end", "1", channel.ChannelSharedChatEndV1, _B),

    # subscriptions, bits and raids
    _d("channel.subscribe", "1", channel.ChannelSubscribeV1, _B, ["channel:read:subscriptions"]),
    _d("channel.subscription.end", "1", channel.ChannelSubscriptionEndV1, _B, ["channel:read:subscriptions"]),
    _d("channel.subscription.gift", "1", channel.ChannelSubscriptionGiftV1, _B, ["channel:read:subscriptions"]),
    _d("channel.subscription.message", "1", channel.ChannelSubscriptionMessageV1, _B, ["channel:read:subscriptions"]),
    _d("channel.cheer", "1", channel.ChannelCheerV1, _B, ["bits:read"]),
    _d("channel.bits.use", "1", channel.ChannelBitsUseV1, _B, ["bits:read"]),
    _d("channel.raid", "1", channel.ChannelRaidV1, ChannelRaidCondition),

    # moderation
    _d("channel.ban", "1", channel.ChannelBanV1, _B, ["channel:moderate"]),
    _d("channel.unban", "1", channel.ChannelUnbanV1, _B, ["channel:moderate"]),
    _d("channel.unban_request.create", "1", channel.ChannelUnbanRequestCreateV1, _BM,
       ["moderator:read:unban_requests"]),
    _d("channel.unban_request.resolve", "1", channel.ChannelUnbanRequestResolveV1, _BM,
       ["moderator:read:unban_requests"]),
    _d("channel.moderate", "1", channel.ChannelModerateV1, _BM, _CHANNEL_MODERATE_SCOPES),
    _d("channel.moderate", "2", channel.ChannelModerateV2, _BM, _CHANNEL_MODERATE_V2_SCOPES),
    _d("channel.moderator.add", "1", channel.ChannelModeratorAddV1, _B, ["moderation:read"]),
    _d("channel.moderator.remove", "1", channel.ChannelModeratorRemoveV1, _B, ["moderation:read"]),
    _d("channel.vip.add", "1", channel.ChannelVipAddV1, _B, ["channel:read:vips"]),
    _d("channel.vip.remove", "1", channel.ChannelVipRemoveV1, _B, ["channel:read:vips"]),
    _d("channel.warning.acknowledge", "1", channel.ChannelWarningAcknowledgeV1, _BM, ["moderator:read:warnings"]),
    _d("channel.warning.send", "1", channel.ChannelWarningSendV1, _BM, ["moderator:read:warnings"]),
    _d("channel.suspicious_user.message", "1", channel.ChannelSuspiciousUserMessageV1, _BM,
       ["moderator:read:suspicious_users"]),
    _d("channel.suspicious_user.update", "1", channel.ChannelSuspiciousUserUpdateV1, _BM,
       ["moderator:read:suspicious_users"]),
    _d("channel.shield_mode.begin", "1", channel.ChannelShieldModeBeginV1, _BM, ["moderator:read:shield_mode"]),
    _d("channel.shield_mode.end", "1", channel.ChannelShieldModeEndV1, _BM, ["moderator:read:shield_mode"]),
    _d("automod.message.hold", "1", automod.AutomodMessageHoldV1, _BM, ["moderator:manage:automod"]),
    _d("automod.message.hold", "2", automod.AutomodMessageHoldV2, _BM, ["moderator:manage:automod"]),
    _d("automod.message.update", "1", automod.AutomodMessageUpdateV1, _BM, ["moderator:manage:automod"]),
    _d("automod.message.update", "2", automod.AutomodMessageUpdateV2, _BM, ["moderator:manage:automod"]),
    _d("automod.settings.update", "1", automod.AutomodSettingsUpdateV1, _BM, ["moderator:read:automod_settings"]),
    _d("automod.terms.update", "1", automod.AutomodTermsUpdateV1, _BM, ["moderator:manage:automod"]),

    # channel points
    _d("channel.channel_points_custom_reward.add", "1", channel.ChannelPointsCustomRewardAddV1, _B,
       ["channel:read:redemptions"]),
    _d("channel.channel_points_custom_reward.update", "1", channel.ChannelPointsCustomRewardUpdateV1, _R,
       ["channel:read:redemptions"]),
    _d("channel.channel_points_custom_reward.remove", "1", channel.ChannelPointsCustomRewardRemoveV1, _R,
       ["channel:read:redemptions"]),
    _d("channel.channel_points_custom_reward_redemption.add", "1",
       channel.ChannelPointsCustomRewardRedemptionAddV1, _R, ["channel:read:redemptions"]),
    _d("channel.channel_points_custom_reward_redemption.update", "1",
       channel.ChannelPointsCustomRewardRedemptionUpdateV1, _R, ["channel:read:redemptions"]),
    _d("channel.channel_points_automatic_reward_redemption.add", "1",
       channel.ChannelPointsAutomaticRewardRedemptionAddV1, _B, ["channel:read:redemptions"]),
    _d("channel.channel_points_automatic_reward_redemption.add", "2",
       channel.ChannelPointsAutomaticRewardRedemptionAddV2, _B, ["channel:read:redemptions"]),

    # polls and predictions
    _d("channel.poll.begin", "1", channel.ChannelPollBeginV1, _B, ["channel:read:polls"]),
    _d("channel.poll.progress", "1", channel.ChannelPollProgressV1, _B, ["channel:read:polls"]),
    _d("channel.poll.end", "1", channel.ChannelPollEndV1, _B, ["channel:read:polls"]),
    _d("channel.prediction.begin", "1", channel.ChannelPredictionBeginV1, _B, ["channel:read:predictions"]),
    _d("channel.prediction.progress", "1", channel.ChannelPredictionProgressV1, _B, ["channel:read:predictions"]),
    _d("channel.prediction.lock", "1", channel.ChannelPredictionLockV1, _B, ["channel:read:predictions"]),
    _d("channel.prediction.end", "1", channel.ChannelPredictionEndV1, _B, ["channel:read:predictions"]),

    # hype trains, charity and goals
    _d("channel.hype_train.begin", "1", channel.ChannelHypeTrainBeginV1, _B, ["channel:read:hype_train"]),
    _d("channel.hype_train.progress", "1", channel.ChannelHypeTrainProgressV1, _B, ["channel:read:hype_train"]),
    _d("channel.hype_train.end", "1", channel.ChannelHypeTrainEndV1, _B, ["channel:read:hype_train"]),
    _d("channel.hype_train.begin", "2", channel.ChannelHypeTrainBeginV2, _B, ["channel:read:hype_train"]),
    _d("channel.hype_train.progress", "2", channel.ChannelHypeTrainProgressV2, _B, ["channel:read:hype_train"]),
    _d("channel.hype_train.end", "2", channel.ChannelHypeTrainEndV2, _B, ["channel:read:hype_train"]),
    _d("channel.charity_campaign.donate", "1", channel.ChannelCharityCampaignDonateV1, _B, ["channel:read:charity"]),
    _d("channel.charity_campaign.start", "1", channel.ChannelCharityCampaignStartV1, _B, ["channel:read:charity"]),
    _d("channel.charity_campaign.progress", "1", channel.ChannelCharityCampaignProgressV1, _B,
       ["channel:read:charity"]),
    _d("channel.charity_campaign.stop", "1", channel.ChannelCharityCampaignStopV1, _B, ["channel:read:charity"]),
    _d("channel.goal.begin", "1", channel.ChannelGoalBeginV1, _B, ["channel:read:goals"]),
    _d("channel.goal.progress", "1", channel.ChannelGoalProgressV1, _B, ["channel:read:goals"]),
    _d("channel.goal.end", "1", channel.ChannelGoalEndV1, _B, ["channel:read:goals"]),

    # shoutouts and guest star
    _d("channel.shoutout.create", "1", channel.ChannelShoutoutCreateV1, _BM, ["moderator:read:shoutouts"]),
    _d("channel.shoutout.receive", "1", channel.ChannelShoutoutReceiveV1, _BM, ["moderator:read:shoutouts"]),
    _d("channel.guest_star_session.begin", "beta", channel.ChannelGuestStarSessionBeginV1, _BM,
       any_of=_GUEST_STAR_SCOPES),
    _d("channel.guest_star_session.end", "beta", channel.ChannelGuestStarSessionEndV1, _BM,
       any_of=_GUEST_STAR_SCOPES),
    _d("channel.guest_star_guest.update", "beta", channel.ChannelGuestStarGuestUpdateV1, _BM,
       any_of=_GUEST_STAR_SCOPES),
    _d("channel.guest_star_settings.update", "beta", channel.ChannelGuestStarSettingsUpdateV1, _BM,
       any_of=_GUEST_STAR_SCOPES),

    # streams
    _d("stream.online", "1", stream.StreamOnlineV1, _B),
    _d("stream.offline", "1", stream.StreamOfflineV1, _B),

    # users
    _d("user.update", "1", user.UserUpdateV1, UserCondition),
    _d("user.authorization.grant", "1", user.UserAuthorizationGrantV1, ClientIdCondition),
    _d("user.authorization.revoke", "1", user.UserAuthorizationRevokeV1, ClientIdCondition),
    _d("user.whisper.message", "1", user.UserWhisperMessageV1, UserCondition, ["user:read:whispers"]),

    # extensions and conduits
    _d("extension.bits_transaction.create", "1", extension.ExtensionBitsTransactionCreateV1, ExtensionCondition),
    _d("conduit.shard.disabled", "1", extension.ConduitShardDisabledV1, ConduitCondition),
)

DEFAULT_REGISTRY = Registry(DEFAULT_DESCRIPTORS)
