"""
Payloads for `channel.*` events.

Fields are declared at the level the rest of the package needs; anything
else Twitch sends is kept as an extra field on the model.
"""

from typing import Any, Dict, List, Optional

from .base import (
    Amount,
    BroadcasterEvent,
    BroadcasterUserEvent,
    EventPayload,
    Image,
    Message,
    ModeratorEvent,
    TwitchModel,
)


# Channel metadata

class ChannelUpdateV1(BroadcasterEvent):
    title: str
    language: str
    category_id: str
    category_name: str
    is_mature: bool


class ChannelUpdateV2(BroadcasterEvent):
    title: str
    language: str
    category_id: str
    category_name: str
    content_classification_labels: List[str] = []


class ChannelFollowV1(BroadcasterUserEvent):
    followed_at: str


class ChannelFollowV2(BroadcasterUserEvent):
    followed_at: str


class ChannelAdBreakBeginV1(BroadcasterEvent):
    duration_seconds: int
    started_at: str
    is_automatic: bool
    requester_user_id: str
    requester_user_login: str
    requester_user_name: str


# Subscriptions, cheers and raids

class ChannelSubscribeV1(BroadcasterUserEvent):
    tier: str
    is_gift: bool


class ChannelSubscriptionEndV1(BroadcasterUserEvent):
    tier: str
    is_gift: bool


class ChannelSubscriptionGiftV1(BroadcasterEvent):
    user_id: Optional[str] = None
    user_login: Optional[str] = None
    user_name: Optional[str] = None
    total: int
    tier: str
    cumulative_total: Optional[int] = None
    is_anonymous: bool


class ChannelSubscriptionMessageV1(BroadcasterUserEvent):
    tier: str
    message: Message
    cumulative_months: int
    streak_months: Optional[int] = None
    duration_months: int


class ChannelCheerV1(BroadcasterEvent):
    is_anonymous: bool
    user_id: Optional[str] = None
    user_login: Optional[str] = None
    user_name: Optional[str] = None
    message: str
    bits: int


class ChannelBitsUseV1(BroadcasterUserEvent):
    bits: int
    type: str
    message: Optional[Dict[str, Any]] = None
    power_up: Optional[Dict[str, Any]] = None


class ChannelRaidV1(EventPayload):
    from_broadcaster_user_id: str
    from_broadcaster_user_login: str
    from_broadcaster_user_name: str
    to_broadcaster_user_id: str
    to_broadcaster_user_login: str
    to_broadcaster_user_name: str
    viewers: int


# Moderation

class ChannelBanV1(ModeratorEvent):
    user_id: str
    user_login: str
    user_name: str
    reason: str
    banned_at: str
    ends_at: Optional[str] = None
    is_permanent: bool


class ChannelUnbanV1(ModeratorEvent):
    user_id: str
    user_login: str
    user_name: str


class ChannelUnbanRequestCreateV1(BroadcasterUserEvent):
    id: str
    text: str
    created_at: str


class ChannelUnbanRequestResolveV1(BroadcasterUserEvent):
    id: str
    moderator_user_id: Optional[str] = None
    moderator_user_login: Optional[str] = None
    moderator_user_name: Optional[str] = None
    resolution_text: Optional[str] = None
    status: str


class ChannelModerateV1(ModeratorEvent):
    action: str


class ChannelModerateV2(ModeratorEvent):
    source_broadcaster_user_id: Optional[str] = None
    source_broadcaster_user_login: Optional[str] = None
    source_broadcaster_user_name: Optional[str] = None
    action: str


class ChannelModeratorAddV1(BroadcasterUserEvent):
    pass


class ChannelModeratorRemoveV1(BroadcasterUserEvent):
    pass


class ChannelVipAddV1(BroadcasterUserEvent):
    pass


class ChannelVipRemoveV1(BroadcasterUserEvent):
    pass


class ChannelWarningAcknowledgeV1(BroadcasterUserEvent):
    pass


class ChannelWarningSendV1(ModeratorEvent):
    user_id: str
    user_login: str
    user_name: str
    reason: Optional[str] = None
    chat_rules_cited: Optional[List[str]] = None


class ChannelSuspiciousUserMessageV1(BroadcasterUserEvent):
    low_trust_status: str
    shared_ban_channel_ids: Optional[List[str]] = None
    types: List[str] = []
    ban_evasion_evaluation: str
    message: Dict[str, Any]


class ChannelSuspiciousUserUpdateV1(ModeratorEvent):
    user_id: str
    user_login: str
    user_name: str
    low_trust_status: str


class ChannelShieldModeBeginV1(ModeratorEvent):
    started_at: str


class ChannelShieldModeEndV1(ModeratorEvent):
    ended_at: str


# Channel points

class RewardSummary(TwitchModel):
    id: str
    title: str
    cost: int
    prompt: str


class ChannelPointsCustomRewardAddV1(BroadcasterEvent):
    id: str
    is_enabled: bool
    is_paused: bool
    is_in_stock: bool
    title: str
    cost: int
    prompt: str
    is_user_input_required: bool
    should_redemptions_skip_request_queue: bool
    cooldown_expires_at: Optional[str] = None
    redemptions_redeemed_current_stream: Optional[int] = None
    max_per_stream: Dict[str, Any]
    max_per_user_per_stream: Dict[str, Any]
    global_cooldown: Dict[str, Any]
    background_color: str
    image: Optional[Image] = None
    default_image: Image


class ChannelPointsCustomRewardUpdateV1(ChannelPointsCustomRewardAddV1):
    pass


class ChannelPointsCustomRewardRemoveV1(ChannelPointsCustomRewardAddV1):
    pass


class ChannelPointsCustomRewardRedemptionAddV1(BroadcasterUserEvent):
    id: str
    user_input: str
    status: str
    reward: RewardSummary
    redeemed_at: str


class ChannelPointsCustomRewardRedemptionUpdateV1(ChannelPointsCustomRewardRedemptionAddV1):
    pass


class ChannelPointsAutomaticRewardRedemptionAddV1(BroadcasterUserEvent):
    id: str
    reward: Dict[str, Any]
    message: Dict[str, Any]
    user_input: Optional[str] = None
    redeemed_at: str


class ChannelPointsAutomaticRewardRedemptionAddV2(BroadcasterUserEvent):
    id: str
    reward: Dict[str, Any]
    message: Optional[Dict[str, Any]] = None
    redeemed_at: str


# Polls and predictions

class PollChoice(TwitchModel):
    id: str
    title: str
    bits_votes: Optional[int] = None
    channel_points_votes: Optional[int] = None
    votes: Optional[int] = None


class ChannelPollBeginV1(BroadcasterEvent):
    id: str
    title: str
    choices: List[PollChoice]
    bits_voting: Dict[str, Any]
    channel_points_voting: Dict[str, Any]
    started_at: str
    ends_at: str


class ChannelPollProgressV1(ChannelPollBeginV1):
    pass


class ChannelPollEndV1(BroadcasterEvent):
    id: str
    title: str
    choices: List[PollChoice]
    bits_voting: Dict[str, Any]
    channel_points_voting: Dict[str, Any]
    status: str
    started_at: str
    ended_at: str


class PredictionOutcome(TwitchModel):
    id: str
    title: str
    color: str
    users: Optional[int] = None
    channel_points: Optional[int] = None
    top_predictors: Optional[List[Dict[str, Any]]] = None


class ChannelPredictionBeginV1(BroadcasterEvent):
    id: str
    title: str
    outcomes: List[PredictionOutcome]
    started_at: str
    locks_at: str


class ChannelPredictionProgressV1(ChannelPredictionBeginV1):
    pass


class ChannelPredictionLockV1(BroadcasterEvent):
    id: str
    title: str
    outcomes: List[PredictionOutcome]
    started_at: str
    locked_at: str


class ChannelPredictionEndV1(BroadcasterEvent):
    id: str
    title: str
    winning_outcome_id: Optional[str] = None
    outcomes: List[PredictionOutcome]
    status: str
    started_at: str
    ended_at: str


# Hype trains, charity and goals

class HypeTrainContribution(TwitchModel):
    user_id: str
    user_login: str
    user_name: str
    type: str
    total: int


class ChannelHypeTrainBeginV1(BroadcasterEvent):
    id: str
    total: int
    progress: int
    goal: int
    top_contributions: List[HypeTrainContribution] = []
    last_contribution: Optional[HypeTrainContribution] = None
    level: int
    started_at: str
    expires_at: str


class ChannelHypeTrainProgressV1(ChannelHypeTrainBeginV1):
    pass


class ChannelHypeTrainEndV1(BroadcasterEvent):
    id: str
    level: int
    total: int
    top_contributions: List[HypeTrainContribution] = []
    started_at: str
    ended_at: str
    cooldown_ends_at: str


class ChannelHypeTrainBeginV2(BroadcasterEvent):
    id: str
    total: int
    progress: int
    goal: int
    top_contributions: List[HypeTrainContribution] = []
    level: int
    all_time_high_level: int
    all_time_high_total: int
    type: str
    started_at: str
    expires_at: str


class ChannelHypeTrainProgressV2(BroadcasterEvent):
    id: str
    total: int
    progress: int
    goal: int
    top_contributions: List[HypeTrainContribution] = []
    level: int
    type: str
    started_at: str
    expires_at: str


class ChannelHypeTrainEndV2(BroadcasterEvent):
    id: str
    total: int
    top_contributions: List[HypeTrainContribution] = []
    level: int
    type: str
    started_at: str
    ended_at: str
    cooldown_ends_at: str


class ChannelCharityCampaignDonateV1(BroadcasterUserEvent):
    id: str
    campaign_id: str
    charity_name: str
    charity_description: str
    charity_logo: str
    charity_website: str
    amount: Amount


class ChannelCharityCampaignStartV1(BroadcasterEvent):
    id: str
    charity_name: str
    charity_description: str
    charity_logo: str
    charity_website: str
    current_amount: Amount
    target_amount: Amount
    started_at: str


class ChannelCharityCampaignProgressV1(BroadcasterEvent):
    id: str
    charity_name: str
    charity_description: str
    charity_logo: str
    charity_website: str
    current_amount: Amount
    target_amount: Amount


class ChannelCharityCampaignStopV1(BroadcasterEvent):
    id: str
    charity_name: str
    charity_description: str
    charity_logo: str
    charity_website: str
    current_amount: Amount
    target_amount: Amount
    stopped_at: str


class ChannelGoalBeginV1(BroadcasterEvent):
    id: str
    type: str
    description: str
    current_amount: int
    target_amount: int
    started_at: str


class ChannelGoalProgressV1(ChannelGoalBeginV1):
    pass


class ChannelGoalEndV1(ChannelGoalBeginV1):
    is_achieved: bool
    ended_at: str


# Shoutouts, guest star and shared chat

class ChannelShoutoutCreateV1(ModeratorEvent):
    to_broadcaster_user_id: str
    to_broadcaster_user_login: str
    to_broadcaster_user_name: str
    viewer_count: int
    started_at: str
    cooldown_ends_at: str
    target_cooldown_ends_at: str


class ChannelShoutoutReceiveV1(BroadcasterEvent):
    from_broadcaster_user_id: str
    from_broadcaster_user_login: str
    from_broadcaster_user_name: str
    viewer_count: int
    started_at: str


class ChannelGuestStarSessionBeginV1(BroadcasterEvent):
    session_id: str
    started_at: str


class ChannelGuestStarSessionEndV1(BroadcasterEvent):
    session_id: str
    started_at: str
    ended_at: str


class ChannelGuestStarGuestUpdateV1(BroadcasterEvent):
    session_id: str
    state: Optional[str] = None
    slot_id: Optional[str] = None


class ChannelGuestStarSettingsUpdateV1(BroadcasterEvent):
    is_moderator_send_live_enabled: bool
    slot_count: int
    is_browser_source_audio_enabled: bool
    group_layout: str


class ChannelSharedChatBeginV1(BroadcasterEvent):
    session_id: str
    host_broadcaster_user_id: str
    host_broadcaster_user_login: str
    host_broadcaster_user_name: str
    participants: List[Dict[str, Any]] = []


class ChannelSharedChatUpdateV1(ChannelSharedChatBeginV1):
    pass


class ChannelSharedChatEndV1(BroadcasterEvent):
    session_id: str
    host_broadcaster_user_id: str
    host_broadcaster_user_login: str
    host_broadcaster_user_name: str
