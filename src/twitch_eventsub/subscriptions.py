"""
Create, list and delete EventSub subscriptions through the Helix API.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from .auth import TokenManager
from .errors import NotAuthorizedError, ResponseParseError, SubscriptionError, WebhookSetupError
from .http_client import HttpClient, HttpRequest, HttpResponse
from .payloads.base import SubscriptionInfo
from .registry import DEFAULT_REGISTRY, Registry

logger = logging.getLogger(__name__)

TWITCH_API_BASE_URL = "https://api.twitch.tv/helix"
SUBSCRIPTIONS_URL = f"{TWITCH_API_BASE_URL}/eventsub/subscriptions"


@dataclass(frozen=True)
class WebhookTransport:
    callback: str
    secret: str

    def to_json(self) -> Dict[str, str]:
        return {"method": "webhook", "callback": self.callback, "secret": self.secret}


@dataclass(frozen=True)
class WebSocketTransport:
    session_id: str

    def to_json(self) -> Dict[str, str]:
        return {"method": "websocket", "session_id": self.session_id}


@dataclass(frozen=True)
class ConduitTransport:
    conduit_id: str

    def to_json(self) -> Dict[str, str]:
        return {"method": "conduit", "conduit_id": self.conduit_id}


TransportSpec = Union[WebhookTransport, WebSocketTransport, ConduitTransport]


def _raise_for_status(response: HttpResponse, action: str) -> None:
    if response.status == 401:
        error_msg = response.error_message()
        logger.error(f"Authentication failed while {action}: {error_msg}")
        raise NotAuthorizedError(f"Authentication failed while {action}: {error_msg}")
    error_msg = response.error_message()
    logger.error(f"Failed {action}: {error_msg} (status {response.status})")
    raise SubscriptionError(f"Failed {action}: {error_msg} (status {response.status})")


def _subscription_list(response: HttpResponse) -> List[SubscriptionInfo]:
    data = response.json()
    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        raise ResponseParseError(f"Unexpected subscriptions response: {data!r}")
    try:
        return [SubscriptionInfo.model_validate(item) for item in data["data"]]
    except ValidationError as e:
        raise ResponseParseError(f"Invalid subscription in response: {e}") from e


async def create_subscription(
    http: HttpClient,
    tokens: TokenManager,
    event_type: str,
    version: str,
    condition: Dict[str, Any],
    transport: TransportSpec,
    registry: Registry = DEFAULT_REGISTRY,
) -> SubscriptionInfo:
    """
    Subscribe to an event type.

    Args:
        http: HTTP client used for the request
        tokens: Token manager providing the bearer token
        event_type: The type of event to subscribe to
        version: Version of the event type
        condition: The condition parameters for the subscription
        transport: Where Twitch should deliver events
        registry: Registry used to validate the condition and scopes

    Returns:
        The created subscription as reported by Twitch

    Raises:
        SubscriptionError: If the type is unknown, the condition is invalid,
            the token lacks scopes or Twitch refuses the subscription
        NotAuthorizedError: If Twitch rejects the token
    """
    descriptor = registry.get(event_type, version)
    if descriptor is None:
        raise SubscriptionError(f"Unknown subscription type {event_type} v{version}")

    try:
        descriptor.condition_schema.model_validate(condition)
    except ValidationError as e:
        raise SubscriptionError(f"Invalid condition for {event_type} v{version}: {e}") from e

    token = await tokens.ensure_fresh()
    # scopes of app tokens come from the user's authorization, not the token
    if token.token_type == "user":
        missing_scopes = descriptor.missing_scopes(token.scopes)
        if missing_scopes:
            logger.error(f"Missing required scopes for {event_type}: {sorted(missing_scopes)}")
            raise SubscriptionError(f"Missing required scopes for {event_type}: {sorted(missing_scopes)}")

    headers = await tokens.authorization_headers()
    headers["Content-Type"] = "application/json"
    response = await http.send(HttpRequest(
        method="POST",
        url=SUBSCRIPTIONS_URL,
        headers=headers,
        json={
            "type": event_type,
            "version": version,
            "condition": condition,
            "transport": transport.to_json(),
        },
    ))

    if response.status == 409:
        raise SubscriptionError(f"Subscription to {event_type} v{version} already exists")
    if response.status != 202:
        _raise_for_status(response, f"subscribing to {event_type}")

    subscriptions = _subscription_list(response)
    if not subscriptions:
        raise ResponseParseError("Subscription response contained no subscription")

    logger.info(f"Successfully subscribed to {event_type} v{version} (id: {subscriptions[0].id})")
    return subscriptions[0]


async def get_subscriptions(
    http: HttpClient,
    tokens: TokenManager,
    status: Optional[str] = None,
    event_type: Optional[str] = None,
    user_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
) -> List[SubscriptionInfo]:
    """
    Get all subscriptions of the client, following pagination cursors.

    At most one filter may be given.

    Raises:
        ValueError: If more than one filter is given
        SubscriptionError: If Twitch returns an error
    """
    filters = {
        "status": status,
        "type": event_type,
        "user_id": user_id,
        "subscription_id": subscription_id,
    }
    params = {name: value for name, value in filters.items() if value}
    if len(params) > 1:
        raise ValueError("Only one filter can be used at a time")

    subscriptions: List[SubscriptionInfo] = []
    while True:
        response = await http.send(HttpRequest(
            method="GET",
            url=SUBSCRIPTIONS_URL,
            headers=await tokens.authorization_headers(),
            params=dict(params),
        ))
        if response.status != 200:
            _raise_for_status(response, "getting subscriptions")

        subscriptions.extend(_subscription_list(response))
        cursor = (response.json().get("pagination") or {}).get("cursor")
        if not cursor:
            break
        params["after"] = cursor

    logger.debug(f"Fetched {len(subscriptions)} subscriptions")
    return subscriptions


async def delete_subscription(http: HttpClient, tokens: TokenManager, subscription_id: str) -> None:
    """
    Delete a subscription.

    Raises:
        SubscriptionError: If the subscription does not exist or Twitch
            returns an error
    """
    if not subscription_id:
        raise ValueError("Subscription ID cannot be empty")

    response = await http.send(HttpRequest(
        method="DELETE",
        url=SUBSCRIPTIONS_URL,
        headers=await tokens.authorization_headers(),
        params={"id": subscription_id},
    ))
    if response.status == 404:
        raise SubscriptionError(f"Subscription {subscription_id} not found")
    if response.status != 204:
        _raise_for_status(response, f"deleting subscription {subscription_id}")

    logger.info(f"Deleted subscription {subscription_id}")


async def wait_for_webhook_verification(
    http: HttpClient,
    tokens: TokenManager,
    subscription_id: str,
    timeout: float = 10.0,
    poll_interval: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> SubscriptionInfo:
    """
    Wait until Twitch has verified the callback of a webhook subscription.

    Returns:
        The enabled subscription

    Raises:
        WebhookSetupError: If verification failed or did not finish within
            `timeout`; Twitch does not retry verification
    """
    attempts = max(1, int(timeout / poll_interval))
    for attempt in range(attempts):
        found = await get_subscriptions(http, tokens, subscription_id=subscription_id)
        subscription = next((s for s in found if s.id == subscription_id), None)
        if subscription is None:
            raise WebhookSetupError(f"Subscription {subscription_id} disappeared during verification")

        if subscription.status == "enabled":
            logger.info(f"Webhook subscription {subscription_id} verified")
            return subscription
        if subscription.status != "webhook_callback_verification_pending":
            raise WebhookSetupError(
                f"Webhook verification for subscription {subscription_id} failed: {subscription.status}"
            )

        if attempt + 1 < attempts:
            await sleep(poll_interval)

    raise WebhookSetupError(f"Webhook verification for subscription {subscription_id} timed out after {timeout}s")
