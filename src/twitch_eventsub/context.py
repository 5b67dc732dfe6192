"""
Application context: everything a service needs, built once at startup.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .auth import TokenManager
from .config import Config, ConfigurationError
from .envelope import ParserConfig
from .http_client import AiohttpClient, HttpClient
from .payloads.base import SubscriptionInfo
from .registry import DEFAULT_REGISTRY, Registry
from .subscriptions import TransportSpec, create_subscription, delete_subscription, get_subscriptions
from .webhook import Handler, WebhookReceiver
from .websocket import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """
    Shared state of an EventSub application.

    Attributes:
        config: Loaded configuration
        http: HTTP client shared by token and subscription calls
        tokens: Token manager for Helix requests
        registry: Known subscription types
        parser: Parser options derived from the configuration
    """
    config: Config
    http: HttpClient
    tokens: TokenManager
    registry: Registry = DEFAULT_REGISTRY
    parser: ParserConfig = field(default_factory=ParserConfig)

    @classmethod
    async def create(cls, config: Config, http: Optional[HttpClient] = None) -> "AppContext":
        """
        Build the context and obtain a token.

        A configured user token is validated; without one an app access
        token is requested with the client credentials flow.

        Raises:
            ConfigurationError: If the WebSocket transport is used without a user token
        """
        http = http or AiohttpClient()

        if config.TWITCH_ACCESS_TOKEN:
            tokens = await TokenManager.from_existing(
                http,
                config.TWITCH_ACCESS_TOKEN,
                refresh_token=config.TWITCH_REFRESH_TOKEN,
                client_secret=config.TWITCH_CLIENT_SECRET,
            )
            if tokens.client_id != config.TWITCH_CLIENT_ID:
                logger.warning(
                    f"Access token belongs to client {tokens.client_id}, not {config.TWITCH_CLIENT_ID}"
                )
        elif config.EVENTSUB_TRANSPORT == "websocket":
            raise ConfigurationError("TWITCH_ACCESS_TOKEN (a user token) is required for the websocket transport")
        else:
            tokens = await TokenManager.get_app_access_token(
                http, config.TWITCH_CLIENT_ID, config.TWITCH_CLIENT_SECRET
            )

        return cls(
            config=config,
            http=http,
            tokens=tokens,
            parser=ParserConfig(strict=config.EVENTSUB_STRICT),
        )

    def session_manager(self, **overrides: Any) -> SessionManager:
        """A SessionManager configured from the context."""
        max_attempts, base_delay, max_delay = self.config.get_reconnect_config()
        options: Dict[str, Any] = dict(
            url=self.config.TWITCH_EVENTSUB_URL,
            registry=self.registry,
            config=self.parser,
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            keepalive_grace=self.config.KEEPALIVE_GRACE_SECONDS,
            queue_size=self.config.EVENT_QUEUE_SIZE,
        )
        options.update(overrides)
        return SessionManager(**options)

    def webhook_receiver(self, handler: Handler) -> WebhookReceiver:
        """A WebhookReceiver configured from the context."""
        if not self.config.EVENTSUB_WEBHOOK_SECRET:
            raise ConfigurationError("EVENTSUB_WEBHOOK_SECRET is required for the webhook transport")
        return WebhookReceiver(
            secret=self.config.EVENTSUB_WEBHOOK_SECRET,
            handler=handler,
            registry=self.registry,
            config=self.parser,
            tolerance=self.config.WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS,
            dedup_ttl=self.config.WEBHOOK_DEDUP_TTL_SECONDS,
        )

    async def subscribe(
        self, event_type: str, version: str, condition: Dict[str, Any], transport: TransportSpec
    ) -> SubscriptionInfo:
        return await create_subscription(
            self.http, self.tokens, event_type, version, condition, transport, registry=self.registry
        )

    async def unsubscribe_all(self) -> int:
        """Delete every subscription of the client; returns how many were deleted."""
        subscriptions = await get_subscriptions(self.http, self.tokens)
        for subscription in subscriptions:
            await delete_subscription(self.http, self.tokens, subscription.id)
        return len(subscriptions)

    async def close(self) -> None:
        close = getattr(self.http, "close", None)
        if close is not None:
            await close()
