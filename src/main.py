"""
Twitch EventSub Service - Main Application

Subscribes to the EventSub types listed in EVENTSUB_SUBSCRIPTIONS for the
configured broadcaster and logs every event received, over either the
WebSocket transport or a webhook callback served with uvicorn.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import uvicorn

from twitch_eventsub import (
    AppContext,
    Config,
    ConfigurationError,
    Event,
    RecoverableError,
    Revocation,
    Session,
    SubscriptionDescriptor,
    SubscriptionError,
    TwitchError,
    UnknownEvent,
    WebhookTransport,
    WebSocketTransport,
    create_webhook_app,
    setup_logging,
    wait_for_webhook_verification,
)

logger = logging.getLogger(__name__)


def build_condition(
    descriptor: SubscriptionDescriptor,
    broadcaster_id: str,
    user_id: Optional[str],
    client_id: str,
) -> Dict[str, Any]:
    """
    Fill the condition of a subscription type for one broadcaster.

    Args:
        descriptor: Subscription type to build the condition for
        broadcaster_id: Broadcaster whose events are wanted
        user_id: User the token belongs to (used as moderator/chat user)
        client_id: Client ID of the application

    Returns:
        Condition with every field the condition model requires
    """
    values = {
        "broadcaster_user_id": broadcaster_id,
        "to_broadcaster_user_id": broadcaster_id,
        "moderator_user_id": user_id or broadcaster_id,
        "user_id": user_id or broadcaster_id,
        "client_id": client_id,
        "extension_client_id": client_id,
    }
    condition = {}
    for name, field in descriptor.condition_schema.model_fields.items():
        if name in values and (field.is_required() or name == "to_broadcaster_user_id"):
            condition[name] = values[name]
    return condition


class EventLogService:
    """Handles deliveries by logging them."""

    @staticmethod
    async def handle(delivery: Any) -> None:
        """
        Handle a delivery from either transport.

        Args:
            delivery: Event, UnknownEvent, Revocation or RecoverableError
        """
        if isinstance(delivery, Event):
            payload = delivery.payload
            broadcaster = getattr(payload, "broadcaster_user_name", None)
            logger.info(f"Received {delivery.variant}" + (f" for {broadcaster}" if broadcaster else ""))
            logger.debug(f"Event data: {delivery.to_json()}")
        elif isinstance(delivery, UnknownEvent):
            logger.info(f"Received unsupported event {delivery.event_type} v{delivery.version}")
        elif isinstance(delivery, Revocation):
            logger.warning(f"Subscription {delivery.subscription_id} to {delivery.event_type} revoked: {delivery.reason}")
        elif isinstance(delivery, RecoverableError):
            logger.error(f"Skipped message {delivery.message_id}: {delivery.error}")


class EventSubService:
    """Handles subscription setup and the transport loop."""

    def __init__(self, context: AppContext):
        self.context = context
        self.config = context.config
        self.started_at = datetime.now()

    async def subscribe_all(self, transport: Any) -> int:
        """
        Create the configured subscriptions on `transport`.

        Returns:
            Number of subscriptions created
        """
        broadcaster_id = self.config.TWITCH_BROADCASTER_ID or self.context.tokens.token.user_id
        if not broadcaster_id:
            logger.error("TWITCH_BROADCASTER_ID is not set and the token has no user")
            return 0

        created = 0
        for event_type, version in self.config.EVENTSUB_SUBSCRIPTIONS:
            descriptor = self.context.registry.get(event_type, version)
            if descriptor is None:
                logger.error(f"Unknown subscription type {event_type} v{version}, skipping")
                continue

            condition = build_condition(
                descriptor,
                broadcaster_id,
                self.context.tokens.token.user_id,
                self.context.tokens.client_id,
            )
            try:
                subscription = await self.context.subscribe(event_type, version, condition, transport)
            except SubscriptionError as e:
                logger.error(f"Failed to subscribe to {event_type}: {e}")
                continue

            if isinstance(transport, WebhookTransport):
                await wait_for_webhook_verification(self.context.http, self.context.tokens, subscription.id)
            created += 1

        logger.info(f"Created {created}/{len(self.config.EVENTSUB_SUBSCRIPTIONS)} subscriptions")
        return created

    async def _on_welcome(self, session: Session, reconnected: bool) -> None:
        """
        Handle a new WebSocket session.

        Subscriptions carry over on a server-requested reconnect; any other
        new session starts without subscriptions.
        """
        if reconnected:
            logger.info(f"Session {session.id} resumed, subscriptions carried over")
            return
        logger.info("Connected to Twitch EventSub")
        await self.subscribe_all(WebSocketTransport(session_id=session.id))

    async def run_websocket(self) -> None:
        """Run the WebSocket transport until the session closes."""
        manager = self.context.session_manager()
        manager.add_callback("welcome", self._on_welcome)

        async with manager:
            async for delivery in manager.events():
                await EventLogService.handle(delivery)

    async def run_webhook(self) -> None:
        """Serve the webhook callback and create subscriptions once it is up."""
        receiver = self.context.webhook_receiver(EventLogService.handle)
        app = create_webhook_app(receiver, path=self.config.WEBHOOK_PATH)

        @app.get("/status")
        async def service_status() -> dict:
            """Service status endpoint for monitoring."""
            return {
                "status": "healthy",
                "service": "twitch-eventsub",
                "started_at": self.started_at.isoformat(),
                "transport": self.config.EVENTSUB_TRANSPORT,
                "subscriptions": [f"{t}:{v}" for t, v in self.config.EVENTSUB_SUBSCRIPTIONS],
            }

        host, port = self.config.get_webhook_server_config()
        server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
        server_task = asyncio.ensure_future(server.serve())

        while not server.started:
            if server_task.done():
                # surfaces startup failures
                server_task.result()
                return
            await asyncio.sleep(0.1)

        transport = WebhookTransport(
            callback=self.config.EVENTSUB_CALLBACK_URL,
            secret=self.config.EVENTSUB_WEBHOOK_SECRET,
        )
        try:
            await self.subscribe_all(transport)
        except TwitchError:
            server.should_exit = True
            raise
        await server_task


async def run(config: Config) -> None:
    """Build the application context and run the configured transport."""
    context = await AppContext.create(config)
    try:
        service = EventSubService(context)
        if config.EVENTSUB_TRANSPORT == "webhook":
            await service.run_webhook()
        else:
            await service.run_websocket()
    finally:
        await context.close()


def main() -> None:
    """
    Main function to run the EventSub service.

    This function loads and validates configuration, configures logging
    and runs the selected transport until interrupted.
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Configuration error: {e}")
        return

    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    logger.info(f"Starting Twitch EventSub service ({config.EVENTSUB_TRANSPORT} transport)")

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Shutting down")
    except TwitchError as e:
        logger.error(f"EventSub service stopped: {e}")


if __name__ == "__main__":
    main()
