"""
Webhook transport: signature verification and a FastAPI receiver.

Twitch signs every delivery with HMAC-SHA256 over the message id, the
message timestamp and the raw body, using the secret given when the
subscription was created. Deliveries are verified before their body is
parsed, and redeliveries of an already handled message id are acknowledged
without being processed again.
"""

import hashlib
import hmac
import inspect
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Mapping, Optional, Union

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from .envelope import ParserConfig, Revocation, VerificationChallenge, parse
from .errors import (
    EnvelopeError,
    PayloadSchemaError,
    SignatureMismatchError,
    StaleTimestampError,
    WebhookVerificationError,
)
from .events import Delivery, RecoverableError, resolve
from .registry import DEFAULT_REGISTRY, Registry

logger = logging.getLogger(__name__)

MESSAGE_ID_HEADER = "Twitch-Eventsub-Message-Id"
MESSAGE_TIMESTAMP_HEADER = "Twitch-Eventsub-Message-Timestamp"
MESSAGE_SIGNATURE_HEADER = "Twitch-Eventsub-Message-Signature"
MESSAGE_TYPE_HEADER = "Twitch-Eventsub-Message-Type"

DEFAULT_TOLERANCE_SECONDS = 600

_TIMESTAMP_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)

Handler = Callable[[Delivery], Union[None, Awaitable[None]]]


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup over any mapping."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC3339 timestamp as sent by Twitch.

    Twitch sends up to nanosecond precision; digits past microseconds are
    dropped.

    Raises:
        WebhookVerificationError: If the value is not an RFC3339 timestamp
    """
    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        raise WebhookVerificationError(f"Invalid message timestamp: {value!r}")

    base, fraction, offset = match.groups()
    micros = (fraction or "")[:6].ljust(6, "0")
    if offset == "Z":
        offset = "+00:00"
    return datetime.fromisoformat(f"{base}.{micros}{offset}")


def sign(secret: str, message_id: str, timestamp: str, body: bytes) -> str:
    """Compute the `sha256=<hex>` signature Twitch sends for a delivery."""
    message = message_id.encode("utf-8") + timestamp.encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify(
    headers: Mapping[str, str],
    body: bytes,
    secret: str,
    tolerance: float = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[datetime] = None,
) -> None:
    """
    Verify the signature and freshness of a webhook delivery.

    Args:
        headers: Request headers (looked up case-insensitively)
        body: Raw request body, exactly as received
        secret: Secret the subscription was created with
        tolerance: Maximum distance in seconds between the message timestamp
            and now
        now: Current time, for testing

    Raises:
        WebhookVerificationError: If a required header is missing or malformed
        StaleTimestampError: If the message timestamp is outside the tolerance
        SignatureMismatchError: If the signature does not match
    """
    message_id = get_header(headers, MESSAGE_ID_HEADER)
    timestamp = get_header(headers, MESSAGE_TIMESTAMP_HEADER)
    signature = get_header(headers, MESSAGE_SIGNATURE_HEADER)

    if not message_id or not timestamp or not signature:
        raise WebhookVerificationError("Missing EventSub message headers")

    sent_at = parse_timestamp(timestamp)
    current = now or datetime.now(timezone.utc)
    if abs(current - sent_at) > timedelta(seconds=tolerance):
        raise StaleTimestampError(f"Message timestamp {timestamp} is outside the {tolerance}s window")

    expected = sign(secret, message_id, timestamp, body)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8")):
        raise SignatureMismatchError("Message signature does not match")


class MessageDeduplicator:
    """
    Remembers handled message ids for a limited time.

    Twitch redelivers a message until it gets a 2xx response, and the same
    message id is used for every attempt.
    """

    def __init__(self, ttl: float = DEFAULT_TOLERANCE_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._seen: Dict[str, float] = {}

    def _purge(self, now: float) -> None:
        expired = [message_id for message_id, expires in self._seen.items() if expires <= now]
        for message_id in expired:
            del self._seen[message_id]

    def seen(self, message_id: str) -> bool:
        """Return True if `message_id` was already recorded, otherwise record it."""
        now = self._clock()
        self._purge(now)
        if message_id in self._seen:
            return True
        self._seen[message_id] = now + self.ttl
        return False

    def forget(self, message_id: str) -> None:
        self._seen.pop(message_id, None)

    def __len__(self) -> int:
        return len(self._seen)


class WebhookReceiver:
    """
    Handles EventSub webhook deliveries.

    Verified notifications are resolved and passed to `handler` together with
    revocations; schema errors are passed as RecoverableError. The handler
    may be a plain function or a coroutine function.
    """

    def __init__(
        self,
        secret: str,
        handler: Handler,
        registry: Registry = DEFAULT_REGISTRY,
        config: Optional[ParserConfig] = None,
        tolerance: float = DEFAULT_TOLERANCE_SECONDS,
        dedup_ttl: float = DEFAULT_TOLERANCE_SECONDS,
    ):
        if not secret:
            raise ValueError("A webhook secret is required")

        self.secret = secret
        self.handler = handler
        self.registry = registry
        self.config = config or ParserConfig()
        self.tolerance = tolerance
        self.deduplicator = MessageDeduplicator(ttl=dedup_ttl)

    async def _dispatch(self, delivery: Delivery) -> None:
        result = self.handler(delivery)
        if inspect.isawaitable(result):
            await result

    async def handle(self, request: Request) -> Response:
        """FastAPI endpoint for the callback URL."""
        body = await request.body()

        try:
            verify(request.headers, body, self.secret, tolerance=self.tolerance)
        except WebhookVerificationError as e:
            logger.warning(f"Rejected webhook delivery: {e}")
            return Response(status_code=403)

        message_id = get_header(request.headers, MESSAGE_ID_HEADER)
        if self.deduplicator.seen(message_id):
            logger.info(f"Duplicate delivery of message {message_id}, acknowledging")
            return Response(status_code=200)

        try:
            return await self._process(body, message_id)
        except EnvelopeError as e:
            self.deduplicator.forget(message_id)
            logger.error(f"Malformed webhook message {message_id}: {e}")
            return Response(status_code=400)
        except Exception:
            # let Twitch redeliver the message
            self.deduplicator.forget(message_id)
            logger.exception(f"Error handling webhook message {message_id}")
            return Response(status_code=500)

    async def _process(self, body: bytes, message_id: str) -> Response:
        envelope = parse(body, self.config, message_id=message_id)

        if isinstance(envelope, VerificationChallenge):
            subscription_id = envelope.subscription.id if envelope.subscription else "unknown"
            logger.info(f"Answering callback verification for subscription {subscription_id}")
            return PlainTextResponse(envelope.challenge, status_code=200)

        if isinstance(envelope, Revocation):
            logger.warning(
                f"Subscription {envelope.subscription_id} ({envelope.event_type}) revoked: {envelope.reason}"
            )
            await self._dispatch(envelope)
            return Response(status_code=204)

        try:
            delivery: Delivery = resolve(envelope, self.registry, self.config)
        except PayloadSchemaError as e:
            logger.error(f"Schema error in message {message_id}: {e}")
            delivery = RecoverableError(message_id=message_id, error=e)

        logger.debug(f"Received {envelope.event_type} v{envelope.version} notification {message_id}")
        await self._dispatch(delivery)
        return Response(status_code=204)


def create_webhook_app(receiver: WebhookReceiver, path: str = "/eventsub/callback") -> FastAPI:
    """Build a FastAPI app serving `receiver` at `path` plus a /health route."""
    app = FastAPI(title="twitch-eventsub-webhook")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.add_api_route(path, receiver.handle, methods=["POST"])
    return app
