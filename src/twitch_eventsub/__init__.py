"""
Twitch EventSub client.

Receives EventSub notifications over webhooks or a WebSocket session,
resolves them into typed events and manages the OAuth tokens and
subscriptions they depend on.
"""

from .auth import Token, TokenManager, UserTokenBuilder, ValidatedToken, validate_token
from .config import Config, ConfigurationError, setup_logging
from .context import AppContext
from .envelope import (
    Envelope,
    Frame,
    MessageType,
    Notification,
    ParserConfig,
    Revocation,
    VerificationChallenge,
    parse,
    parse_frame,
)
from .errors import (
    EnvelopeDecodeError,
    EnvelopeError,
    EnvelopeSyntaxError,
    NoRefreshTokenError,
    NotAuthorizedError,
    PayloadSchemaError,
    ProtocolError,
    ResponseParseError,
    SessionClosedError,
    SignatureMismatchError,
    StaleTimestampError,
    SubscriptionError,
    TransportError,
    TwitchAPIError,
    TwitchAuthenticationError,
    TwitchConnectionError,
    TwitchError,
    UnrecognizedEnvelopeError,
    WebhookSetupError,
    WebhookVerificationError,
)
from .events import Delivery, Event, RecoverableError, UnknownEvent, resolve
from .http_client import AiohttpClient, HttpClient, HttpRequest, HttpResponse
from .registry import (
    DEFAULT_REGISTRY,
    DescriptorNotFound,
    DuplicateDescriptorError,
    Registry,
    SubscriptionDescriptor,
)
from .subscriptions import (
    ConduitTransport,
    WebhookTransport,
    WebSocketTransport,
    create_subscription,
    delete_subscription,
    get_subscriptions,
    wait_for_webhook_verification,
)
from .webhook import WebhookReceiver, create_webhook_app, sign, verify
from .websocket import Session, SessionManager, SessionStatus

__version__ = "1.0.0"

__all__ = [
    "AiohttpClient",
    "AppContext",
    "ConduitTransport",
    "Config",
    "ConfigurationError",
    "DEFAULT_REGISTRY",
    "Delivery",
    "DescriptorNotFound",
    "DuplicateDescriptorError",
    "Envelope",
    "EnvelopeDecodeError",
    "EnvelopeError",
    "EnvelopeSyntaxError",
    "Event",
    "Frame",
    "HttpClient",
    "HttpRequest",
    "HttpResponse",
    "MessageType",
    "NoRefreshTokenError",
    "NotAuthorizedError",
    "Notification",
    "ParserConfig",
    "PayloadSchemaError",
    "ProtocolError",
    "RecoverableError",
    "Registry",
    "ResponseParseError",
    "Revocation",
    "Session",
    "SessionClosedError",
    "SessionManager",
    "SessionStatus",
    "SignatureMismatchError",
    "StaleTimestampError",
    "SubscriptionDescriptor",
    "SubscriptionError",
    "Token",
    "TokenManager",
    "TransportError",
    "TwitchAPIError",
    "TwitchAuthenticationError",
    "TwitchConnectionError",
    "TwitchError",
    "UnknownEvent",
    "UnrecognizedEnvelopeError",
    "UserTokenBuilder",
    "ValidatedToken",
    "VerificationChallenge",
    "WebSocketTransport",
    "WebhookReceiver",
    "WebhookSetupError",
    "WebhookTransport",
    "WebhookVerificationError",
    "create_subscription",
    "create_webhook_app",
    "delete_subscription",
    "get_subscriptions",
    "parse",
    "parse_frame",
    "resolve",
    "setup_logging",
    "sign",
    "validate_token",
    "verify",
    "wait_for_webhook_verification",
]
