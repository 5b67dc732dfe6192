"""
Exceptions raised by the EventSub client.

Every error derives from TwitchError so callers can catch the whole family
at a service boundary, while the subclasses keep transport, authentication,
schema and protocol failures apart.
"""

from typing import Any, Optional


class TwitchError(Exception):
    """Base class for all errors raised by this package."""
    pass


class TransportError(TwitchError):
    """Raised when an HTTP request cannot be sent or no response arrives."""
    pass


class TwitchConnectionError(TransportError):
    """Raised when WebSocket connection fails."""
    pass


class TwitchAPIError(TwitchError):
    """Raised when Twitch API returns an error."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TwitchAuthenticationError(TwitchError):
    """Raised when authentication fails."""
    pass


class NotAuthorizedError(TwitchAuthenticationError):
    """Raised when Twitch reports that a token is invalid or expired (401)."""
    pass


class NoRefreshTokenError(TwitchAuthenticationError):
    """Raised when a refresh is required but no refresh token is held.

    This is permanent: retrying cannot succeed without a new authorization.
    """
    pass


class ResponseParseError(TwitchError):
    """Raised when a Twitch response body is not the JSON we expect."""
    pass


class SubscriptionError(TwitchError):
    """Raised when a subscription cannot be created, listed or deleted."""
    pass


class WebhookVerificationError(TwitchError):
    """Base class for rejected webhook deliveries."""
    pass


class SignatureMismatchError(WebhookVerificationError):
    """Raised when the HMAC signature of a webhook delivery does not match."""
    pass


class StaleTimestampError(WebhookVerificationError):
    """Raised when a webhook delivery is outside the accepted time window."""
    pass


class WebhookSetupError(TwitchError):
    """Raised when Twitch could not verify our webhook callback."""
    pass


class EnvelopeError(TwitchError):
    """Base class for inbound messages that cannot be classified."""
    pass


class EnvelopeDecodeError(EnvelopeError):
    """Raised when an inbound body is not valid UTF-8."""
    pass


class EnvelopeSyntaxError(EnvelopeError):
    """Raised when an inbound body is not valid JSON."""
    pass


class UnrecognizedEnvelopeError(EnvelopeError):
    """Raised when valid JSON matches none of the known envelope shapes."""
    pass


class PayloadSchemaError(TwitchError):
    """Raised when a known (type, version) event does not match its schema.

    This means the local schema is out of date relative to the server, as
    opposed to an event type we simply do not know yet.
    """

    def __init__(self, event_type: str, version: str, details: Any = None):
        super().__init__(
            f"Event {event_type} v{version} does not match its schema: {details}"
        )
        self.event_type = event_type
        self.version = version
        self.details = details


class ProtocolError(TwitchError):
    """Raised when the EventSub WebSocket server breaks the session protocol."""
    pass


class SessionClosedError(TwitchError):
    """Raised when a WebSocket session terminates and cannot be recovered."""
    pass
