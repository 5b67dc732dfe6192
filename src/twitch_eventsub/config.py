"""
Configuration management for the EventSub client.

This module handles all configuration settings, validation, and provides
a centralized place for managing environment variables and constants.
"""

import os
import logging
from typing import List, Optional, Tuple
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure root logging for an application using this package.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        log_file: Optional file that receives a copy of every record
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


class Config:
    """Configuration class for the EventSub client."""

    # Required environment variables
    TWITCH_CLIENT_ID: str
    TWITCH_CLIENT_SECRET: str

    # Optional environment variables with defaults
    TWITCH_ACCESS_TOKEN: Optional[str] = None
    TWITCH_REFRESH_TOKEN: Optional[str] = None
    TWITCH_BROADCASTER_ID: Optional[str] = None
    EVENTSUB_TRANSPORT: str = "websocket"
    EVENTSUB_WEBHOOK_SECRET: Optional[str] = None
    EVENTSUB_CALLBACK_URL: Optional[str] = None
    EVENTSUB_STRICT: bool = False
    EVENTSUB_SUBSCRIPTIONS: List[Tuple[str, str]] = [("stream.online", "1")]
    WEBHOOK_HOST: str = "0.0.0.0"
    WEBHOOK_PORT: int = 8080
    WEBHOOK_PATH: str = "/eventsub/callback"
    WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS: int = 600  # 10 minutes
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Application constants
    MAX_RECONNECT_ATTEMPTS: int = 5
    RECONNECT_BASE_DELAY_SECONDS: int = 1
    RECONNECT_MAX_DELAY_SECONDS: int = 30
    KEEPALIVE_GRACE_SECONDS: int = 5
    TOKEN_REFRESH_SKEW_SECONDS: int = 60
    EVENT_QUEUE_SIZE: int = 100
    WEBHOOK_DEDUP_TTL_SECONDS: int = 600

    # Twitch URL constants
    TWITCH_EVENTSUB_URL: str = "wss://eventsub.wss.twitch.tv/ws"

    def __init__(self, load_env: bool = True):
        """Initialize configuration and validate required settings."""
        if load_env:
            load_dotenv()
        self._load_configuration()
        self._validate_configuration()

    @classmethod
    def from_env(cls) -> "Config":
        """Load `.env` and the process environment into a validated Config."""
        return cls(load_env=True)

    def _as_bool(self, value: Optional[str], default: bool) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}

    def _as_subscriptions(self, value: Optional[str]) -> List[Tuple[str, str]]:
        if not value:
            return list(self.EVENTSUB_SUBSCRIPTIONS)
        subscriptions = []
        for item in value.split(","):
            item = item.strip()
            if not item:
                continue
            event_type, _, version = item.partition(":")
            subscriptions.append((event_type.strip(), version.strip() or "1"))
        return subscriptions

    def _load_configuration(self) -> None:
        """Load configuration from environment variables."""
        # Required settings
        self.TWITCH_CLIENT_ID = os.getenv('TWITCH_CLIENT_ID', '')
        self.TWITCH_CLIENT_SECRET = os.getenv('TWITCH_CLIENT_SECRET', '')

        # Tokens
        self.TWITCH_ACCESS_TOKEN = os.getenv('TWITCH_ACCESS_TOKEN') or None
        self.TWITCH_REFRESH_TOKEN = os.getenv('TWITCH_REFRESH_TOKEN') or None
        self.TWITCH_BROADCASTER_ID = os.getenv('TWITCH_BROADCASTER_ID') or None

        # EventSub settings
        self.EVENTSUB_TRANSPORT = os.getenv('EVENTSUB_TRANSPORT', self.EVENTSUB_TRANSPORT).strip().lower()
        self.EVENTSUB_WEBHOOK_SECRET = os.getenv('EVENTSUB_WEBHOOK_SECRET') or None
        self.EVENTSUB_CALLBACK_URL = os.getenv('EVENTSUB_CALLBACK_URL') or None
        self.TWITCH_EVENTSUB_URL = os.getenv('EVENTSUB_WEBSOCKET_URL', self.TWITCH_EVENTSUB_URL)
        self.EVENTSUB_STRICT = self._as_bool(os.getenv('EVENTSUB_STRICT'), self.EVENTSUB_STRICT)
        self.EVENTSUB_SUBSCRIPTIONS = self._as_subscriptions(os.getenv('EVENTSUB_SUBSCRIPTIONS'))

        # Server settings
        self.WEBHOOK_HOST = os.getenv('WEBHOOK_HOST', self.WEBHOOK_HOST)
        self.WEBHOOK_PORT = int(os.getenv('WEBHOOK_PORT', str(self.WEBHOOK_PORT)))
        self.WEBHOOK_PATH = os.getenv('WEBHOOK_PATH', self.WEBHOOK_PATH)
        self.WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS = int(
            os.getenv('WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS', str(self.WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS))
        )

        # Logging
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', self.LOG_LEVEL)
        self.LOG_FILE = os.getenv('LOG_FILE') or None

        logger.info("Configuration loaded from environment variables")

    def _validate_configuration(self) -> None:
        """Validate that all required configuration is present."""
        errors = []

        if not self.TWITCH_CLIENT_ID:
            errors.append("TWITCH_CLIENT_ID is required")

        if not self.TWITCH_CLIENT_SECRET:
            errors.append("TWITCH_CLIENT_SECRET is required")

        if self.EVENTSUB_TRANSPORT not in {"websocket", "webhook"}:
            errors.append("EVENTSUB_TRANSPORT must be 'websocket' or 'webhook'")

        if self.EVENTSUB_TRANSPORT == "webhook":
            secret = self.EVENTSUB_WEBHOOK_SECRET or ""
            if not 10 <= len(secret) <= 100:
                errors.append("EVENTSUB_WEBHOOK_SECRET must be between 10 and 100 characters")
            if not self.EVENTSUB_CALLBACK_URL:
                errors.append("EVENTSUB_CALLBACK_URL is required for webhook transport")
            elif not self.EVENTSUB_CALLBACK_URL.startswith("https://"):
                errors.append("EVENTSUB_CALLBACK_URL must use https")

        if not self.WEBHOOK_PATH.startswith("/"):
            errors.append("WEBHOOK_PATH must start with '/'")

        if self.WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS <= 0:
            errors.append("WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS must be positive")

        if errors:
            error_message = "Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors)
            logger.error(error_message)
            raise ConfigurationError(error_message)

        logger.info("Configuration validation successful")

    def get_reconnect_config(self) -> Tuple[int, int, int]:
        """Get reconnection configuration as (max_attempts, base_delay, max_delay)."""
        return self.MAX_RECONNECT_ATTEMPTS, self.RECONNECT_BASE_DELAY_SECONDS, self.RECONNECT_MAX_DELAY_SECONDS

    def get_webhook_server_config(self) -> Tuple[str, int]:
        """Get webhook HTTP server configuration as (host, port)."""
        return self.WEBHOOK_HOST, self.WEBHOOK_PORT
