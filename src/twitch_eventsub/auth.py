"""
OAuth token lifecycle for Twitch.

TokenManager owns one access token together with its refresh token and
expiry. Tokens supplied from outside are validated on construction to learn
their client id, login and scopes; expired tokens are refreshed on demand,
and concurrent refreshes collapse into a single request to Twitch.
"""

import asyncio
import logging
import secrets
import time
import urllib.parse
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from .errors import (
    NoRefreshTokenError,
    NotAuthorizedError,
    ResponseParseError,
    TwitchAPIError,
    TwitchAuthenticationError,
)
from .http_client import HttpClient, HttpRequest

logger = logging.getLogger(__name__)

# API endpoints
TWITCH_AUTH_URL = "https://id.twitch.tv/oauth2/authorize"
TWITCH_TOKEN_URL = "https://id.twitch.tv/oauth2/token"
TWITCH_VALIDATE_URL = "https://id.twitch.tv/oauth2/validate"
TWITCH_REVOKE_URL = "https://id.twitch.tv/oauth2/revoke"


@dataclass(frozen=True)
class Token:
    """
    Immutable snapshot of an access token.

    Attributes:
        access_token: The secret bearer token
        client_id: Client ID the token was issued to
        refresh_token: Optional secret used to obtain a new access token
        login: Login of the user the token belongs to (user tokens only)
        user_id: ID of the user the token belongs to (user tokens only)
        expires_at: Unix timestamp after which the token is expired, or None
            for tokens that do not expire (they can still be revoked)
        scopes: Scopes granted to the token
        token_type: "user" or "app"
    """
    access_token: str = field(repr=False)
    client_id: str
    refresh_token: Optional[str] = field(default=None, repr=False)
    login: Optional[str] = None
    user_id: Optional[str] = None
    expires_at: Optional[float] = None
    scopes: FrozenSet[str] = frozenset()
    token_type: str = "user"

    def is_expired(self, skew: float = 0.0, now: Optional[float] = None) -> bool:
        """Whether the token is expired, or will be within `skew` seconds."""
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current + skew >= self.expires_at

    def has_scopes(self, scopes: Iterable[str]) -> bool:
        return set(scopes).issubset(self.scopes)


@dataclass(frozen=True)
class ValidatedToken:
    """Result of the /oauth2/validate endpoint."""
    client_id: str
    login: Optional[str] = None
    user_id: Optional[str] = None
    scopes: FrozenSet[str] = frozenset()
    expires_in: Optional[int] = None


async def validate_token(http: HttpClient, access_token: str) -> ValidatedToken:
    """
    Validate an access token against Twitch.

    Args:
        http: HTTP client used for the request
        access_token: The token to validate

    Returns:
        The client id, login, user id and scopes bound to the token

    Raises:
        NotAuthorizedError: If Twitch rejects the token
        TwitchAPIError: If Twitch returns another unexpected status
        ResponseParseError: If the response is not the expected JSON
        TransportError: If the request fails
    """
    response = await http.send(HttpRequest(
        method="GET",
        url=TWITCH_VALIDATE_URL,
        headers={"Authorization": f"OAuth {access_token}"},
    ))

    if response.status == 401:
        logger.error("Token validation failed: token is not authorized")
        raise NotAuthorizedError("Token is invalid or expired")
    if response.status != 200:
        error_msg = response.error_message()
        logger.error(f"Token validation failed: {error_msg}")
        raise TwitchAPIError(f"Token validation failed: {error_msg}", status=response.status)

    data = response.json()
    if not isinstance(data, dict) or "client_id" not in data:
        raise ResponseParseError(f"Unexpected validation response: {data!r}")

    expires_in = data.get("expires_in")
    validated = ValidatedToken(
        client_id=data["client_id"],
        login=data.get("login"),
        user_id=str(data["user_id"]) if data.get("user_id") else None,
        scopes=frozenset(data.get("scopes") or []),
        # Twitch reports 0 for tokens that never expire
        expires_in=int(expires_in) if expires_in else None,
    )
    logger.debug(f"Token is valid. Client ID: {validated.client_id}")
    return validated


class TokenManager:
    """
    Owns an access token and keeps it fresh.

    Callers read immutable Token snapshots through `token` or `ensure_fresh()`;
    only `refresh()` replaces the held token.
    """

    def __init__(
        self,
        http: HttpClient,
        token: Token,
        client_secret: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.http = http
        self._token = token
        self._client_secret = client_secret
        self._clock = clock
        self._refresh_task: Optional[asyncio.Future] = None
        self._refresh_disabled = False
        self.refresh_count = 0

        logger.info(f"TokenManager initialized for client_id: {token.client_id}")

    @classmethod
    def from_existing_unchecked(
        cls,
        http: HttpClient,
        access_token: str,
        client_id: str,
        refresh_token: Optional[str] = None,
        client_secret: Optional[str] = None,
        login: Optional[str] = None,
        scopes: Iterable[str] = (),
        expires_at: Optional[float] = None,
        token_type: str = "user",
    ) -> "TokenManager":
        """Assemble a manager around a token without asking Twitch about it."""
        token = Token(
            access_token=access_token,
            client_id=client_id,
            refresh_token=refresh_token,
            login=login,
            expires_at=expires_at,
            scopes=frozenset(scopes),
            token_type=token_type,
        )
        return cls(http, token, client_secret=client_secret)

    @classmethod
    async def from_existing(
        cls,
        http: HttpClient,
        access_token: str,
        refresh_token: Optional[str] = None,
        client_secret: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> "TokenManager":
        """
        Assemble a manager around an externally supplied token and validate it.

        Validation discovers the client id, login, scopes and expiry of the
        token. Tokens without a login are app access tokens.

        Raises:
            NotAuthorizedError: If Twitch rejects the token
        """
        validated = await validate_token(http, access_token)
        now = clock()
        token = Token(
            access_token=access_token,
            client_id=validated.client_id,
            refresh_token=refresh_token,
            login=validated.login,
            user_id=validated.user_id,
            expires_at=now + validated.expires_in if validated.expires_in else None,
            scopes=validated.scopes,
            token_type="user" if validated.login else "app",
        )
        logger.info(f"Token validated for {validated.login or 'app'} (client_id: {validated.client_id})")
        return cls(http, token, client_secret=client_secret, clock=clock)

    @classmethod
    async def get_app_access_token(
        cls,
        http: HttpClient,
        client_id: str,
        client_secret: str,
        scopes: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> "TokenManager":
        """
        Obtain an app access token with the client credentials flow.

        App tokens carry no refresh token; the manager re-runs the client
        credentials flow when one of them expires.
        """
        manager = cls(
            http,
            Token(access_token="", client_id=client_id, scopes=frozenset(scopes), token_type="app"),
            client_secret=client_secret,
            clock=clock,
        )
        await manager.refresh()
        return manager

    @property
    def token(self) -> Token:
        """The current token snapshot, without any freshness check."""
        return self._token

    @property
    def client_id(self) -> str:
        return self._token.client_id

    async def validate(self) -> ValidatedToken:
        """
        Validate the held token and update its login, scopes and expiry.

        Raises:
            NotAuthorizedError: If the token has been revoked or expired
        """
        validated = await validate_token(self.http, self._token.access_token)
        self._token = replace(
            self._token,
            client_id=validated.client_id,
            login=validated.login or self._token.login,
            user_id=validated.user_id or self._token.user_id,
            scopes=validated.scopes,
            expires_at=self._clock() + validated.expires_in if validated.expires_in else self._token.expires_at,
        )
        return validated

    async def refresh(self) -> Token:
        """
        Exchange the refresh token for a new access/refresh token pair.

        Concurrent callers share one in-flight refresh and all observe its
        result or its exception.

        Returns:
            The new token snapshot

        Raises:
            NoRefreshTokenError: If there is nothing to refresh with
            TwitchAuthenticationError: If Twitch rejects the refresh token
            ResponseParseError: If the token response is malformed
            TransportError: If the request fails
        """
        if self._refresh_disabled:
            raise NoRefreshTokenError("Token refresh is disabled after a permanent failure. Please re-authenticate.")

        # check-and-create runs without awaiting, so callers on this loop share one task
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._refresh_once())
        return await asyncio.shield(self._refresh_task)

    async def _refresh_once(self) -> Token:
        token = self._token
        if token.refresh_token:
            data = {
                "client_id": token.client_id,
                "grant_type": "refresh_token",
                "refresh_token": token.refresh_token,
            }
        elif token.token_type == "app" and self._client_secret:
            data = {
                "client_id": token.client_id,
                "grant_type": "client_credentials",
            }
            if token.scopes:
                data["scope"] = " ".join(sorted(token.scopes))
        else:
            self._refresh_disabled = True
            logger.error("Token expired and no refresh token available")
            raise NoRefreshTokenError("No refresh token available. Please re-authenticate.")

        if self._client_secret:
            data["client_secret"] = self._client_secret

        self.refresh_count += 1
        response = await self.http.send(HttpRequest(method="POST", url=TWITCH_TOKEN_URL, data=data))

        if response.status in (400, 401):
            error_msg = response.error_message()
            logger.error(f"Token refresh failed: {error_msg}")
            if data["grant_type"] == "refresh_token":
                # an invalid refresh token stays invalid
                self._refresh_disabled = True
            raise TwitchAuthenticationError(f"Failed to refresh token: {error_msg}")
        if response.status != 200:
            error_msg = response.error_message()
            logger.error(f"Token refresh failed: {error_msg}")
            raise TwitchAPIError(f"Failed to refresh token: {error_msg}", status=response.status)

        self._token = self._apply_token_response(token, response.json())
        logger.info(f"Successfully refreshed {token.token_type} access token")
        return self._token

    def _apply_token_response(self, token: Token, response_data: Any) -> Token:
        if not isinstance(response_data, dict) or not response_data.get("access_token"):
            raise ResponseParseError(f"Unexpected token response: {response_data!r}")

        expires_in = response_data.get("expires_in")
        scope = response_data.get("scope")
        if isinstance(scope, str):
            scope = scope.split()
        return replace(
            token,
            access_token=response_data["access_token"],
            refresh_token=response_data.get("refresh_token", token.refresh_token),
            expires_at=self._clock() + expires_in if expires_in else None,
            scopes=frozenset(scope) if scope is not None else token.scopes,
        )

    async def ensure_fresh(self, skew: float = 60.0) -> Token:
        """
        Return a token that stays valid for at least `skew` seconds.

        Raises:
            NoRefreshTokenError: If the token is expired and cannot be refreshed
        """
        if self._token.is_expired(skew=skew, now=self._clock()):
            logger.info("Access token expired or about to expire, refreshing")
            return await self.refresh()
        return self._token

    async def authorization_headers(self, skew: float = 60.0) -> Dict[str, str]:
        """Headers for an authorized Helix request."""
        token = await self.ensure_fresh(skew)
        return {
            "Authorization": f"Bearer {token.access_token}",
            "Client-Id": token.client_id,
        }

    async def revoke(self) -> None:
        """
        Revoke the current access token.

        Raises:
            TwitchAPIError: If token revocation fails
        """
        response = await self.http.send(HttpRequest(
            method="POST",
            url=TWITCH_REVOKE_URL,
            data={"client_id": self._token.client_id, "token": self._token.access_token},
        ))
        if response.status != 200:
            error_msg = response.error_message()
            logger.error(f"Token revocation failed: {error_msg}")
            raise TwitchAPIError(f"Failed to revoke token: {error_msg}", status=response.status)

        logger.info("Token revoked successfully")
        self._token = replace(self._token, access_token="", refresh_token=None, expires_at=0.0)
        self._refresh_disabled = True


class UserTokenBuilder:
    """
    Authorization Code Grant flow producing a user TokenManager.

    Attributes:
        client_id: Twitch application client ID
        client_secret: Twitch application client secret
        redirect_uri: OAuth redirect URI
    """

    # OAuth state expiration time (5 minutes)
    OAUTH_STATE_EXPIRY = 300

    def __init__(self, http: HttpClient, client_id: str, client_secret: str, redirect_uri: str):
        if not client_id or not client_secret:
            raise ValueError("client_id and client_secret are required")

        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

        # OAuth state management
        self.oauth_states: Dict[str, Dict[str, Any]] = {}

    def generate_auth_url(self, scopes: List[str], state: Optional[str] = None) -> str:
        """
        Generate an authorization URL for the OAuth Authorization Code Grant flow.

        Args:
            scopes: List of permission scopes to request
            state: Optional state parameter for security (auto-generated if not provided)

        Returns:
            The authorization URL to redirect users to

        Raises:
            ValueError: If scopes list is empty
        """
        if not scopes:
            raise ValueError("At least one scope is required")

        if not state:
            state = secrets.token_urlsafe(32)

        # Store state for validation
        self.oauth_states[state] = {
            "scopes": scopes,
            "timestamp": time.time()
        }

        # Clean up old states
        self._cleanup_expired_states()

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "state": state
        }

        query_string = urllib.parse.urlencode(params)
        auth_url = f"{TWITCH_AUTH_URL}?{query_string}"

        logger.info(f"Generated auth URL with scopes: {scopes}")
        return auth_url

    def _cleanup_expired_states(self) -> None:
        """Clean up expired OAuth states."""
        current_time = time.time()
        expired_states = [
            state for state, data in self.oauth_states.items()
            if current_time - data["timestamp"] > self.OAUTH_STATE_EXPIRY
        ]

        for state in expired_states:
            del self.oauth_states[state]

        if expired_states:
            logger.debug(f"Cleaned up {len(expired_states)} expired OAuth states")

    async def exchange_code(self, code: str, state: str) -> TokenManager:
        """
        Exchange an authorization code for a user token.

        Args:
            code: The authorization code received from the callback
            state: The state parameter to validate

        Returns:
            A TokenManager holding the validated user token

        Raises:
            ValueError: If state is invalid or expired
            TwitchAuthenticationError: If Twitch rejects the code
        """
        if state not in self.oauth_states:
            raise ValueError("Invalid state parameter")

        oauth_data = self.oauth_states.pop(state)

        if time.time() - oauth_data["timestamp"] > self.OAUTH_STATE_EXPIRY:
            raise ValueError("State parameter expired")

        response = await self.http.send(HttpRequest(
            method="POST",
            url=TWITCH_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
        ))
        if response.status != 200:
            error_msg = response.error_message()
            logger.error(f"Token exchange failed: {error_msg}")
            raise TwitchAuthenticationError(f"Failed to exchange code for token: {error_msg}")

        response_data = response.json()
        if not isinstance(response_data, dict) or not response_data.get("access_token"):
            raise ResponseParseError(f"Unexpected token response: {response_data!r}")

        logger.info(f"Successfully obtained user access token with scopes: {response_data.get('scope', [])}")
        return await TokenManager.from_existing(
            self.http,
            response_data["access_token"],
            refresh_token=response_data.get("refresh_token"),
            client_secret=self.client_secret,
        )
