"""Tests for the OAuth token lifecycle."""

import asyncio
import urllib.parse

import pytest

from conftest import json_response
from twitch_eventsub.auth import (
    TWITCH_REVOKE_URL,
    TWITCH_TOKEN_URL,
    TWITCH_VALIDATE_URL,
    Token,
    TokenManager,
    UserTokenBuilder,
    validate_token,
)
from twitch_eventsub.errors import (
    NoRefreshTokenError,
    NotAuthorizedError,
    ResponseParseError,
    TwitchAPIError,
    TwitchAuthenticationError,
)

NOW = 1_700_000_000.0


def clock():
    return NOW


def validate_body(login="cool_user", expires_in=5000, scopes=("user:read:chat",)):
    data = {"client_id": "client-id", "scopes": list(scopes), "expires_in": expires_in}
    if login:
        data.update(login=login, user_id="1337")
    return data


def token_body(access_token="new-token", refresh_token="new-refresh", expires_in=14400):
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_in": expires_in,
        "scope": ["user:read:chat"],
        "token_type": "bearer",
    }


def expired_manager(http, refresh_token="refresh-token", token_type="user", client_secret="client-secret"):
    token = Token(
        access_token="old-token",
        client_id="client-id",
        refresh_token=refresh_token,
        expires_at=NOW - 10,
        token_type=token_type,
    )
    return TokenManager(http, token, client_secret=client_secret, clock=clock)


class TestToken:

    def test_repr_hides_secrets(self):
        token = Token(access_token="very-secret", client_id="client-id", refresh_token="also-secret")
        assert "very-secret" not in repr(token)
        assert "also-secret" not in repr(token)
        assert "client-id" in repr(token)

    def test_expiry(self):
        token = Token(access_token="a", client_id="c", expires_at=NOW + 30)
        assert not token.is_expired(now=NOW)
        assert token.is_expired(skew=60, now=NOW)
        assert not Token(access_token="a", client_id="c").is_expired(skew=10 ** 9)

    def test_has_scopes(self):
        token = Token(access_token="a", client_id="c", scopes=frozenset({"user:read:chat", "bits:read"}))
        assert token.has_scopes(["bits:read"])
        assert not token.has_scopes(["bits:read", "channel:read:vips"])


class TestValidation:

    @pytest.mark.asyncio
    async def test_validate_token(self, http):
        http.add("GET", TWITCH_VALIDATE_URL, json_response(200, validate_body()))

        validated = await validate_token(http, "user-token")

        assert validated.client_id == "client-id"
        assert validated.login == "cool_user"
        assert validated.user_id == "1337"
        assert validated.scopes == frozenset({"user:read:chat"})
        assert http.requests[0].headers["Authorization"] == "OAuth user-token"

    @pytest.mark.asyncio
    async def test_rejected_token(self, http):
        http.add("GET", TWITCH_VALIDATE_URL, json_response(401, {"status": 401, "message": "invalid access token"}))

        with pytest.raises(NotAuthorizedError):
            await validate_token(http, "bad-token")

    @pytest.mark.asyncio
    async def test_unexpected_body(self, http):
        http.add("GET", TWITCH_VALIDATE_URL, json_response(200, {"nope": True}))

        with pytest.raises(ResponseParseError):
            await validate_token(http, "user-token")

    @pytest.mark.asyncio
    async def test_from_existing_learns_token_details(self, http):
        http.add("GET", TWITCH_VALIDATE_URL, json_response(200, validate_body(expires_in=5000)))

        manager = await TokenManager.from_existing(http, "user-token", refresh_token="refresh", clock=clock)

        assert manager.client_id == "client-id"
        assert manager.token.login == "cool_user"
        assert manager.token.token_type == "user"
        assert manager.token.expires_at == NOW + 5000
        assert manager.token.refresh_token == "refresh"

    @pytest.mark.asyncio
    async def test_from_existing_app_token_without_expiry(self, http):
        http.add("GET", TWITCH_VALIDATE_URL, json_response(200, validate_body(login=None, expires_in=0, scopes=())))

        manager = await TokenManager.from_existing(http, "app-token", clock=clock)

        assert manager.token.token_type == "app"
        assert manager.token.expires_at is None


class TestRefresh:

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, http):
        http.add("POST", TWITCH_TOKEN_URL, json_response(200, token_body()))
        manager = expired_manager(http)

        tokens = await asyncio.gather(*(manager.ensure_fresh() for _ in range(10)))

        assert len(http.calls("POST", TWITCH_TOKEN_URL)) == 1
        assert manager.refresh_count == 1
        assert {t.access_token for t in tokens} == {"new-token"}
        assert manager.token.refresh_token == "new-refresh"
        assert manager.token.expires_at == NOW + 14400

    @pytest.mark.asyncio
    async def test_refresh_request(self, http):
        http.add("POST", TWITCH_TOKEN_URL, json_response(200, token_body()))
        manager = expired_manager(http)

        await manager.refresh()

        request = http.requests[0]
        assert request.data == {
            "client_id": "client-id",
            "grant_type": "refresh_token",
            "refresh_token": "refresh-token",
            "client_secret": "client-secret",
        }

    @pytest.mark.asyncio
    async def test_fresh_token_is_not_refreshed(self, http, user_tokens):
        token = await user_tokens.ensure_fresh()

        assert token.access_token == "user-token"
        assert http.requests == []

    @pytest.mark.asyncio
    async def test_missing_refresh_token_is_permanent(self, http):
        manager = expired_manager(http, refresh_token=None)

        with pytest.raises(NoRefreshTokenError):
            await manager.ensure_fresh()
        with pytest.raises(NoRefreshTokenError):
            await manager.ensure_fresh()

        assert http.requests == []

    @pytest.mark.asyncio
    async def test_rejected_refresh_token_disables_refresh(self, http):
        http.add("POST", TWITCH_TOKEN_URL, json_response(400, {"status": 400, "message": "Invalid refresh token"}))
        manager = expired_manager(http)

        with pytest.raises(TwitchAuthenticationError, match="Invalid refresh token"):
            await manager.refresh()
        with pytest.raises(NoRefreshTokenError):
            await manager.refresh()

        assert len(http.requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_can_be_retried(self, http):
        http.add("POST", TWITCH_TOKEN_URL, json_response(503, {"message": "unavailable"}))
        http.add("POST", TWITCH_TOKEN_URL, json_response(200, token_body()))
        manager = expired_manager(http)

        with pytest.raises(TwitchAPIError) as excinfo:
            await manager.refresh()
        assert excinfo.value.status == 503

        token = await manager.refresh()
        assert token.access_token == "new-token"
        assert manager.refresh_count == 2

    @pytest.mark.asyncio
    async def test_failure_is_seen_by_all_concurrent_callers(self, http):
        http.add("POST", TWITCH_TOKEN_URL, json_response(401, {"message": "nope"}))
        manager = expired_manager(http)

        results = await asyncio.gather(*(manager.refresh() for _ in range(5)), return_exceptions=True)

        assert all(isinstance(r, TwitchAuthenticationError) for r in results)
        assert len(http.requests) == 1


class TestAppToken:

    @pytest.mark.asyncio
    async def test_client_credentials(self, http):
        http.add("POST", TWITCH_TOKEN_URL, json_response(200, {"access_token": "app-token", "expires_in": 5000}))

        manager = await TokenManager.get_app_access_token(http, "client-id", "client-secret", clock=clock)

        assert manager.token.access_token == "app-token"
        assert manager.token.token_type == "app"
        assert manager.token.refresh_token is None
        assert http.requests[0].data["grant_type"] == "client_credentials"
        assert http.requests[0].data["client_secret"] == "client-secret"

    @pytest.mark.asyncio
    async def test_expired_app_token_reruns_client_credentials(self, http):
        http.add("POST", TWITCH_TOKEN_URL, json_response(200, {"access_token": "app-token-2", "expires_in": 5000}))
        manager = expired_manager(http, refresh_token=None, token_type="app")

        token = await manager.ensure_fresh()

        assert token.access_token == "app-token-2"
        assert http.requests[0].data["grant_type"] == "client_credentials"

    @pytest.mark.asyncio
    async def test_authorization_headers(self, user_tokens):
        headers = await user_tokens.authorization_headers()
        assert headers == {"Authorization": "Bearer user-token", "Client-Id": "client-id"}


class TestRevoke:

    @pytest.mark.asyncio
    async def test_revoke(self, http, user_tokens):
        http.add("POST", TWITCH_REVOKE_URL, json_response(200))

        await user_tokens.revoke()

        assert http.requests[0].data == {"client_id": "client-id", "token": "user-token"}
        assert user_tokens.token.access_token == ""
        with pytest.raises(NoRefreshTokenError):
            await user_tokens.ensure_fresh()

    @pytest.mark.asyncio
    async def test_revoke_failure(self, http, user_tokens):
        http.add("POST", TWITCH_REVOKE_URL, json_response(400, {"message": "Invalid token"}))

        with pytest.raises(TwitchAPIError):
            await user_tokens.revoke()
        assert user_tokens.token.access_token == "user-token"


class TestUserTokenBuilder:

    @pytest.fixture
    def builder(self, http):
        return UserTokenBuilder(http, "client-id", "client-secret", "http://localhost:3000/callback")

    def test_auth_url(self, builder):
        url = builder.generate_auth_url(["user:read:chat", "bits:read"], state="abc")
        query = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)

        assert query["client_id"] == ["client-id"]
        assert query["scope"] == ["user:read:chat bits:read"]
        assert query["state"] == ["abc"]
        assert query["response_type"] == ["code"]

    def test_scopes_required(self, builder):
        with pytest.raises(ValueError):
            builder.generate_auth_url([])

    @pytest.mark.asyncio
    async def test_exchange_code(self, http, builder):
        http.add("POST", TWITCH_TOKEN_URL, json_response(200, token_body(access_token="user-token")))
        http.add("GET", TWITCH_VALIDATE_URL, json_response(200, validate_body()))
        builder.generate_auth_url(["user:read:chat"], state="abc")

        manager = await builder.exchange_code("the-code", "abc")

        assert manager.token.access_token == "user-token"
        assert manager.token.login == "cool_user"
        assert http.requests[0].data["code"] == "the-code"
        assert http.requests[0].data["grant_type"] == "authorization_code"

    @pytest.mark.asyncio
    async def test_unknown_state(self, builder):
        with pytest.raises(ValueError):
            await builder.exchange_code("the-code", "never-issued")

    @pytest.mark.asyncio
    async def test_state_is_single_use(self, http, builder):
        http.add("POST", TWITCH_TOKEN_URL, json_response(200, token_body()))
        http.add("GET", TWITCH_VALIDATE_URL, json_response(200, validate_body()))
        builder.generate_auth_url(["user:read:chat"], state="abc")

        await builder.exchange_code("the-code", "abc")
        with pytest.raises(ValueError):
            await builder.exchange_code("the-code", "abc")
