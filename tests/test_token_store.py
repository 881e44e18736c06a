"""
Tests for the Google token store and refresh-before-use.
"""

import httpx
import pytest
from cryptography.fernet import Fernet
from unittest.mock import AsyncMock, MagicMock, patch

from connectors.encryption import TokenCipher
from connectors.errors import NotConnected, ReauthRequired, UpstreamFailure
from connectors.google import GoogleConnector
from connectors.token_store import (
    GoogleTokens,
    clear_tokens,
    ensure_fresh,
    get_fresh_tokens,
    get_tokens,
    now_ms,
    save_tokens,
)
from database.models import User


def _tokens(**overrides) -> GoogleTokens:
    values = dict(
        access_token="access-1",
        refresh_token="refresh-1",
        scope="https://www.googleapis.com/auth/calendar https://www.googleapis.com/auth/drive",
        expiry_date=now_ms() + 3600 * 1000,
    )
    values.update(overrides)
    return GoogleTokens(**values)


def _refreshing_connector(**response) -> MagicMock:
    connector = MagicMock()
    connector.refresh_access_token = AsyncMock(
        return_value={"access_token": "access-2", "expires_in": 3600, **response}
    )
    return connector


class TestGoogleTokens:
    def test_from_token_response_defaults_to_one_hour(self):
        tokens = GoogleTokens.from_token_response({"access_token": "a"}, issued_at_ms=1_000)
        assert tokens.expiry_date == 1_000 + 3600 * 1000
        assert tokens.refresh_token == ""

    def test_is_expired_honours_skew(self):
        tokens = _tokens(expiry_date=10_000)
        assert not tokens.is_expired(at_ms=9_000)
        assert tokens.is_expired(skew_seconds=1, at_ms=9_000)
        assert tokens.is_expired(at_ms=10_000)

    def test_scopes_split_on_whitespace(self):
        assert _tokens().scopes == [
            "https://www.googleapis.com/auth/calendar",
            "https://www.googleapis.com/auth/drive",
        ]

    def test_document_round_trip_through_cipher(self):
        cipher = TokenCipher(Fernet.generate_key().decode())
        doc = _tokens().to_document(cipher)
        assert doc["accessToken"] != "access-1"
        assert GoogleTokens.from_document(doc, cipher).access_token == "access-1"


class TestStore:
    @pytest.mark.asyncio
    async def test_save_then_get(self, session):
        await save_tokens("user_1", _tokens(), db_session=session)
        loaded = await get_tokens("user_1", db_session=session)
        assert loaded.access_token == "access-1"
        assert loaded.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_get_without_tokens_raises_not_connected(self, session):
        with pytest.raises(NotConnected):
            await get_tokens("nobody", db_session=session)

    @pytest.mark.asyncio
    async def test_empty_refresh_token_keeps_stored_one(self, session):
        await save_tokens("user_1", _tokens(), db_session=session)
        stored = await save_tokens("user_1", _tokens(access_token="access-2", refresh_token=""), db_session=session)
        assert stored.refresh_token == "refresh-1"
        loaded = await get_tokens("user_1", db_session=session)
        assert loaded.access_token == "access-2"
        assert loaded.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_tokens_encrypted_at_rest(self, session):
        cipher = TokenCipher(Fernet.generate_key().decode())
        with patch("connectors.token_store.get_cipher", return_value=cipher):
            await save_tokens("user_1", _tokens(), db_session=session)
            user = await session.get(User, "user_1")
            assert user.google_tokens["accessToken"] != "access-1"
            loaded = await get_tokens("user_1", db_session=session)
        assert loaded.access_token == "access-1"

    @pytest.mark.asyncio
    async def test_clear_is_idempotent(self, session):
        await save_tokens("user_1", _tokens(), db_session=session)
        await clear_tokens("user_1", db_session=session)
        await clear_tokens("user_1", db_session=session)
        await clear_tokens("never_connected", db_session=session)
        with pytest.raises(NotConnected):
            await get_tokens("user_1", db_session=session)


class TestEnsureFresh:
    @pytest.mark.asyncio
    async def test_valid_tokens_are_not_refreshed(self, session):
        connector = _refreshing_connector()
        tokens = _tokens()
        result = await ensure_fresh("user_1", tokens, connector=connector, db_session=session)
        assert result == tokens
        connector.refresh_access_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_skew_unless_asked(self, session):
        connector = _refreshing_connector()
        tokens = _tokens(expiry_date=now_ms() + 30 * 1000)
        result = await ensure_fresh("user_1", tokens, connector=connector, db_session=session)
        assert result == tokens
        connector.refresh_access_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_expiring_within_skew_is_refreshed(self, session):
        connector = _refreshing_connector()
        tokens = _tokens(expiry_date=now_ms() + 30 * 1000)
        await save_tokens("user_1", tokens, db_session=session)

        result = await ensure_fresh("user_1", tokens, connector=connector, skew_seconds=60, db_session=session)

        connector.refresh_access_token.assert_awaited_once_with("refresh-1")
        assert result.access_token == "access-2"
        assert result.expiry_date > now_ms()
        loaded = await get_tokens("user_1", db_session=session)
        assert loaded.access_token == "access-2"
        assert loaded.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_revoked_refresh_token_leaves_record_untouched(self, session):
        expired = _tokens(expiry_date=now_ms() - 1000)
        await save_tokens("user_1", expired, db_session=session)
        connector = MagicMock()
        connector.refresh_access_token = AsyncMock(side_effect=ReauthRequired(detail="invalid_grant"))

        with pytest.raises(ReauthRequired):
            await get_fresh_tokens("user_1", connector=connector, db_session=session)

        connector.refresh_access_token.assert_awaited_once()
        loaded = await get_tokens("user_1", db_session=session)
        assert loaded.access_token == "access-1"
        assert loaded.expiry_date == expired.expiry_date

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token_requires_reauth(self, session):
        connector = _refreshing_connector()
        tokens = _tokens(refresh_token="", expiry_date=now_ms() - 1000)
        with pytest.raises(ReauthRequired):
            await ensure_fresh("user_1", tokens, connector=connector, db_session=session)
        connector.refresh_access_token.assert_not_called()


class TestRefreshGrant:
    @pytest.mark.asyncio
    async def test_invalid_grant_maps_to_reauth(self, oauth):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(400, json={"error": "invalid_grant"})
        )
        connector = GoogleConnector(oauth, transport=transport)
        with pytest.raises(ReauthRequired):
            await connector.refresh_access_token("revoked")

    @pytest.mark.asyncio
    async def test_server_error_maps_to_upstream_failure(self, oauth):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable"))
        connector = GoogleConnector(oauth, transport=transport)
        with pytest.raises(UpstreamFailure):
            await connector.refresh_access_token("refresh-1")

    @pytest.mark.asyncio
    async def test_refresh_sends_refresh_grant(self, oauth):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"access_token": "new", "expires_in": 1800})

        connector = GoogleConnector(oauth, transport=httpx.MockTransport(handler))
        data = await connector.refresh_access_token("refresh-1")
        assert data["access_token"] == "new"
        assert data["expires_in"] == 1800
        assert "grant_type=refresh_token" in seen["body"]
        assert "refresh_token=refresh-1" in seen["body"]
