"""
Tests for the Google API client factory.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from connectors.google_client import GoogleClientFactory
from connectors.token_store import GoogleTokens, get_tokens, now_ms, save_tokens


def _connector() -> MagicMock:
    connector = MagicMock()
    connector.refresh_access_token = AsyncMock(return_value={"access_token": "access-2", "expires_in": 3600})
    return connector


class TestCredentials:
    def test_credentials_carry_only_the_access_token(self, oauth):
        factory = GoogleClientFactory(oauth, connector=_connector())
        tokens = GoogleTokens(
            access_token="access-1",
            refresh_token="refresh-1",
            scope="https://www.googleapis.com/auth/calendar",
            expiry_date=now_ms() + 3600 * 1000,
        )

        creds = factory.credentials(tokens)

        assert creds.token == "access-1"
        assert creds.refresh_token is None
        assert creds.client_secret is None
        assert creds.scopes == ["https://www.googleapis.com/auth/calendar"]


class TestFreshTokens:
    @pytest.mark.asyncio
    async def test_uses_configured_refresh_skew(self, oauth, session):
        connector = _connector()
        factory = GoogleClientFactory(oauth.model_copy(update={"refresh_skew_seconds": 120}), connector=connector)
        await save_tokens(
            "user_1",
            GoogleTokens(access_token="access-1", refresh_token="refresh-1", expiry_date=now_ms() + 90 * 1000),
            db_session=session,
        )

        tokens = await factory.fresh_tokens("user_1", db_session=session)

        connector.refresh_access_token.assert_awaited_once_with("refresh-1")
        assert tokens.access_token == "access-2"
        assert (await get_tokens("user_1", db_session=session)).access_token == "access-2"

    @pytest.mark.asyncio
    async def test_outside_configured_skew_is_left_alone(self, oauth, session):
        connector = _connector()
        factory = GoogleClientFactory(oauth.model_copy(update={"refresh_skew_seconds": 10}), connector=connector)
        await save_tokens(
            "user_1",
            GoogleTokens(access_token="access-1", refresh_token="refresh-1", expiry_date=now_ms() + 90 * 1000),
            db_session=session,
        )

        tokens = await factory.fresh_tokens("user_1", db_session=session)

        connector.refresh_access_token.assert_not_called()
        assert tokens.access_token == "access-1"
