"""
Tests for the consent flow: signed state, code exchange, disconnect.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from connectors.consent import ConsentFlow, create_state, verify_state
from connectors.errors import InvalidGrant, MissingAccessToken, NotConnected, StateMismatch
from connectors.google import GoogleConnector
from connectors.token_store import get_tokens
from database.models import User

SECRET = "test-state-secret"


def _connector(token_response=None) -> MagicMock:
    connector = MagicMock()
    connector.get_auth_url = MagicMock(side_effect=lambda state: f"https://accounts.example/auth?state={state}")
    connector.exchange_code = AsyncMock(
        return_value=token_response
        if token_response is not None
        else {"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600, "scope": "a b"}
    )
    connector.revoke_token = AsyncMock(return_value=True)
    return connector


class TestState:
    def test_round_trip(self):
        state = create_state("user_1", SECRET, 600)
        assert verify_state(state, SECRET) == "user_1"

    def test_wrong_secret_rejected(self):
        state = create_state("user_1", SECRET, 600)
        with pytest.raises(StateMismatch):
            verify_state(state, "another-secret")

    def test_tampered_signature_rejected(self):
        encoded, sig = create_state("user_1", SECRET, 600).split(".", 1)
        forged = encoded + "." + ("0" if sig[0] != "0" else "1") + sig[1:]
        with pytest.raises(StateMismatch):
            verify_state(forged, SECRET)

    def test_expired_state_rejected(self):
        state = create_state("user_1", SECRET, -1)
        with pytest.raises(StateMismatch):
            verify_state(state, SECRET)

    @pytest.mark.parametrize("state", ["", "no-dot", "!!!.abc", "user_1"])
    def test_garbage_rejected(self, state):
        with pytest.raises(StateMismatch):
            verify_state(state, SECRET)


class TestBeginConsent:
    def test_url_requests_offline_access_with_signed_state(self, oauth):
        flow = ConsentFlow(oauth, GoogleConnector(oauth))
        url = flow.begin_consent("user_1")
        query = parse_qs(urlparse(url).query)
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["client_id"] == ["client-id"]
        assert verify_state(query["state"][0], oauth.state_secret) == "user_1"


class TestCompleteConsent:
    @pytest.mark.asyncio
    async def test_stores_tokens_for_state_owner(self, oauth, session):
        connector = _connector()
        flow = ConsentFlow(oauth, connector)
        state = create_state("user_1", oauth.state_secret, 600)

        user_id, tokens = await flow.complete_consent("code-1", state, expected_user_id="user_1", db_session=session)

        assert user_id == "user_1"
        assert tokens.access_token == "access-1"
        connector.exchange_code.assert_awaited_once_with("code-1")
        stored = await get_tokens("user_1", db_session=session)
        assert stored.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_state_for_another_user_changes_nothing(self, oauth, session):
        connector = _connector()
        flow = ConsentFlow(oauth, connector)
        state = create_state("user_1", oauth.state_secret, 600)

        with pytest.raises(StateMismatch):
            await flow.complete_consent("code-1", state, expected_user_id="user_2", db_session=session)

        connector.exchange_code.assert_not_called()
        assert await session.get(User, "user_1") is None
        assert await session.get(User, "user_2") is None

    @pytest.mark.asyncio
    async def test_response_without_access_token(self, oauth, session):
        flow = ConsentFlow(oauth, _connector(token_response={"scope": "a"}))
        state = create_state("user_1", oauth.state_secret, 600)
        with pytest.raises(MissingAccessToken):
            await flow.complete_consent("code-1", state, db_session=session)
        with pytest.raises(NotConnected):
            await get_tokens("user_1", db_session=session)

    @pytest.mark.asyncio
    async def test_reused_code_is_invalid_grant(self, oauth, session):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad Request"})
        )
        flow = ConsentFlow(oauth, GoogleConnector(oauth, transport=transport))
        state = create_state("user_1", oauth.state_secret, 600)
        with pytest.raises(InvalidGrant):
            await flow.complete_consent("used-code", state, db_session=session)


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_twice_succeeds(self, oauth, session):
        connector = _connector()
        flow = ConsentFlow(oauth, connector)
        state = create_state("user_1", oauth.state_secret, 600)
        await flow.complete_consent("code-1", state, db_session=session)

        await flow.disconnect("user_1", db_session=session)
        await flow.disconnect("user_1", db_session=session)

        connector.revoke_token.assert_awaited_once_with("refresh-1")
        with pytest.raises(NotConnected):
            await get_tokens("user_1", db_session=session)

    @pytest.mark.asyncio
    async def test_failed_revocation_still_clears(self, oauth, session):
        connector = _connector()
        connector.revoke_token = AsyncMock(return_value=False)
        flow = ConsentFlow(oauth, connector)
        await flow.complete_consent("code-1", create_state("user_1", oauth.state_secret, 600), db_session=session)

        await flow.disconnect("user_1", db_session=session)

        status = await flow.connection_status("user_1", db_session=session)
        assert status == {"connected": False}

    @pytest.mark.asyncio
    async def test_connection_status_when_linked(self, oauth, session):
        flow = ConsentFlow(oauth, _connector())
        await flow.complete_consent("code-1", create_state("user_1", oauth.state_secret, 600), db_session=session)

        status = await flow.connection_status("user_1", db_session=session)

        assert status["connected"] is True
        assert status["scope"] == ["a", "b"]
        assert status["expired"] is False
        assert status["hasRefreshToken"] is True
