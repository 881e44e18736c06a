"""
Consent flow — Unlinked → PendingConsent → Linked.

The flow keeps no in-memory state.  ``begin_consent`` signs the caller's
user_id into the OAuth ``state`` parameter; ``complete_consent`` checks that
signature (and, for API calls, that it belongs to the current caller)
before anything is exchanged or stored.  The token store is the only
durable state.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import GoogleOAuthConfig
from connectors.base import BaseConnector
from connectors.errors import MissingAccessToken, NotConnected, StateMismatch
from connectors.google import GoogleConnector
from connectors.token_store import GoogleTokens, clear_tokens, get_tokens, now_ms, save_tokens

logger = logging.getLogger(__name__)


# ── State token helpers (CSRF protection) ──────────────────────────────


def _sign(secret: str, raw: bytes) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()[:32]


def create_state(user_id: str, secret: str, ttl_seconds: int) -> str:
    """Create an opaque state string encoding user_id + expiry."""
    payload = json.dumps({"user_id": user_id, "exp": int(time.time()) + ttl_seconds})
    raw = payload.encode()
    return urlsafe_b64encode(raw).decode() + "." + _sign(secret, raw)


def verify_state(state: str, secret: str) -> str:
    """Verify state token, return user_id.  Raises ``StateMismatch``."""
    try:
        encoded, sig = state.split(".", 1)
        raw = urlsafe_b64decode(encoded.encode())
    except ValueError as exc:
        raise StateMismatch(detail=f"bad format: {exc}") from exc
    if not hmac.compare_digest(sig.encode(), _sign(secret, raw).encode()):
        raise StateMismatch(detail="bad signature")
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise StateMismatch(detail="bad payload") from exc
    if payload.get("exp", 0) < time.time():
        raise StateMismatch(detail="state expired")
    user_id = payload.get("user_id")
    if not user_id:
        raise StateMismatch(detail="no user in state")
    return user_id


# ── Flow ───────────────────────────────────────────────────────────────


class ConsentFlow:
    """Links and unlinks a user's Google account."""

    def __init__(self, oauth: GoogleOAuthConfig, connector: Optional[BaseConnector] = None):
        self.oauth = oauth
        self.connector = connector or GoogleConnector(oauth)

    def begin_consent(self, user_id: str) -> str:
        """Consent URL for ``user_id`` (Unlinked → PendingConsent)."""
        state = create_state(user_id, self.oauth.state_secret, self.oauth.state_ttl_seconds)
        return self.connector.get_auth_url(state)

    async def complete_consent(
        self,
        code: str,
        state: str,
        *,
        expected_user_id: Optional[str] = None,
        db_session: Optional[AsyncSession] = None,
    ) -> Tuple[str, GoogleTokens]:
        """
        Exchange ``code`` and store the tokens (PendingConsent → Linked).

        ``expected_user_id`` is the authenticated caller when the exchange
        comes through the API; the redirect callback has no session and
        trusts the signed state alone.

        Raises
        ------
        StateMismatch
            Bad, expired, or someone else's state.  Nothing is exchanged or stored.
        InvalidGrant
            Google rejected the code (expired or already used).
        MissingAccessToken
            Google answered without an access token.
        """
        user_id = verify_state(state, self.oauth.state_secret)
        if expected_user_id is not None and user_id != expected_user_id:
            logger.warning("Consent state for %s presented by %s", user_id, expected_user_id)
            raise StateMismatch(detail="state belongs to another user")

        issued = now_ms()
        token_data = await self.connector.exchange_code(code)
        if not token_data.get("access_token"):
            raise MissingAccessToken()

        tokens = GoogleTokens.from_token_response(token_data, issued_at_ms=issued)
        stored = await save_tokens(user_id, tokens, db_session=db_session)
        logger.info("Google account linked for user %s (scopes: %s)", user_id, stored.scope)
        return user_id, stored

    async def disconnect(
        self,
        user_id: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> None:
        """Revoke (best effort) and clear the tokens.  Idempotent."""
        try:
            tokens = await get_tokens(user_id, db_session=db_session)
        except NotConnected:
            tokens = None

        if tokens is not None:
            # Revoking the refresh token also invalidates its access tokens
            revoked = await self.connector.revoke_token(tokens.refresh_token or tokens.access_token)
            if not revoked:
                logger.warning("Google did not confirm revocation for user %s", user_id)

        await clear_tokens(user_id, db_session=db_session)
        logger.info("Google account unlinked for user %s", user_id)

    async def connection_status(
        self,
        user_id: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        try:
            tokens = await get_tokens(user_id, db_session=db_session)
        except NotConnected:
            return {"connected": False}
        return {
            "connected": True,
            "scope": tokens.scopes,
            "expiryDate": tokens.expiry_date,
            "expired": tokens.is_expired(),
            "hasRefreshToken": bool(tokens.refresh_token),
        }
