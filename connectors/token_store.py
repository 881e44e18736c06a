"""
Token store — get / save / clear / refresh a user's Google OAuth tokens.

Tokens live on the ``users.google_tokens`` document, owned exclusively by
that user.  This module is the only place that reads or writes it.

Concurrent refreshes for the same user are last-write-wins: both writers
hold a valid access token, so whichever lands last is kept.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.base import BaseConnector
from connectors.encryption import TokenCipher, get_cipher
from connectors.errors import NotConnected, ReauthRequired
from database.helpers import ensure_user_exists
from database.models import User
from database.session import async_session_factory

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


def now_ms() -> int:
    return int(time.time() * 1000)


class GoogleTokens(BaseModel):
    """OAuth credentials for a user's connected Google account."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(default="", alias="refreshToken")
    scope: str = ""
    token_type: str = Field(default="Bearer", alias="tokenType")
    expiry_date: int = Field(alias="expiryDate")  # absolute epoch millis

    @classmethod
    def from_token_response(cls, data: Dict[str, Any], *, issued_at_ms: Optional[int] = None) -> "GoogleTokens":
        """Build from a raw token endpoint response (``expires_in`` in seconds)."""
        issued = issued_at_ms if issued_at_ms is not None else now_ms()
        expires_in = data.get("expires_in") or DEFAULT_EXPIRES_IN
        return cls(
            access_token=data.get("access_token") or "",
            refresh_token=data.get("refresh_token") or "",
            scope=data.get("scope") or "",
            token_type=data.get("token_type") or "Bearer",
            expiry_date=issued + int(expires_in) * 1000,
        )

    def is_expired(self, skew_seconds: int = 0, *, at_ms: Optional[int] = None) -> bool:
        current = at_ms if at_ms is not None else now_ms()
        return self.expiry_date <= current + skew_seconds * 1000

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []

    def to_document(self, cipher: TokenCipher) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        doc["accessToken"] = cipher.encrypt(self.access_token)
        doc["refreshToken"] = cipher.encrypt(self.refresh_token)
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any], cipher: TokenCipher) -> "GoogleTokens":
        data = dict(doc)
        data["accessToken"] = cipher.decrypt(data.get("accessToken") or "")
        data["refreshToken"] = cipher.decrypt(data.get("refreshToken") or "")
        data.setdefault("expiryDate", 0)
        return cls.model_validate(data)


async def get_tokens(
    user_id: str,
    *,
    db_session: Optional[AsyncSession] = None,
) -> GoogleTokens:
    """
    Load the stored tokens for ``user_id``.

    Raises
    ------
    NotConnected
        The user has never connected Google, or has disconnected.
    """
    own_session = db_session is None
    session = db_session or async_session_factory()
    try:
        user = await session.get(User, user_id)
        doc = user.google_tokens if user is not None else None
        if not doc or not doc.get("accessToken"):
            raise NotConnected()
        return GoogleTokens.from_document(doc, get_cipher())
    finally:
        if own_session:
            await session.close()


async def save_tokens(
    user_id: str,
    tokens: GoogleTokens,
    *,
    db_session: Optional[AsyncSession] = None,
) -> GoogleTokens:
    """
    Replace the user's token document (creating the user row if needed).

    Google only returns a refresh token on first consent, so an empty
    incoming refresh token keeps the stored one.  Returns what was stored.
    """
    own_session = db_session is None
    session = db_session or async_session_factory()
    cipher = get_cipher()
    try:
        user = await ensure_user_exists(session, user_id)

        if not tokens.refresh_token and user.google_tokens:
            previous = cipher.decrypt(user.google_tokens.get("refreshToken") or "")
            if previous:
                tokens = tokens.model_copy(update={"refresh_token": previous})

        user.google_tokens = tokens.to_document(cipher)

        if own_session:
            await session.commit()
        else:
            await session.flush()

        logger.info("Stored Google tokens for user %s (expires %s)", user_id, tokens.expiry_date)
        return tokens

    except Exception as exc:
        logger.error("save_tokens error for user %s: %s", user_id, exc)
        if own_session:
            await session.rollback()
        raise
    finally:
        if own_session:
            await session.close()


async def clear_tokens(
    user_id: str,
    *,
    db_session: Optional[AsyncSession] = None,
) -> None:
    """Remove the user's tokens.  Safe to call when nothing is stored."""
    own_session = db_session is None
    session = db_session or async_session_factory()
    try:
        user = await session.get(User, user_id)
        if user is not None and user.google_tokens is not None:
            user.google_tokens = None
            if own_session:
                await session.commit()
            else:
                await session.flush()
            logger.info("Cleared Google tokens for user %s", user_id)
    finally:
        if own_session:
            await session.close()


async def ensure_fresh(
    user_id: str,
    tokens: GoogleTokens,
    *,
    connector: BaseConnector,
    skew_seconds: int = 0,
    db_session: Optional[AsyncSession] = None,
) -> GoogleTokens:
    """
    Return ``tokens`` unchanged if still valid, otherwise refresh and persist.

    ``skew_seconds`` treats a token that expires within that window as
    already expired.

    Raises
    ------
    ReauthRequired
        No refresh token on file, or Google rejected it.  The stored record
        is left untouched and nothing is retried.
    UpstreamFailure
        The token endpoint failed for a reason other than the grant.
    """
    if not tokens.is_expired(skew_seconds):
        return tokens

    if not tokens.refresh_token:
        logger.warning("Google token for user %s expired and no refresh token on file", user_id)
        raise ReauthRequired(detail="no refresh token")

    try:
        refreshed = await connector.refresh_access_token(tokens.refresh_token)
    except ReauthRequired as exc:
        logger.warning("Token refresh rejected for user %s: %s", user_id, exc.detail)
        raise

    issued = now_ms()
    updated = tokens.model_copy(
        update={
            "access_token": refreshed["access_token"],
            "expiry_date": issued + int(refreshed.get("expires_in") or DEFAULT_EXPIRES_IN) * 1000,
            # Google rarely rotates refresh tokens; keep ours unless it does
            "refresh_token": refreshed.get("refresh_token") or tokens.refresh_token,
            "scope": refreshed.get("scope") or tokens.scope,
        }
    )
    stored = await save_tokens(user_id, updated, db_session=db_session)
    logger.info("Refreshed Google token for user %s", user_id)
    return stored


async def get_fresh_tokens(
    user_id: str,
    *,
    connector: BaseConnector,
    skew_seconds: int = 0,
    db_session: Optional[AsyncSession] = None,
) -> GoogleTokens:
    """Load and, if needed, refresh the user's tokens."""
    tokens = await get_tokens(user_id, db_session=db_session)
    return await ensure_fresh(
        user_id, tokens, connector=connector, skew_seconds=skew_seconds, db_session=db_session
    )
