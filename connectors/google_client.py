"""
Builds authenticated Google API clients for a user.

The stored tokens are refreshed first if they are about to expire; the
refresh is committed straight away so it survives a failing fetch later
in the same request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import GoogleOAuthConfig
from connectors.base import BaseConnector
from connectors.google import GoogleConnector
from connectors.token_store import GoogleTokens, get_fresh_tokens

logger = logging.getLogger(__name__)


class GoogleClientFactory:
    """OAuth client factory: stored tokens → discovery service objects."""

    def __init__(self, oauth: GoogleOAuthConfig, connector: Optional[BaseConnector] = None):
        self.oauth = oauth
        self.connector = connector or GoogleConnector(oauth)

    def credentials(self, tokens: GoogleTokens) -> Credentials:
        """
        Access-token-only credentials.  google-auth cannot refresh these, so
        a 401 from the API reaches the fetchers; refreshing is the token
        store's job.
        """
        return Credentials(token=tokens.access_token, scopes=tokens.scopes or None)

    async def fresh_tokens(self, user_id: str, *, db_session: AsyncSession) -> GoogleTokens:
        """Raises ``NotConnected`` or ``ReauthRequired``."""
        tokens = await get_fresh_tokens(
            user_id,
            connector=self.connector,
            skew_seconds=self.oauth.refresh_skew_seconds,
            db_session=db_session,
        )
        await db_session.commit()
        return tokens

    async def build(
        self,
        user_id: str,
        api: str,
        version: str,
        *,
        db_session: AsyncSession,
    ) -> Any:
        """Return a ``googleapiclient`` resource for ``api``/``version``."""
        tokens = await self.fresh_tokens(user_id, db_session=db_session)
        return await self.build_from_tokens(tokens, api, version)

    async def build_from_tokens(self, tokens: GoogleTokens, api: str, version: str) -> Any:
        creds = self.credentials(tokens)
        # Discovery construction reads bundled JSON from disk
        service = await asyncio.to_thread(
            build, api, version, credentials=creds, cache_discovery=False
        )
        logger.debug("Built Google %s %s client", api, version)
        return service
