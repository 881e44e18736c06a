"""
GoogleConnector — OAuth2 web flow against Google's authorization server.

Covers consent URL generation, code exchange, refresh-token grants,
revocation and the userinfo lookup used by the connection test.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from config.settings import GoogleOAuthConfig
from connectors.base import BaseConnector
from connectors.errors import InvalidGrant, ReauthRequired, UpstreamFailure

logger = logging.getLogger(__name__)


def _oauth_error_code(resp: httpx.Response) -> str:
    """The ``error`` field of an OAuth error body, or ''."""
    try:
        body = resp.json()
    except ValueError:
        return ""
    return body.get("error", "") if isinstance(body, dict) else ""


class GoogleConnector(BaseConnector):
    """OAuth2 connector for Google (Calendar, Drive, Gmail, Sheets, Docs)."""

    def __init__(
        self,
        oauth: GoogleOAuthConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._oauth = oauth
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "google"

    @property
    def scopes(self) -> List[str]:
        return list(self._oauth.scopes)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport)

    def get_auth_url(self, state: str) -> str:
        params = {
            "client_id": self._oauth.client_id,
            "redirect_uri": self._oauth.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",       # gets refresh_token
            "prompt": "consent",            # force consent to always get refresh_token
            "state": state,
        }
        return f"{self._oauth.auth_uri}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange auth code for tokens."""
        try:
            async with self._client() as client:
                resp = await client.post(
                    self._oauth.token_uri,
                    data={
                        "code": code,
                        "client_id": self._oauth.client_id,
                        "client_secret": self._oauth.client_secret,
                        "redirect_uri": self._oauth.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
        except httpx.HTTPError as exc:
            raise UpstreamFailure("Failed to exchange authorization code", detail=str(exc)) from exc

        if resp.status_code in (400, 401):
            error = _oauth_error_code(resp)
            if error == "invalid_grant":
                raise InvalidGrant(detail=resp.text)
            raise UpstreamFailure(
                "Failed to exchange authorization code",
                detail=f"{resp.status_code} {error or resp.text}",
            )
        if resp.is_error:
            raise UpstreamFailure(
                "Failed to exchange authorization code",
                detail=f"{resp.status_code} {resp.text}",
            )
        return resp.json()

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Use refresh token to get a new access token."""
        try:
            async with self._client() as client:
                resp = await client.post(
                    self._oauth.token_uri,
                    data={
                        "client_id": self._oauth.client_id,
                        "client_secret": self._oauth.client_secret,
                        "refresh_token": refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as exc:
            raise UpstreamFailure("Failed to refresh access token", detail=str(exc)) from exc

        # Revoked, expired or otherwise rejected refresh token
        if resp.status_code in (400, 401):
            raise ReauthRequired(detail=f"refresh rejected: {_oauth_error_code(resp) or resp.status_code}")
        if resp.is_error:
            raise UpstreamFailure(
                "Failed to refresh access token",
                detail=f"{resp.status_code} {resp.text}",
            )

        data = resp.json()
        if not data.get("access_token"):
            raise ReauthRequired(detail="refresh response without access_token")
        return {
            "access_token": data["access_token"],
            "expires_in": data.get("expires_in", 3600),
            "refresh_token": data.get("refresh_token"),
            "scope": data.get("scope"),
        }

    async def revoke_token(self, token: str) -> bool:
        """Revoke the token at Google."""
        try:
            async with self._client() as client:
                resp = await client.post(self._oauth.revoke_uri, params={"token": token})
        except httpx.HTTPError as exc:
            logger.warning("Google token revocation failed: %s", exc)
            return False
        return resp.status_code == 200

    async def get_user_info(self, access_token: str) -> Dict[str, Any]:
        """Fetch the connected account's profile (email, name, picture)."""
        try:
            async with self._client() as client:
                resp = await client.get(
                    self._oauth.userinfo_uri,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as exc:
            raise UpstreamFailure("Failed to get user information", detail=str(exc)) from exc
        if resp.status_code == 401:
            raise ReauthRequired()
        if resp.is_error:
            raise UpstreamFailure("Failed to get user information", detail=resp.text)
        return resp.json()
