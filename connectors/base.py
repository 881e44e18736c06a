"""
BaseConnector — abstract interface for an OAuth2 token endpoint.

A connector only talks to the provider's authorization server; reading
calendar/drive/mail data is the job of ``connectors.fetchers``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class BaseConnector(ABC):
    """Abstract base for OAuth2 connectors."""

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug, e.g. 'google'."""
        ...

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        """OAuth scopes requested on consent."""
        ...

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def get_auth_url(self, state: str) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Opaque state string (signed user_id + expiry).
        """
        ...

    @abstractmethod
    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Exchange an authorization code for tokens.

        Returns
        -------
        The raw token endpoint response: access_token, refresh_token,
        expires_in, scope, token_type.
        """
        ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Run a refresh-token grant.

        Returns
        -------
        dict with keys: access_token, expires_in, (optional) refresh_token
        """
        ...

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke a token at the provider.
        Returns False if the provider doesn't support revocation.
        """
        return False
