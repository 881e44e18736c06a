"""
connectors — Google account integration.

Provides:
  • OAuth2 consent URL generation & signed state
  • Code → token exchange (API and redirect callback)
  • Per-user token storage & refresh-before-use
  • Fernet encryption of tokens at rest
  • Authenticated Google API clients and resource fetchers
  • Revocation / disconnect
"""
