"""
Caller identity tokens.

Sessions belong to the identity provider; this service only needs a
verified caller id.  Tokens are base64-encoded JSON payloads signed with
HMAC-SHA256 using ``config.jwt_secret`` (env var: ``JWT_SECRET``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from base64 import b64decode, b64encode

from config.settings import config
from connectors.errors import Unauthenticated

logger = logging.getLogger(__name__)


def _signature(raw: bytes) -> str:
    return hmac.new(config.jwt_secret.encode(), raw, hashlib.sha256).hexdigest()


def create_token(user_id: str, *, expires_in: int | None = None) -> str:
    """Create a signed token carrying the identity-provider subject id."""
    ttl = config.jwt_expiry_seconds if expires_in is None else expires_in
    payload = {"user_id": user_id, "exp": int(time.time()) + ttl}
    raw = json.dumps(payload).encode()
    return b64encode(raw).decode() + "." + _signature(raw)


def verify_token(token: str) -> str:
    """
    Verify token and return ``user_id``.

    Raises ``Unauthenticated`` on malformed, forged or expired tokens.
    """
    try:
        encoded, sig = token.split(".", 1)
        raw = b64decode(encoded)
        if not hmac.compare_digest(sig.encode(), _signature(raw).encode()):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("token expired")
        user_id = payload["user_id"]
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.debug("Rejected caller token: %s", exc)
        raise Unauthenticated() from exc
    if not user_id:
        raise Unauthenticated()
    return user_id
