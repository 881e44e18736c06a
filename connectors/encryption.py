"""
Token encryption — encrypt / decrypt OAuth tokens at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The key comes from ``config.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``).

Without a key the cipher is a pass-through and tokens are stored as
plaintext (a warning is logged once).  Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import config

logger = logging.getLogger(__name__)


class TokenCipher:
    """Symmetric cipher for token strings stored in ``users.google_tokens``."""

    def __init__(self, key: Optional[str]):
        self._fernet: Optional[Fernet] = None
        if not key:
            logger.warning(
                "TOKEN_ENCRYPTION_KEY not set — Google tokens will be stored as plaintext"
            )
            return
        try:
            self._fernet = Fernet(key.encode())
        except ValueError as exc:
            logger.error("Invalid TOKEN_ENCRYPTION_KEY, storing tokens as plaintext: %s", exc)

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        if not plaintext or self._fernet is None:
            return plaintext
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored token.

        Values written before encryption was enabled are not Fernet tokens
        and come back unchanged.
        """
        if not ciphertext or self._fernet is None:
            return ciphertext
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            return ciphertext


_cipher: Optional[TokenCipher] = None


def get_cipher() -> TokenCipher:
    """Process-wide cipher built lazily from settings."""
    global _cipher
    if _cipher is None:
        _cipher = TokenCipher(config.token_encryption_key)
        if _cipher.enabled:
            logger.info("Token encryption enabled (Fernet/AES-128-CBC)")
    return _cipher
