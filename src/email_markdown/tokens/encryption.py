"""Fernet encryption for tokens at rest."""

from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from email_markdown.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class TokenCipher:
    """Encrypts and decrypts token strings.

    Args:
        keys: One or more Fernet keys, newest first. Data encrypted under any
            of them can be decrypted; new data uses the first.
    """

    def __init__(self, keys: list[str] | str):
        if isinstance(keys, str):
            keys = [keys]
        keys = [k for k in keys if k]
        if not keys:
            raise ConfigurationError(
                "A token encryption key is required. "
                "Set TOKEN_ENCRYPTION_KEYS in your environment."
            )
        try:
            self._fernet = MultiFernet([Fernet(k) for k in keys])
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid Fernet key: {e}") from e

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str | None) -> str:
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str | None) -> str:
        """Decrypt a token; returns "" when no configured key can read it."""
        if not ciphertext:
            return ""
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            logger.warning(f"Token decryption failed ({type(e).__name__}); treating as missing")
            return ""

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt under the newest key."""
        try:
            return self._fernet.rotate(ciphertext.encode("ascii")).decode("ascii")
        except InvalidToken:
            logger.warning("Cannot rotate token encrypted under an unknown key")
            return ""
