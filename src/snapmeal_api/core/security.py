"""Symmetric encryption for provider credentials at rest."""

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class CredentialDecryptionError(Exception):
    """Stored credential cannot be decrypted with the configured key."""


class CredentialCipher:
    """
    Encrypts and decrypts API keys stored on provider configs.

    The Fernet key is derived from an arbitrary secret via SHA-256, so any
    ENCRYPTION_KEY string works and rotating it invalidates stored credentials.

    Usage:
        cipher = CredentialCipher(settings.encryption_key)
        token = cipher.encrypt("sk-...")
        api_key = cipher.decrypt(token)
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Encryption secret must not be empty")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a credential; returns a URL-safe token."""
        if not plaintext:
            raise ValueError("Credential must not be empty")
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """
        Decrypt a stored credential.

        Raises:
            CredentialDecryptionError: If the token is corrupt or was
                encrypted with a different key
        """
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError, ValueError) as e:
            logger.error("Failed to decrypt stored provider credential")
            raise CredentialDecryptionError(
                "Stored credential could not be decrypted. "
                "Ensure ENCRYPTION_KEY matches the one used for encryption."
            ) from e
