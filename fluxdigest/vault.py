"""
Credential vault - encryption at rest for provider and Miniflux API keys.

Keys are stored as "iv:tag:ciphertext" (each base64) using AES-256-GCM with
a key derived from the configured secret via scrypt. The rest of the
application only ever sees decrypted values on read.
"""

import base64
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

NONCE_LENGTH = 12
TAG_LENGTH = 16


class VaultError(ConfigurationError):
    """Raised when a stored credential cannot be decrypted."""


class CredentialVault:
    """Authenticated encryption for stored credentials."""

    def __init__(self, secret: str, salt: str):
        kdf = Scrypt(salt=salt.encode("utf-8"), length=32, n=2**14, r=8, p=1)
        self._aead = AESGCM(kdf.derive(secret.encode("utf-8")))

    def encrypt(self, plaintext: str | None) -> str | None:
        """Encrypt a credential; empty values stay None."""
        if not plaintext:
            return None
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(
            base64.b64encode(part).decode("ascii") for part in (nonce, tag, ciphertext)
        )

    def decrypt(self, token: str | None) -> str | None:
        """Decrypt a stored credential."""
        if not token:
            return None
        parts = token.split(":")
        if len(parts) != 3:
            raise VaultError("Invalid encrypted data format")
        try:
            nonce, tag, ciphertext = (base64.b64decode(part) for part in parts)
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except (InvalidTag, ValueError) as e:
            logger.error(f"Credential decryption failed: {type(e).__name__}")
            raise VaultError("Failed to decrypt data") from e
        return plaintext.decode("utf-8")


def mask_api_key(api_key: str | None) -> str | None:
    """Show the first and last 4 characters of a key, mask the rest."""
    if not api_key:
        return None
    if len(api_key) <= 8:
        return "****"
    masked_length = min(len(api_key) - 8, 20)
    return f"{api_key[:4]}{'*' * masked_length}{api_key[-4:]}"
