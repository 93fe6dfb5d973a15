"""
Credential encryption at rest.

Every integration's credential object goes through CredentialCipher before it
is written to the integrations table:
- PBKDF2-HMAC-SHA256 key derivation (100k iterations) from the platform
  secret and a fresh 64-byte salt per payload
- AES-256-GCM with a 16-byte IV and 16-byte authentication tag
- Self-describing JSON bundle ``{salt, iv, authTag, encrypted}`` in lowercase hex

Decryption fails closed with a generic DecryptionError whatever went wrong.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from hub.integrations.errors import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
KDF_ITERATIONS = 100_000

PAYLOAD_FIELDS = ("salt", "iv", "authTag", "encrypted")


class CredentialCipher:
    """Authenticated symmetric encryption for credential blobs.

    Usage::

        cipher = CredentialCipher(settings.encryption_key)
        stored = cipher.encrypt({"api_key": "re_abc123"})
        creds = cipher.decrypt(stored)
    """

    def __init__(self, secret: str | None):
        if not secret:
            raise ConfigurationError(
                "ENCRYPTION_KEY is not set. Generate one with: openssl rand -hex 32"
            )
        self._secret = secret.encode("utf-8")

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=KDF_ITERATIONS,
        )
        return kdf.derive(self._secret)

    # --- Encrypt / decrypt ---

    def encrypt(self, credentials: Any) -> str:
        """Serialise and encrypt *credentials*, returning the JSON bundle."""
        plaintext = json.dumps(credentials, separators=(",", ":"), ensure_ascii=False)
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(self._derive_key(salt)).encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return json.dumps(
            {
                "salt": salt.hex(),
                "iv": iv.hex(),
                "authTag": tag.hex(),
                "encrypted": ciphertext.hex(),
            },
            separators=(",", ":"),
        )

    def decrypt(self, payload: str) -> Any:
        """Decrypt a bundle produced by :meth:`encrypt`.

        Tag mismatch, wrong key, malformed JSON, missing fields or bad hex all
        raise the same DecryptionError.
        """
        try:
            data = json.loads(payload)
            salt = bytes.fromhex(data["salt"])
            iv = bytes.fromhex(data["iv"])
            tag = bytes.fromhex(data["authTag"])
            ciphertext = bytes.fromhex(data["encrypted"])
            if len(tag) != TAG_LENGTH or not iv:
                raise ValueError("bad tag or iv length")
            plaintext = AESGCM(self._derive_key(salt)).decrypt(iv, ciphertext + tag, None)
            return json.loads(plaintext.decode("utf-8"))
        except (InvalidTag, ValueError, TypeError, KeyError) as exc:
            logger.warning("Credential decryption failed: %s", type(exc).__name__)
            raise DecryptionError() from None

    # --- Migration helpers ---

    @staticmethod
    def is_encrypted(value: Any) -> bool:
        """True when *value* is a JSON string (or dict) carrying all four bundle fields."""
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return False
        if not isinstance(value, dict):
            return False
        return all(value.get(name) for name in PAYLOAD_FIELDS)

    def safe_decrypt(self, value: Any) -> Any:
        """Tolerant decrypt for rows written before encryption was enforced.

        Plain objects pass through, encrypted bundles are decrypted, other
        strings are JSON-parsed when possible and returned raw otherwise.
        TODO: remove once the plaintext-credentials backfill has run everywhere.
        """
        if not value:
            return None
        if isinstance(value, dict):
            if self.is_encrypted(value):
                return self.decrypt(json.dumps(value))
            return value
        if isinstance(value, str):
            if self.is_encrypted(value):
                return self.decrypt(value)
            try:
                return json.loads(value)
            except ValueError:
                return value
        return value
