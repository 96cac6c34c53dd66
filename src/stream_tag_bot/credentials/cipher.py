"""AES-GCM encryption for tokens at rest.

The key is derived once per secret with PBKDF2-HMAC-SHA256. The salt is
fixed: the secret is the protected input, the salt only domain-separates it.
Every encryption draws a fresh 96-bit nonce.
"""

from __future__ import annotations

import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from stream_tag_bot.credentials.models import EncryptedValue
from stream_tag_bot.errors import DecryptionFailed

_SALT = hashlib.sha256(b"stream-tag-bot-token-store-v1").digest()[:16]
_ITERATIONS = 390_000
_IV_BYTES = 12


def derive_key(secret: str, *, iterations: int = _ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_SALT,
        iterations=iterations,
    )
    return kdf.derive(secret.encode("utf-8"))


class TokenCipher:
    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError("TokenCipher requires a 256-bit key")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_secret(cls, secret: str, *, iterations: int = _ITERATIONS) -> TokenCipher:
        if not secret:
            raise ValueError("An encryption secret is required")
        return cls(derive_key(secret, iterations=iterations))

    def encrypt(self, plaintext: str, *, associated_data: bytes | None = None) -> EncryptedValue:
        iv = os.urandom(_IV_BYTES)
        ciphertext = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), associated_data)
        return EncryptedValue(ciphertext=ciphertext, iv=iv)

    def decrypt(self, ciphertext: bytes, iv: bytes, *, associated_data: bytes | None = None) -> str:
        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext, associated_data)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError) as ex:
            raise DecryptionFailed(f"Token decryption failed: {type(ex).__name__}") from ex
