"""Summary: Token encryption utilities for stored OAuth credentials.

Importance: Keeps access and refresh tokens unreadable at rest in the store.
Alternatives: Use a dedicated secrets manager or database-level encryption.
"""

from __future__ import annotations

import base64
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


NONCE_SIZE = 12


class TokenCodec:
    """Summary: AES-GCM token encoder/decoder.

    Importance: Encrypts tokens with a per-value random nonce so equal tokens never share ciphertext.
    Alternatives: Use Fernet from the same library.
    """

    def __init__(self, secret: str) -> None:
        """Summary: Initialize with a secret used to derive a 256-bit key.

        Importance: Keeps token encryption consistent per deployment.
        Alternatives: Load a raw key from a key management service.
        """

        self._aead = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    def encode(self, plaintext: str) -> str:
        """Summary: Encrypt plaintext into a base64 string (nonce then ciphertext).

        Importance: Avoids storing raw tokens in the store.
        Alternatives: Store tokens in a vault.
        """

        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decode(self, payload: str) -> str:
        """Summary: Decrypt a payload produced by encode.

        Importance: Allows using stored tokens for provider calls.
        Alternatives: Skip decoding and require re-authentication.
        """

        try:
            raw = base64.b64decode(payload.encode("ascii"), validate=True)
            plaintext = self._aead.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except (InvalidTag, ValueError) as exc:
            raise ValueError("Token decryption failed") from exc
        return plaintext.decode("utf-8")


def build_codec(secret: str) -> TokenCodec | None:
    """Return a codec for a configured secret, or None to store tokens as plaintext."""

    return TokenCodec(secret) if secret else None
