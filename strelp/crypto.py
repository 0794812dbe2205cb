"""AES-256-GCM encryption of short secrets such as access tokens."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_SIZE = 12
KEY_SIZE = 32


class DecryptionError(ValueError):
    """Raised when a value cannot be decoded or authenticated."""


def _derive_key(key: str) -> bytes:
    # The key text is truncated or zero-padded to exactly 32 bytes.
    return key.encode("utf-8")[:KEY_SIZE].ljust(KEY_SIZE, b"\0")


def encrypt(plaintext: str, key: str) -> str:
    """Encrypt text and return base64 of nonce followed by ciphertext and tag."""
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(_derive_key(key)).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + sealed).decode("ascii")


def decrypt(encoded: str, key: str) -> str:
    """Reverse :func:`encrypt`, raising DecryptionError on any failure."""
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError(f"invalid base64: {exc}") from exc
    if len(data) < NONCE_SIZE:
        raise DecryptionError("ciphertext too short")
    nonce, ciphertext = data[:NONCE_SIZE], data[NONCE_SIZE:]
    try:
        plaintext = AESGCM(_derive_key(key)).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise DecryptionError("message authentication failed") from exc
    return plaintext.decode("utf-8", errors="replace")