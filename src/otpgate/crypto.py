"""AES-256-GCM encryption of confirmed TOTP secrets at rest."""

from __future__ import annotations

import base64
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from otpgate.config import settings

_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM


def _get_key() -> bytes:
    raw = settings.otpgate_master_key
    if not raw:
        raise RuntimeError("OTPGATE_MASTER_KEY not set")
    key = base64.b64decode(raw)
    if len(key) != 32:
        raise ValueError("OTPGATE_MASTER_KEY must be 32 bytes (base64-encoded)")
    return key


def encrypt(plaintext: str, associated_data: bytes | None = None) -> str:
    """Encrypt a string. Returns base64(nonce + ciphertext)."""
    key = _get_key()
    nonce = os.urandom(_NONCE_SIZE)
    ct = AESGCM(key).encrypt(nonce, plaintext.encode(), associated_data)
    return base64.b64encode(nonce + ct).decode()


def decrypt(token: str, associated_data: bytes | None = None) -> str:
    """Decrypt a base64(nonce + ciphertext) token back to plaintext."""
    key = _get_key()
    raw = base64.b64decode(token)
    nonce, ct = raw[:_NONCE_SIZE], raw[_NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ct, associated_data).decode()
