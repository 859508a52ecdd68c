"""Shared secret encoding and provisioning URIs.

Secrets are exchanged as unpadded upper-case base32 (RFC 4648), the
form authenticator apps expect.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from urllib.parse import quote

import pyotp
import qrcode

from otpgate.config import settings

logger = logging.getLogger(__name__)

URI_TEMPLATE = "otpauth://totp/{label}@{issuer}?secret={secret}"


def generate_secret(length: int | None = None) -> str:
    """Generate a new random base32 secret (32 chars = 160 bits by default)."""
    return pyotp.random_base32(length=length or settings.totp_secret_length)


def decode_secret(secret: str) -> bytes:
    """Decode a base32 secret to raw bytes.

    Accepts lower case and missing padding. Raises ValueError on invalid text.
    """
    cleaned = secret.strip().replace(" ", "").upper()
    if not cleaned:
        raise ValueError("Empty secret")
    missing = len(cleaned) % 8
    if missing:
        cleaned += "=" * (8 - missing)
    try:
        return base64.b32decode(cleaned, casefold=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base32 secret: {e}") from e


def is_valid_secret(secret: str) -> bool:
    try:
        decode_secret(secret)
    except ValueError:
        return False
    return True


def build_provisioning_uri(
    label: str,
    secret: str,
    issuer: str,
    encoding: str | None = None,
) -> str | None:
    """Build the otpauth:// URI for QR enrollment.

    Returns None when the issuer cannot be represented in ``encoding``;
    callers fall back to handing out the raw secret.
    """
    try:
        quoted_issuer = quote(issuer, safe="", encoding=encoding or settings.uri_encoding, errors="strict")
    except UnicodeEncodeError:
        logger.warning("Could not encode issuer %r for provisioning URI", issuer, exc_info=True)
        return None
    return URI_TEMPLATE.format(label=label, issuer=quoted_issuer, secret=secret)


def render_qr_png(uri: str) -> bytes:
    """Render a provisioning URI as PNG QR code bytes."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image()
    buffer = io.BytesIO()
    img.save(buffer)
    return buffer.getvalue()
