"""HMAC-SHA256 signatures over the ``header.payload`` signing input."""

from __future__ import annotations

import base64
import hashlib
import hmac


def encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def sign(data: str, secret: str) -> str:
    """Return the base64url (unpadded) HMAC-SHA256 of ``data`` keyed by ``secret``.

    No nonce or salt is mixed in, so equal inputs always give equal signatures.
    """
    digest = hmac.new(secret.encode(), data.encode(), hashlib.sha256).digest()
    return encode_segment(digest)


def verify(data: str, signature: str, secret: str) -> bool:
    """Recompute the signature and compare in constant time."""
    expected = sign(data, secret)
    return hmac.compare_digest(expected.encode(), signature.encode())
