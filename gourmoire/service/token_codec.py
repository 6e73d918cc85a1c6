from __future__ import annotations

import binascii
import json
from dataclasses import dataclass
from typing import Any

from gourmoire.service.signing import decode_segment, encode_segment, sign

# Every credential carries this header, byte for byte.
TOKEN_HEADER: dict[str, str] = {"alg": "HS256", "typ": "JWT"}


class FormatError(ValueError):
    """Credential text is not a well-formed ``header.payload.signature`` triple."""


@dataclass(frozen=True)
class TokenParts:
    header_segment: str
    payload_segment: str
    signature: str

    @property
    def signing_input(self) -> str:
        return f"{self.header_segment}.{self.payload_segment}"


@dataclass(frozen=True)
class DecodedToken:
    header: dict[str, Any]
    payload: dict[str, Any]
    signature: str


def _dump(obj: dict[str, Any]) -> str:
    return encode_segment(json.dumps(obj, separators=(",", ":")).encode())


def _load(segment: str) -> dict[str, Any]:
    try:
        value = json.loads(decode_segment(segment).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise FormatError(f"undecodable segment: {exc}") from exc
    if not isinstance(value, dict):
        raise FormatError("segment is not a JSON object")
    return value


def encode(claims: dict[str, Any], secret: str) -> str:
    """Serialize header and claims, then append the signature of both."""
    signing_input = f"{_dump(TOKEN_HEADER)}.{_dump(claims)}"
    return f"{signing_input}.{sign(signing_input, secret)}"


def split(token: str) -> TokenParts:
    parts = token.split(".")
    if len(parts) != 3:
        raise FormatError(f"expected 3 segments, got {len(parts)}")
    return TokenParts(*parts)


def decode_payload(segment: str) -> dict[str, Any]:
    return _load(segment)


def decode(token: str) -> DecodedToken:
    """Structural parse only; the signature is returned, not checked."""
    parts = split(token)
    return DecodedToken(
        header=_load(parts.header_segment),
        payload=_load(parts.payload_segment),
        signature=parts.signature,
    )
