"""Access/refresh credential issuance and verification.

Each credential class has its own ``TokenAuthority`` and its own secret. A
credential of one class presented to the other fails at the signature step,
before its type tag is ever read. The type tag check only matters when both
secrets are misconfigured to the same value.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from gourmoire.logging import get_logger
from gourmoire.service import signing, token_codec
from gourmoire.service.errors import (
    ErrorCode,
    ServiceError,
    TokenExpiredError,
    TokenInvalidError,
)
from gourmoire.service.token_codec import FormatError

logger = get_logger(__name__)

Clock = Callable[[], float]

DAY_SECONDS = 24 * 60 * 60
# Refresh credentials longer than this were minted with remember-me
REMEMBER_ME_THRESHOLD_SECONDS = 7 * DAY_SECONDS


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


# (normal, remember-me) lifetimes in seconds
LIFETIMES: dict[TokenType, tuple[int, int]] = {
    TokenType.ACCESS: (DAY_SECONDS, 30 * DAY_SECONDS),
    TokenType.REFRESH: (7 * DAY_SECONDS, 90 * DAY_SECONDS),
}


def token_lifetime(token_type: TokenType, remember_me: bool = False) -> int:
    normal, extended = LIFETIMES[token_type]
    return extended if remember_me else normal


def lifetime_seconds(remember_me: bool = False) -> int:
    """Access credential lifetime, reported to clients as ``expiresIn``."""
    return token_lifetime(TokenType.ACCESS, remember_me)


def extract_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


@dataclass(frozen=True)
class TokenIdentity:
    """The identity subset embedded in every credential."""

    user_id: str
    username: str
    email: str = ""


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    username: str
    email: str
    iat: int
    exp: int
    type: TokenType

    @property
    def identity(self) -> TokenIdentity:
        return TokenIdentity(self.user_id, self.username, self.email)

    @property
    def lifetime(self) -> int:
        return self.exp - self.iat

    @property
    def remember_me(self) -> bool:
        return self.lifetime > REMEMBER_ME_THRESHOLD_SECONDS

    def to_claims(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "email": self.email,
            "type": self.type.value,
            "iat": self.iat,
            "exp": self.exp,
        }

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "TokenPayload":
        try:
            user_id = claims["userId"]
            username = claims["username"]
            email = claims.get("email") or ""
            iat = claims["iat"]
            exp = claims["exp"]
            token_type = TokenType(claims["type"])
        except (KeyError, ValueError) as exc:
            raise FormatError(f"missing or invalid claim: {exc}") from exc
        if not isinstance(user_id, str) or not isinstance(username, str):
            raise FormatError("subject claims must be strings")
        if not isinstance(email, str):
            raise FormatError("email claim must be a string")
        for value in (iat, exp):
            if isinstance(value, bool) or not isinstance(value, int):
                raise FormatError("iat/exp must be integer seconds")
        return cls(user_id, username, email, iat, exp, token_type)


def is_remember_me(payload: TokenPayload) -> bool:
    return payload.remember_me


class FailureReason(str, Enum):
    FORMAT = "format"
    SIGNATURE = "signature"
    TYPE_MISMATCH = "type_mismatch"
    EXPIRED = "expired"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class AuthFailure:
    code: ErrorCode
    message: str
    reason: FailureReason

    def to_error(self) -> ServiceError:
        """Expired credentials are 401; every other failure is 403."""
        if self.code == ErrorCode.TOKEN_EXPIRED:
            return TokenExpiredError(self.message, detail={"reason": self.reason.value})
        return TokenInvalidError(self.message, detail={"reason": self.reason.value})


@dataclass(frozen=True)
class Valid:
    payload: TokenPayload


@dataclass(frozen=True)
class Invalid:
    failure: AuthFailure


VerifyResult = Union[Valid, Invalid]


class TokenAuthority:
    """Mints and checks credentials of a single type with a single secret."""

    def __init__(
        self, token_type: TokenType, secret: str, *, clock: Clock = time.time
    ) -> None:
        if not secret:
            raise ValueError(f"{token_type.value} signing secret must not be empty")
        self.token_type = token_type
        self._secret = secret
        self.clock = clock

    def issue(self, identity: TokenIdentity, remember_me: bool = False) -> str:
        now = int(self.clock())
        payload = TokenPayload(
            user_id=identity.user_id,
            username=identity.username,
            email=identity.email or "",
            iat=now,
            exp=now + token_lifetime(self.token_type, remember_me),
            type=self.token_type,
        )
        return token_codec.encode(payload.to_claims(), self._secret)

    def _invalid(self, message: str, reason: FailureReason) -> Invalid:
        return Invalid(AuthFailure(ErrorCode.TOKEN_INVALID, message, reason))

    def verify(self, token: str) -> VerifyResult:
        """Check format, signature, type tag and expiry, in that order."""
        name = self.token_type.value
        try:
            try:
                parts = token_codec.split(token)
            except FormatError:
                return self._invalid(f"Invalid {name} token format", FailureReason.FORMAT)

            if not signing.verify(parts.signing_input, parts.signature, self._secret):
                return self._invalid(
                    f"Invalid {name} token signature", FailureReason.SIGNATURE
                )

            claims = token_codec.decode_payload(parts.payload_segment)
            if claims.get("type") != name:
                return self._invalid("Invalid token type", FailureReason.TYPE_MISMATCH)
            payload = TokenPayload.from_claims(claims)

            if payload.exp < int(self.clock()):
                return Invalid(
                    AuthFailure(
                        ErrorCode.TOKEN_EXPIRED,
                        f"{name.capitalize()} token has expired",
                        FailureReason.EXPIRED,
                    )
                )
            return Valid(payload)
        except Exception as exc:
            logger.debug("token_parse_failed", token_type=name, error=str(exc))
            return self._invalid(f"Invalid {name} token", FailureReason.MALFORMED)


class TokenService:
    """Pair of authorities for access and refresh credentials."""

    def __init__(
        self, access_secret: str, refresh_secret: str, *, clock: Clock = time.time
    ) -> None:
        self._authorities = {
            TokenType.ACCESS: TokenAuthority(TokenType.ACCESS, access_secret, clock=clock),
            TokenType.REFRESH: TokenAuthority(TokenType.REFRESH, refresh_secret, clock=clock),
        }

    @property
    def clock(self) -> Clock:
        return self._authorities[TokenType.ACCESS].clock

    @clock.setter
    def clock(self, clock: Clock) -> None:
        for authority in self._authorities.values():
            authority.clock = clock

    def authority(self, token_type: TokenType) -> TokenAuthority:
        return self._authorities[TokenType(token_type)]

    def issue(
        self,
        identity: TokenIdentity,
        token_type: TokenType,
        remember_me: bool = False,
    ) -> str:
        return self.authority(token_type).issue(identity, remember_me)

    def issue_access(self, identity: TokenIdentity, remember_me: bool = False) -> str:
        return self.issue(identity, TokenType.ACCESS, remember_me)

    def issue_refresh(self, identity: TokenIdentity, remember_me: bool = False) -> str:
        return self.issue(identity, TokenType.REFRESH, remember_me)

    def verify(self, token: str, expected_type: TokenType) -> VerifyResult:
        return self.authority(expected_type).verify(token)

    def verify_or_raise(self, token: str, expected_type: TokenType) -> TokenPayload:
        result = self.verify(token, expected_type)
        if isinstance(result, Invalid):
            logger.info(
                "token_rejected",
                token_type=TokenType(expected_type).value,
                reason=result.failure.reason.value,
                error_code=result.failure.code.value,
            )
            raise result.failure.to_error()
        return result.payload
