from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerifyMismatchError

from gourmoire.logging import get_logger
from gourmoire.service.errors import (
    AuthenticationError,
    BadRequestError,
    ErrorCode,
    InvalidCredentialsError,
    ServiceError,
    StoreUnavailable,
    TokenInvalidError,
    UserNotFoundError,
)
from gourmoire.service.tokens import (
    Clock,
    TokenIdentity,
    TokenPayload,
    TokenService,
    TokenType,
    extract_bearer,
    is_remember_me,
    lifetime_seconds,
    token_lifetime,
)
from gourmoire.storage.models import User
from gourmoire.storage.revocation import (
    ACCESS_BLACKLIST_TTL,
    BLACKLIST_SENTINEL,
    LOGOUT_WATERMARK_TTL,
    REFRESH_BLACKLIST_TTL,
    RevocationStore,
    blacklist_key,
    logout_key,
    refresh_record_key,
)

logger = get_logger(__name__)

PASSWORD_ALGO = "argon2id"


class UserStore(Protocol):
    def create_user(
        self,
        username: str,
        email: str = "",
        *,
        is_active: bool = True,
        user_id: Optional[str] = None,
    ) -> User: ...

    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_user_by_username(self, username: str) -> Optional[User]: ...

    def save_password(
        self, user_id: str, password_hash: str, password_algo: str
    ) -> None: ...

    def get_password_record(self, user_id: str) -> Optional[tuple[str, str]]: ...


@dataclass(frozen=True)
class IdentityContext:
    """Identity attached to a request that passed the session gate."""

    id: str
    username: str
    email: str
    token: str


@dataclass(frozen=True)
class RefreshGrant:
    """A refresh credential that passed signature, type and expiry checks."""

    token: str
    payload: TokenPayload


@dataclass(frozen=True)
class TokenBundle:
    access_token: str
    refresh_token: str
    expires_in: int
    remember_me: bool = False


@dataclass(frozen=True)
class LoginResult:
    user: User
    tokens: TokenBundle


class AuthService:
    """Session gate plus the login, refresh and logout flows.

    Revocation state lives entirely in ``revocation``; nothing here is mutated
    per request.
    """

    def __init__(
        self,
        store: UserStore,
        revocation: RevocationStore,
        tokens: TokenService,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.revocation = revocation
        self.tokens = tokens
        self.clock = clock or tokens.clock
        self._pwd_hasher = PasswordHasher(type=Type.ID)
        self._dummy_hash: Optional[str] = None
        self.logger = logger

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    # -- passwords -------------------------------------------------------

    def _hash_password(self, password: str) -> Tuple[str, str]:
        return self._pwd_hasher.hash(password), PASSWORD_ALGO

    def save_password(self, user_id: str, password: str) -> None:
        """Hash and save a new password for a user."""
        pwd_hash, algo = self._hash_password(password)
        self.store.save_password(user_id, pwd_hash, algo)

    def register_user(self, username: str, password: str, email: str = "") -> User:
        user = self.store.create_user(username, email)
        self.save_password(user.id, password)
        return user

    def verify_password(self, user_id: str, password: str) -> bool:
        """Verify a user's password against stored hash."""
        record = self.store.get_password_record(user_id)
        if not record:
            self.logger.warning("password_record_missing", user_id=user_id)
            return False
        stored_hash, algo = record
        if algo != PASSWORD_ALGO:
            self.logger.warning("password_algo_mismatch", user_id=user_id, algo=algo)
            return False
        try:
            return self._pwd_hasher.verify(stored_hash, password)
        except (InvalidHash, VerifyMismatchError):
            self.logger.warning("password_verification_failed", user_id=user_id)
            return False

    def _equalize_timing(self, password: str) -> None:
        # Unknown usernames still pay for one argon2 verification
        if self._dummy_hash is None:
            self._dummy_hash = self._pwd_hasher.hash("gourmoire-timing-equalizer")
        try:
            self._pwd_hasher.verify(self._dummy_hash, password)
        except (InvalidHash, VerifyMismatchError):
            pass

    # -- gates -----------------------------------------------------------

    async def _check_revocation(
        self, token: str, payload: TokenPayload, *, revoked_message: str
    ) -> None:
        if await self.revocation.get(blacklist_key(token)) is not None:
            self.logger.info(
                "token_blacklisted",
                user_id=payload.user_id,
                token_type=payload.type.value,
            )
            raise TokenInvalidError(revoked_message, detail={"reason": "revoked"})

        watermark = await self.revocation.get(logout_key(payload.user_id))
        if watermark is None:
            return
        try:
            watermark_ms = int(watermark)
        except ValueError:
            self.logger.warning(
                "logout_watermark_unparseable", user_id=payload.user_id
            )
            return
        if payload.iat * 1000 < watermark_ms:
            self.logger.info(
                "token_predates_logout",
                user_id=payload.user_id,
                token_type=payload.type.value,
                issued_at=payload.iat,
                watermark_ms=watermark_ms,
            )
            raise TokenInvalidError(
                "Token has been invalidated", detail={"reason": "logged_out"}
            )

    async def authenticate(self, authorization: Optional[str]) -> IdentityContext:
        """Resolve an ``Authorization`` header value to an identity or raise."""
        if not authorization:
            raise AuthenticationError("Authorization header is required")
        token = extract_bearer(authorization)
        if token is None:
            raise AuthenticationError(
                "Invalid authorization header format. Use: Bearer <token>"
            )
        payload = self.tokens.verify_or_raise(token, TokenType.ACCESS)
        await self._check_revocation(
            token, payload, revoked_message="Token has been revoked"
        )
        return IdentityContext(
            id=payload.user_id,
            username=payload.username,
            email=payload.email,
            token=token,
        )

    async def authenticate_optional(
        self, authorization: Optional[str]
    ) -> Optional[IdentityContext]:
        if not authorization:
            return None
        try:
            return await self.authenticate(authorization)
        except ServiceError as exc:
            self.logger.debug(
                "optional_auth_ignored",
                error_code=exc.error_code.value,
                status_code=exc.status_code,
            )
            return None

    def validate_refresh(self, refresh_token: object) -> RefreshGrant:
        if not refresh_token or not isinstance(refresh_token, str):
            raise BadRequestError(
                "Refresh token is required", error_code=ErrorCode.TOKEN_INVALID
            )
        payload = self.tokens.verify_or_raise(refresh_token, TokenType.REFRESH)
        return RefreshGrant(token=refresh_token, payload=payload)

    # -- flows -----------------------------------------------------------

    def _issue_bundle(self, user: User, remember_me: bool) -> TokenBundle:
        identity = TokenIdentity(user.id, user.username, user.email or "")
        return TokenBundle(
            access_token=self.tokens.issue_access(identity, remember_me),
            refresh_token=self.tokens.issue_refresh(identity, remember_me),
            expires_in=lifetime_seconds(remember_me),
            remember_me=remember_me,
        )

    async def _record_refresh(
        self, user_id: str, refresh_token: str, remember_me: bool
    ) -> None:
        await self.revocation.put(
            refresh_record_key(user_id, self._now_ms()),
            refresh_token,
            token_lifetime(TokenType.REFRESH, remember_me),
        )

    async def login(
        self, username: Optional[str], password: Optional[str], remember_me: bool = False
    ) -> LoginResult:
        if not username or not password:
            raise BadRequestError(
                "Username and password are required",
                error_code=ErrorCode.INVALID_CREDENTIALS,
            )
        user = self.store.get_user_by_username(username)
        if user is None or not user.is_active:
            self._equalize_timing(password)
            self.logger.info("login_rejected", reason="unknown_user")
            raise InvalidCredentialsError("Invalid username or password")
        if not self.verify_password(user.id, password):
            self.logger.info("login_rejected", reason="bad_password", user_id=user.id)
            raise InvalidCredentialsError("Invalid username or password")

        bundle = self._issue_bundle(user, remember_me)
        await self._record_refresh(user.id, bundle.refresh_token, remember_me)
        self.logger.info("login_succeeded", user_id=user.id, remember_me=remember_me)
        return LoginResult(user=user, tokens=bundle)

    async def refresh(self, grant: RefreshGrant) -> TokenBundle:
        """Rotate a refresh credential into a new access/refresh pair."""
        payload = grant.payload
        await self._check_revocation(
            grant.token, payload, revoked_message="Refresh token has been revoked"
        )
        user = self.store.get_user(payload.user_id)
        if user is None:
            self.logger.warning("refresh_subject_missing", user_id=payload.user_id)
            raise UserNotFoundError("User not found")

        # Remember-me is carried forward from the presented credential's lifetime
        remember_me = is_remember_me(payload)
        bundle = self._issue_bundle(user, remember_me)
        await self.revocation.put(
            blacklist_key(grant.token), BLACKLIST_SENTINEL, REFRESH_BLACKLIST_TTL
        )
        await self._record_refresh(user.id, bundle.refresh_token, remember_me)
        self.logger.info("refresh_token_rotated", user_id=user.id, remember_me=remember_me)
        return bundle

    async def logout(
        self, identity: IdentityContext, refresh_token: Optional[str] = None
    ) -> None:
        """Blacklist presented credentials and move the subject's logout watermark.

        The writes are independent. A failure stops the sequence without undoing
        earlier writes; the error is logged with what was applied and re-raised.
        """
        writes = [
            (
                "access_token_revoked",
                blacklist_key(identity.token),
                BLACKLIST_SENTINEL,
                ACCESS_BLACKLIST_TTL,
            )
        ]
        if refresh_token and isinstance(refresh_token, str):
            writes.append(
                (
                    "refresh_token_revoked",
                    blacklist_key(refresh_token),
                    BLACKLIST_SENTINEL,
                    REFRESH_BLACKLIST_TTL,
                )
            )
        writes.append(
            (
                "logout_watermark_written",
                logout_key(identity.id),
                str(self._now_ms()),
                LOGOUT_WATERMARK_TTL,
            )
        )

        applied: list[str] = []
        for event, key, value, ttl in writes:
            try:
                await self.revocation.put(key, value, ttl)
            except StoreUnavailable:
                self.logger.error(
                    "logout_partially_applied",
                    user_id=identity.id,
                    applied=applied,
                    failed=event,
                )
                raise
            applied.append(event)
            self.logger.info(event, user_id=identity.id)
