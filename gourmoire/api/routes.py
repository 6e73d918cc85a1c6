from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Path, Request

from gourmoire.api.deps import (
    body_refresh_token,
    optional_auth,
    read_json_body,
    refresh_grant,
    require_auth,
)
from gourmoire.api.schemas import (
    ApiInfoResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    ProfileResponse,
    ProfileUser,
    RefreshResponse,
    UserSummary,
)
from gourmoire.logging import get_logger
from gourmoire.service.auth import IdentityContext, RefreshGrant
from gourmoire.service.errors import ErrorCode, ServiceError, UserNotFoundError
from gourmoire.service.runtime import get_runtime
from gourmoire.storage.models import User

logger = get_logger(__name__)

API_VERSION = "1.0.0"

router = APIRouter(prefix="/api")

_ENDPOINTS = {
    "auth": [
        "POST /api/auth/login",
        "POST /api/auth/logout (protected)",
        "POST /api/auth/refresh",
    ],
    "user": [
        "GET /api/user/profile (protected)",
        "GET /api/user/:username (protected)",
    ],
    "utility": ["GET /api/health", "GET /api"],
}


def _profile(user: User) -> ProfileResponse:
    return ProfileResponse(
        user=ProfileUser(
            id=user.id,
            username=user.username,
            email=user.email or "",
            created_at=user.created_at,
        )
    )


@router.get("/health", response_model=HealthResponse, tags=["utility"])
async def health():
    runtime = get_runtime()
    healthy = True
    try:
        await runtime.revocation.get("health:ping")
    except ServiceError:
        healthy = False
    return HealthResponse(
        status="ok" if healthy else "unhealthy",
        revocation_store=runtime.revocation.backend if healthy else "disconnected",
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/auth/login", response_model=LoginResponse, tags=["auth"])
async def login(body: LoginRequest):
    """Exchange a username and password for an access/refresh credential pair.

    Raises:
        400: If username or password is missing
        401: If the credentials are rejected
    """
    runtime = get_runtime()
    result = await runtime.auth.login(body.username, body.password, body.remember_me)
    return LoginResponse(
        user=UserSummary(
            id=result.user.id,
            username=result.user.username,
            email=result.user.email or "",
        ),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=result.tokens.expires_in,
    )


@router.post("/auth/refresh", response_model=RefreshResponse, tags=["auth"])
async def refresh(grant: RefreshGrant = Depends(refresh_grant)):
    """Rotate a refresh credential.

    The presented refresh credential is blacklisted once the new pair is minted,
    so each refresh credential can be exchanged only once.
    """
    runtime = get_runtime()
    bundle = await runtime.auth.refresh(grant)
    return RefreshResponse(
        access_token=bundle.access_token,
        refresh_token=bundle.refresh_token,
        expires_in=bundle.expires_in,
    )


@router.post("/auth/logout", response_model=LogoutResponse, tags=["auth"])
async def logout(request: Request, identity: IdentityContext = Depends(require_auth)):
    runtime = get_runtime()
    body = await read_json_body(request)
    await runtime.auth.logout(identity, body_refresh_token(body))
    return LogoutResponse()


@router.get("/user/profile", response_model=ProfileResponse, tags=["user"])
async def profile(identity: IdentityContext = Depends(require_auth)):
    runtime = get_runtime()
    user = runtime.store.get_user_by_username(identity.username)
    if user is None:
        raise UserNotFoundError("User not found")
    return _profile(user)


@router.get("/user/{username}", response_model=ProfileResponse, tags=["user"])
async def user_by_username(
    username: str = Path(..., max_length=255),
    identity: IdentityContext = Depends(require_auth),
):
    if identity.username != username:
        raise ServiceError(
            "Access denied - can only view own profile",
            status_code=403,
            error_code=ErrorCode.UNAUTHORIZED,
        )
    runtime = get_runtime()
    user = runtime.store.get_user_by_username(username)
    if user is None:
        raise UserNotFoundError("User not found")
    return _profile(user)


@router.get("", response_model=ApiInfoResponse, tags=["utility"])
async def api_info(identity: Optional[IdentityContext] = Depends(optional_auth)):
    return ApiInfoResponse(
        version=API_VERSION,
        endpoints=_ENDPOINTS,
        authenticated_as=identity.username if identity else None,
    )
