"""FastAPI dependencies that run the session gates.

Each gate stores its outcome on ``request.state`` so handlers and middleware
see the same identity.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Header, Request

from gourmoire.api.schemas import MAX_TOKEN_LENGTH
from gourmoire.service.auth import IdentityContext, RefreshGrant
from gourmoire.service.runtime import get_runtime


async def read_json_body(request: Request) -> dict[str, Any]:
    """Parse the request body as a JSON object, or ``{}`` when it is not one."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def body_refresh_token(body: dict[str, Any]) -> Optional[str]:
    token = body.get("refreshToken")
    if not isinstance(token, str) or len(token) > MAX_TOKEN_LENGTH:
        return None
    return token


async def require_auth(
    request: Request, authorization: Optional[str] = Header(None)
) -> IdentityContext:
    runtime = get_runtime()
    ctx = await runtime.auth.authenticate(authorization)
    request.state.auth = ctx
    return ctx


async def optional_auth(
    request: Request, authorization: Optional[str] = Header(None)
) -> Optional[IdentityContext]:
    runtime = get_runtime()
    ctx = await runtime.auth.authenticate_optional(authorization)
    request.state.auth = ctx
    return ctx


async def refresh_grant(request: Request) -> RefreshGrant:
    runtime = get_runtime()
    body = await read_json_body(request)
    grant = runtime.auth.validate_refresh(body_refresh_token(body))
    request.state.refresh_payload = grant.payload
    return grant
