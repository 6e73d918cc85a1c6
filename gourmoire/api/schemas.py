from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# Longest credential accepted in a request body; issued credentials are far shorter
MAX_TOKEN_LENGTH = 8192


class _WireModel(BaseModel):
    """Models whose JSON field names are camelCase on the wire."""

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class ErrorBody(BaseModel):
    success: Literal[False] = False
    message: str
    code: str


class LoginRequest(_WireModel):
    # Optional so missing fields reach the login flow and get its error code
    username: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=1024)
    remember_me: bool = Field(default=False, alias="rememberMe")


class UserSummary(BaseModel):
    id: str
    username: str
    email: str = ""


class LoginResponse(_WireModel):
    success: Literal[True] = True
    user: UserSummary
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_in: int = Field(alias="expiresIn")
    message: str = "Login successful"


class RefreshResponse(_WireModel):
    success: Literal[True] = True
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_in: int = Field(alias="expiresIn")


class LogoutResponse(BaseModel):
    success: Literal[True] = True
    message: str = "Successfully logged out"


class ProfileUser(_WireModel):
    id: str
    username: str
    email: str = ""
    created_at: datetime = Field(alias="createdAt")


class ProfileResponse(BaseModel):
    success: Literal[True] = True
    user: ProfileUser


class HealthResponse(_WireModel):
    status: Literal["ok", "unhealthy"]
    revocation_store: str = Field(alias="revocationStore")
    timestamp: datetime


class ApiInfoResponse(_WireModel):
    name: str = "Gourmoire API"
    version: str
    description: str = "JWT-authenticated API for recipe management"
    authentication: str = "JWT-based"
    endpoints: Dict[str, List[str]]
    authenticated_as: Optional[str] = Field(default=None, alias="authenticatedAs")
