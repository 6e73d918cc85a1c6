from __future__ import annotations

import os
import secrets
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from gourmoire.logging import get_logger

logger = get_logger(__name__)

_DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000"]


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the token service."""

    jwt_secret: str = env_field(
        None,
        "JWT_SECRET",
        description="Signing secret for access credentials",
        validate_default=True,
    )
    jwt_refresh_secret: str = env_field(
        None,
        "JWT_REFRESH_SECRET",
        description="Signing secret for refresh credentials; must differ from JWT_SECRET",
        validate_default=True,
    )
    redis_url: str | None = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_socket_timeout: float = env_field(5.0, "REDIS_SOCKET_TIMEOUT")
    allow_redis_fallback_dev: bool = env_field(False, "ALLOW_REDIS_FALLBACK_DEV")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allow the in-memory revocation store and runtime resets.",
    )
    cors_allow_origins: list[str] = env_field(
        list(_DEFAULT_CORS_ORIGINS), "CORS_ALLOW_ORIGINS"
    )
    # Initial account created at startup when a password is configured
    seed_username: str = env_field("user", "SEED_USERNAME")
    seed_password: str | None = env_field(None, "SEED_PASSWORD")
    seed_email: str = env_field("", "SEED_EMAIL")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("redis_url")
    @classmethod
    def _empty_redis_url(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("jwt_secret", "jwt_refresh_secret", mode="before")
    @classmethod
    def _ensure_secret(cls, value: str | None, info) -> str:
        if value:
            return value
        # Ephemeral secret: credentials stop verifying after a restart
        logger.warning(
            "signing_secret_generated",
            setting=info.field_name,
            message="No secret configured; generated a per-process secret",
        )
        return secrets.token_urlsafe(64)

    @model_validator(mode="after")
    def _require_distinct_secrets(self) -> "Settings":
        if self.jwt_secret == self.jwt_refresh_secret:
            if not self.test_mode:
                raise ValueError(
                    "JWT_SECRET and JWT_REFRESH_SECRET must differ; "
                    "cross-type credential rejection relies on distinct secrets"
                )
            logger.warning("signing_secrets_identical")
        return self


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
