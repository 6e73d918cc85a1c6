from __future__ import annotations

import asyncio
import threading
import time
from typing import Optional, Union
from urllib.parse import urlparse, urlunparse

from gourmoire.config import get_settings, reset_settings_cache
from gourmoire.logging import get_logger
from gourmoire.service.auth import AuthService
from gourmoire.service.tokens import Clock, TokenService
from gourmoire.storage.errors import ConstraintViolation
from gourmoire.storage.memory import MemoryStore
from gourmoire.storage.revocation import MemoryRevocationStore, RedisRevocationStore

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Replace the password component of a URL with ``***`` for logging."""
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return "***url_parse_error***"
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    netloc = f"{parsed.username or ''}:***@{netloc}"
    return urlunparse(parsed._replace(netloc=netloc))


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self, *, clock: Optional[Clock] = None):
        self.settings = get_settings()
        self.clock: Clock = clock or time.time
        logger.info("runtime_init_started", test_mode=self.settings.test_mode)

        self.store = MemoryStore()
        self.revocation: Union[RedisRevocationStore, MemoryRevocationStore]
        self.revocation = self._build_revocation_store()

        self.tokens = TokenService(
            self.settings.jwt_secret,
            self.settings.jwt_refresh_secret,
            clock=self.clock,
        )
        self.auth = AuthService(
            self.store, self.revocation, self.tokens, clock=self.clock
        )
        self._seed_initial_user()

        logger.info(
            "runtime_initialized",
            revocation_store=self.revocation.backend,
            seeded=self.store.get_user_by_username(self.settings.seed_username)
            is not None,
        )

    def _build_revocation_store(
        self,
    ) -> Union[RedisRevocationStore, MemoryRevocationStore]:
        redis_error: Exception | None = None
        if self.settings.redis_url:
            try:
                store = RedisRevocationStore(
                    self.settings.redis_url,
                    socket_timeout=self.settings.redis_socket_timeout,
                )
                store.verify_connection()
                return store
            except Exception as exc:
                redis_error = exc

        if not self.settings.test_mode and not self.settings.allow_redis_fallback_dev:
            raise RuntimeError(
                "Redis is required for token revocation; start Redis or set "
                "TEST_MODE=true/ALLOW_REDIS_FALLBACK_DEV=true for local fallback."
            ) from redis_error

        fallback_mode = (
            "TEST_MODE" if self.settings.test_mode else "ALLOW_REDIS_FALLBACK_DEV"
        )
        logger.warning(
            "redis_disabled_fallback",
            redis_url=_mask_url_password(self.settings.redis_url),
            error=str(redis_error) if redis_error else "redis_url_missing",
            message=(
                f"Running without Redis under {fallback_mode}; blacklist entries and "
                "logout watermarks are process-local and lost on restart."
            ),
            mode=fallback_mode,
        )
        return MemoryRevocationStore()

    def _seed_initial_user(self) -> None:
        password = self.settings.seed_password
        if not password:
            return
        try:
            user = self.auth.register_user(
                self.settings.seed_username, password, self.settings.seed_email
            )
        except ConstraintViolation as exc:
            logger.info("seed_user_exists", field=exc.field)
            return
        logger.info("seed_user_created", user_id=user.id, username=user.username)

    async def close(self) -> None:
        await self.revocation.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Double-checked locking: the unlocked read is the fast path once the
    runtime exists; the locked re-check guards creation.
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


_pending_closes: set[asyncio.Task] = set()


def _close_finished(task: asyncio.Task) -> None:
    _pending_closes.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("runtime_close_failed", error=str(exc))


def _close_quietly(previous: Runtime) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    try:
        if loop is not None:
            task = loop.create_task(previous.close())
            _pending_closes.add(task)
            task.add_done_callback(_close_finished)
        else:
            asyncio.run(previous.close())
    except Exception as exc:
        logger.debug("runtime_close_failed", error=str(exc))


def reset_runtime_for_tests(clock: Optional[Clock] = None) -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        if runtime is not None:
            _close_quietly(runtime)
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime(clock=clock)
        return runtime
