"""Tests for settings loading and runtime wiring."""

import asyncio

import pytest
from pydantic import ValidationError

from gourmoire.config import Settings, get_settings, reset_settings_cache
from gourmoire.service import runtime as runtime_module
from gourmoire.storage.revocation import MemoryRevocationStore


class TestSettings:
    def test_generates_secrets_when_unset(self):
        settings = Settings(test_mode=True)
        assert settings.jwt_secret
        assert settings.jwt_refresh_secret
        assert settings.jwt_secret != settings.jwt_refresh_secret

    def test_identical_secrets_rejected_outside_test_mode(self):
        with pytest.raises(ValidationError):
            Settings(jwt_secret="same", jwt_refresh_secret="same", test_mode=False)

    def test_identical_secrets_tolerated_in_test_mode(self):
        settings = Settings(jwt_secret="same", jwt_refresh_secret="same", test_mode=True)
        assert settings.jwt_secret == settings.jwt_refresh_secret

    def test_cors_origins_split(self):
        settings = Settings(
            jwt_secret="a",
            jwt_refresh_secret="b",
            cors_allow_origins="http://a.test, http://b.test,",
        )
        assert settings.cors_allow_origins == ["http://a.test", "http://b.test"]

    def test_default_cors_origins(self):
        settings = Settings(jwt_secret="a", jwt_refresh_secret="b")
        assert settings.cors_allow_origins == [
            "http://localhost:5173",
            "http://localhost:3000",
        ]

    def test_empty_redis_url_disables_redis(self):
        settings = Settings(jwt_secret="a", jwt_refresh_secret="b", redis_url="")
        assert settings.redis_url is None

    def test_from_env_reads_environment(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "env-access")
        monkeypatch.setenv("JWT_REFRESH_SECRET", "env-refresh")
        monkeypatch.setenv("REDIS_SOCKET_TIMEOUT", "2.5")
        monkeypatch.setenv("SEED_USERNAME", "chef")
        settings = Settings.from_env()
        assert settings.jwt_secret == "env-access"
        assert settings.jwt_refresh_secret == "env-refresh"
        assert settings.redis_socket_timeout == 2.5
        assert settings.seed_username == "chef"

    def test_get_settings_is_cached(self):
        reset_settings_cache()
        assert get_settings() is get_settings()


class TestRuntime:
    def test_test_mode_uses_memory_store_and_seeds_user(self):
        rt = runtime_module.get_runtime()
        assert isinstance(rt.revocation, MemoryRevocationStore)
        assert rt.store.get_user_by_username("user") is not None

    def test_get_runtime_is_singleton(self):
        assert runtime_module.get_runtime() is runtime_module.get_runtime()

    def test_redis_required_outside_test_mode(self, monkeypatch):
        monkeypatch.setenv("TEST_MODE", "false")
        monkeypatch.setenv("ALLOW_REDIS_FALLBACK_DEV", "false")
        monkeypatch.setenv("REDIS_URL", "")
        reset_settings_cache()
        with pytest.raises(RuntimeError):
            runtime_module.Runtime()

    def test_unreachable_redis_falls_back_in_dev(self, monkeypatch):
        monkeypatch.setenv("TEST_MODE", "false")
        monkeypatch.setenv("ALLOW_REDIS_FALLBACK_DEV", "true")
        monkeypatch.setenv("REDIS_URL", "redis://127.0.0.1:1/0")
        reset_settings_cache()
        rt = runtime_module.Runtime()
        assert isinstance(rt.revocation, MemoryRevocationStore)

    def test_reset_refused_outside_test_mode(self, monkeypatch):
        monkeypatch.setenv("TEST_MODE", "false")
        monkeypatch.setenv("ALLOW_REDIS_FALLBACK_DEV", "true")
        with pytest.raises(RuntimeError):
            runtime_module.reset_runtime_for_tests()

    async def test_close_failure_inside_loop_is_logged(self, monkeypatch):
        events = []

        class _Recorder:
            def warning(self, event, **kwargs):
                events.append((event, kwargs))

            def debug(self, event, **kwargs):
                events.append((event, kwargs))

        class _BrokenRuntime:
            async def close(self):
                raise ConnectionError("pool already gone")

        monkeypatch.setattr(runtime_module, "logger", _Recorder())
        runtime_module._close_quietly(_BrokenRuntime())
        assert len(runtime_module._pending_closes) == 1
        for _ in range(3):
            await asyncio.sleep(0)
        assert runtime_module._pending_closes == set()
        assert events == [("runtime_close_failed", {"error": "pool already gone"})]

    def test_mask_url_password(self):
        masked = runtime_module._mask_url_password("redis://:hunter2@cache:6379/0")
        assert "hunter2" not in masked
        assert masked == "redis://:***@cache:6379/0"
