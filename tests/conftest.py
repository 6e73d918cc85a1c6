import asyncio
import inspect
import os
import sys
from pathlib import Path

# Environment must be fixed before any gourmoire import reads settings
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("ALLOW_REDIS_FALLBACK_DEV", "true")
# Empty URL selects the in-memory revocation store
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("JWT_SECRET", "test-access-secret-for-testing-only-do-not-use")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-for-testing-only-do-not-use")
os.environ.setdefault("SEED_USERNAME", "user")
os.environ.setdefault("SEED_PASSWORD", "password123")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from gourmoire.service.runtime import reset_runtime_for_tests  # noqa: E402

# 2023-11-14T22:13:20Z
FIXED_EPOCH = 1_700_000_000.0


class FakeClock:
    """Settable wall clock in epoch seconds."""

    def __init__(self, start: float = FIXED_EPOCH):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def runtime(clock):
    """Runtime singleton whose token and auth services read ``clock``."""
    return reset_runtime_for_tests(clock=clock)


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
