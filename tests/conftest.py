"""Pytest configuration and fixtures for consul-lock tests"""

from __future__ import annotations

import pytest

from consul_lock.core.config import BackendConfig, LockOptions, SessionCreateMode
from consul_lock.core.locks import ConsulKVBackend, LockCoordinator
from consul_fakes import FakeConsul, ScriptedConsul, mounted_session


@pytest.fixture
def fake_consul():
    """In-memory coordination backend"""
    return FakeConsul()


@pytest.fixture
def http_session(fake_consul):
    return mounted_session(fake_consul)


@pytest.fixture
def make_coordinator(fake_consul):
    """Build coordinators that talk to the shared fake, each on its own HTTP session"""

    def _make(
        *,
        blocking: bool = True,
        lock_delay: int = 15,
        session_mode: SessionCreateMode = SessionCreateMode.STRUCTURED,
        token: str | None = None,
    ) -> LockCoordinator:
        config = BackendConfig(wait="1s", session_mode=session_mode, token=token)
        backend = ConsulKVBackend(config, session=mounted_session(fake_consul))
        return LockCoordinator(backend, LockOptions(blocking=blocking, lock_delay=lock_delay))

    return _make


@pytest.fixture
def scripted_coordinator():
    """Build a coordinator backed by a ScriptedConsul"""

    def _make(*script, blocking: bool = True, **config_overrides) -> tuple[LockCoordinator, ScriptedConsul]:
        adapter = ScriptedConsul(*script)
        config = BackendConfig(wait="1s", **config_overrides)
        backend = ConsulKVBackend(config, session=mounted_session(adapter))
        return LockCoordinator(backend, LockOptions(blocking=blocking)), adapter

    return _make


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from backend/logging environment variables and stray .env files"""
    for name in (
        "CONSUL_HTTP_ADDR",
        "CONSUL_HTTP_TOKEN",
        "CONSUL_LOCK_PREFIX",
        "CONSUL_LOCK_WAIT",
        "CONSUL_LOCK_SESSION_MODE",
        "DEBUG",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch
