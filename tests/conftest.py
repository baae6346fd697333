"""
tests/conftest.py -- Shared test fixtures for AdminAuth.

This module provides:
  - engine / services: a fresh SQLite database per test with the full
    ServiceRegistry wired on top (RecordingMailer instead of LogMailer)
  - client: TestClient over the real FastAPI app with the lifespan patched to
    use those services
  - make_user(): helper that inserts an active administrator with a password

Design: each test gets its own SQLite file under tmp_path. TestClient runs
sync route handlers and background tasks in worker threads, and the
bootstrap property test spawns its own threads; a file database is shared
across all of them without the table-lock surprises of shared-cache memory.

DEBUG must be set before any auth/core import so get_settings() generates a
SECRET_KEY instead of raising. ALLOWED_HOSTS must include the TestClient host.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import User
from auth.services import ServiceRegistry, build_services
from auth.store import make_engine
from auth.tokens import hash_password
from core.config import get_settings

PASSWORD = "Correct-horse1"


class RecordingMailer:
    """Mailer that keeps (user, reset_url) pairs instead of sending anything."""

    def __init__(self) -> None:
        self.sent: list[tuple[User, str]] = []

    def send_reset(self, user: User, reset_url: str) -> None:
        self.sent.append((user, reset_url))


def make_user(
    services: ServiceRegistry,
    email: str = "kai@example.com",
    password: str = PASSWORD,
    username: str | None = "kai",
    is_active: bool = True,
) -> User:
    """Insert an administrator with a bcrypt password and return the stored record."""
    uid = services.users.create_user(
        User(
            email=email,
            username=username,
            firstname="Kai",
            lastname="Moreno",
            hashed_password=hash_password(password),
            is_active=is_active,
        )
    )
    return services.users.get_by_id(uid)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'adminauth_test.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def services(engine, mailer) -> ServiceRegistry:
    return build_services(get_settings(), engine, mailer=mailer)


def _patch_lifespan(services: ServiceRegistry):
    """Return a lifespan that wires test services into app.state.

    purge_task is a long-sleeping real task so shutdown's .cancel() works.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.services = services
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def client(services) -> Generator[TestClient, None, None]:
    """TestClient over the real app, isolated database, rate limits off."""
    app.router.lifespan_context = _patch_lifespan(services)
    limiter.enabled = False
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client
    limiter.enabled = True


@pytest.fixture
def user_factory(services):
    """Return make_user() bound to this test's services."""

    def _factory(**kwargs) -> User:
        return make_user(services, **kwargs)

    return _factory
