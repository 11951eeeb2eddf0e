"""API test fixtures: the real app over an in-memory database."""

from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from onboarding_engine.api.app import create_app
from onboarding_engine.api.auth import create_access_token
from onboarding_engine.models import User


class RecordingNotifier:
    """Keeps notifications instead of delivering them."""

    def __init__(self) -> None:
        self.sent = []

    async def notify_user(self, user_id, notification) -> bool:
        self.sent.append((user_id, notification))
        return True


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app(settings, session_factory, notifier):
    return create_app(settings=settings, session_factory=session_factory, notifier=notifier)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app without a network."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth(settings):
    """Build Authorization headers for a user."""

    def headers(user: User, expires_delta: timedelta | None = None) -> dict[str, str]:
        token = create_access_token(user.id, settings, expires_delta)
        return {"Authorization": f"Bearer {token}"}

    return headers


@pytest.fixture
def token_header():
    def headers(token: str) -> dict[str, str]:
        return {"X-Onboarding-Token": token}

    return headers
