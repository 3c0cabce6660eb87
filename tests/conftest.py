"""Shared fixtures: fake backend over an ASGI transport, memory storage."""

import httpx
import pytest

from catalog_sync import MemoryStorage, Settings, build_coordinator
from fake_backend import create_app

API_URL = "http://testserver/api"


class RecordingNotifier:
    """Collects notifications as (level, message) pairs."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def levels(self, level: str) -> list[str]:
        return [message for lvl, message in self.messages if lvl == level]


@pytest.fixture
def settings(tmp_path):
    return Settings(api_url=API_URL, storage_dir=tmp_path)


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def store(app):
    return app.state.store


@pytest.fixture
async def http_client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
        yield client


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def coordinator(settings, storage, http_client, notifier):
    return build_coordinator(settings, storage=storage, http_client=http_client, notifier=notifier)


@pytest.fixture
async def admin(coordinator):
    """A coordinator logged in as the admin user with the catalog loaded."""
    await coordinator.login("admin@example.com", "secret")
    return coordinator

