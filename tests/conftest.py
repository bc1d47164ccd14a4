"""Shared pytest fixtures for pagetree tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from pagetree.content.router import get_content_service
from pagetree.content.service import ContentService
from pagetree.db.connection import Database
from pagetree.main import app
from pagetree.tree.router import get_tree_service
from pagetree.tree.service import TreeService
from tests.fixtures import RecordingNotifier


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
def notifier():
    """Notifier that records every change it is told about."""
    return RecordingNotifier()


@pytest.fixture
async def service(db, notifier):
    """TreeService backed by the in-memory database."""
    return TreeService(db, notifier=notifier)


@pytest.fixture
async def content_service(db, notifier):
    """ContentService backed by the in-memory database."""
    return ContentService(db, notifier=notifier)


@pytest.fixture
async def client(service, content_service):
    """Async test client with in-memory DB wired into the app."""
    app.dependency_overrides[get_tree_service] = lambda: service
    app.dependency_overrides[get_content_service] = lambda: content_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
