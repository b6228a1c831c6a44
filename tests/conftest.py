"""Pytest fixtures shared by the whole suite.

Fixtures:
    - fake_db: empty in-memory Firestore
    - test_settings: Settings pointing at a fake push endpoint
    - expo: scripted Expo push service
    - http_client: httpx client routed to `expo`
    - ctx: AppContext wired with the above
    - api_client: FastAPI TestClient using the same fakes

Document factories live in tests/mocks/factories.py.
"""
import asyncio

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from firebase_admin import firestore

from src.core.config import Settings
from src.core.context import AppContext, get_app_context
from src.main import app
from tests.mocks import ExpoPushStub, FakeFirestore, fake_async_transactional


@pytest.fixture(autouse=True)
def fake_transactions(monkeypatch):
    """Run Firestore transactions against the in-memory store."""
    monkeypatch.setattr(firestore, "async_transactional", fake_async_transactional)


@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def test_settings():
    # One chunk in flight at a time keeps request order deterministic
    return Settings(
        EXPO_PUSH_URL="https://push.test/--/api/v2/push/send",
        EXPO_ACCESS_TOKEN=None,
        EXPO_PUSH_CHUNK_SIZE=100,
        EXPO_PUSH_TIMEOUT_SECONDS=5.0,
        EXPO_PUSH_MAX_CONCURRENT_CHUNKS=1,
        PARTICIPANTS_BACKFILL_ENABLED=False,
    )


@pytest.fixture
def expo():
    return ExpoPushStub()


@pytest_asyncio.fixture
async def http_client(expo):
    client = expo.client()
    yield client
    await client.aclose()


@pytest.fixture
def ctx(fake_db, test_settings, http_client):
    return AppContext(settings=test_settings, db=fake_db, http_client=http_client)


@pytest.fixture
def api_client(fake_db, test_settings, expo):
    """TestClient against the app with the lifespan skipped and the context injected."""
    client = expo.client()
    context = AppContext(settings=test_settings, db=fake_db, http_client=client)
    app.dependency_overrides[get_app_context] = lambda: context
    yield TestClient(app)
    app.dependency_overrides.clear()
    # Sync tests run outside any event loop
    asyncio.run(client.aclose())
