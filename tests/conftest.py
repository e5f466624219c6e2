"""Pytest fixtures for forum sync engine tests."""

from typing import List

import pytest
import pytest_asyncio

from helpers import TEST_SECRET, FakeClock, FakeStore, make_engine
from identity import SessionManager
from security import SecurityManager
from server import create_app
from storage import LocalStorage


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def redirects() -> List[str]:
    return []


@pytest.fixture
def security_manager() -> SecurityManager:
    return SecurityManager(secret_key=TEST_SECRET)


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "local.db"))


@pytest_asyncio.fixture
async def session(storage, redirects, security_manager) -> SessionManager:
    session = SessionManager(storage, on_redirect=redirects.append)
    await session.set_token(security_manager.create_access_token("alice", "alice@example.com"))
    return session


@pytest_asyncio.fixture
async def engine(store, session, clock):
    engine = make_engine(store, session, clock)
    yield engine
    await engine.aclose()


@pytest_asyncio.fixture
async def reference_app(tmp_path):
    # ASGITransport does not run the lifespan, so create the tables here
    app = create_app(db_path=str(tmp_path / "store.db"), secret_key=TEST_SECRET)
    await app.state.db.initialize()
    return app
