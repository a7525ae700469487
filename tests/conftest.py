"""Shared pytest fixtures for calltree tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from calltree.main import app
from calltree.models import create_initial_state
from calltree.sessions.store import SessionStore
from calltree.trees.machine import TreeStateMachine
from calltree.trees.router import get_tree_service
from calltree.trees.service import TreeService
from tests.fixtures import FAST_FLUSH


@pytest.fixture
def sessions_dir(tmp_path):
    """Session directory inside a throwaway data dir (not created yet)."""
    return tmp_path / "sessions"


@pytest.fixture
def machine():
    """State machine over a fresh root-only tree."""
    return TreeStateMachine(create_initial_state("session-test"))


@pytest.fixture
def store(sessions_dir):
    """SessionStore with a short debounce window. init_session not yet called."""
    return SessionStore(sessions_dir, flush_delay=FAST_FLUSH)


@pytest.fixture
async def service(tmp_path):
    """TreeService with an initialized session under tmp_path/sessions."""
    svc = await TreeService.create(tmp_path, flush_delay=FAST_FLUSH)
    yield svc
    await svc.shutdown()


@pytest.fixture
async def client(service):
    """Async test client with the service wired into the app."""
    app.dependency_overrides[get_tree_service] = lambda: service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
