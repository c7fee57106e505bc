"""
Pytest fixtures for fluxdigest tests.
"""

import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from fluxdigest.config import state
from fluxdigest.database import Database
from fluxdigest.rate_limit import limiter
from fluxdigest.server import app
from fluxdigest.services import (
    DigestScheduler,
    DigestService,
    JobTracker,
    PushService,
    TaskRunResult,
)
from fluxdigest.vault import CredentialVault

from fakes import (
    FIXED_NOW,
    SAMPLE_ENTRIES,
    FakeChat,
    FakeMinifluxClient,
    RecordingTransport,
    never_wake,
    store_connections,
)


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        yield Path(f.name)
    # Cleanup
    if os.path.exists(f.name):
        os.unlink(f.name)


@pytest.fixture
def test_db(temp_db_path):
    """Create a test database instance."""
    db = Database(temp_db_path)
    yield db


@pytest.fixture(scope="session")
def vault():
    return CredentialVault("test-secret", "test-salt")


@pytest.fixture
def fake_source():
    return FakeMinifluxClient(SAMPLE_ENTRIES)


@pytest.fixture
def fake_chat():
    return FakeChat("ABC")


@pytest.fixture
def webhook():
    return RecordingTransport()


@pytest.fixture
def task_runner():
    """Runner for scheduled tasks; succeeds without generating anything."""
    return AsyncMock(return_value=TaskRunResult(success=True))


@pytest.fixture
def client(temp_db_path, vault, fake_source, fake_chat, webhook, task_runner):
    """Create a test client with isolated database and fake collaborators."""
    # Store original state
    original = {
        name: getattr(state, name)
        for name in ("db", "vault", "digest_service", "scheduler", "jobs", "push_service")
    }

    # Set up test state with fresh instances
    test_db = Database(temp_db_path)
    state.db = test_db
    state.vault = vault
    state.push_service = PushService(
        client=httpx.AsyncClient(transport=httpx.MockTransport(webhook)),
        sleep=AsyncMock(),
    )
    state.digest_service = DigestService(
        test_db,
        vault,
        source_factory=lambda api_url, api_key: fake_source,
        chat_fn=fake_chat,
        clock=lambda: FIXED_NOW,
    )
    state.jobs = JobTracker()
    state.scheduler = DigestScheduler(test_db, task_runner, sleep=never_wake)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    # Restore original state
    for name, value in original.items():
        setattr(state, name, value)


@pytest.fixture
def configured_client(client, vault):
    """Test client with AI and Miniflux connections stored."""
    store_connections(state.db, vault)
    return client
