"""Shared pytest fixtures.

Provides:
- A KeyManager bound to a fixed fake machine
- A ConfigStore on a temporary YAML file with no environment overrides
- An initialized SQLite database and HistoryStore
- A scriptable HTTP router behind httpx.MockTransport
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest
import pytest_asyncio

from helpers import TEST_MACHINE, Router
from quickllm.config import ProvidersConfig
from quickllm.providers.registry import ProviderRegistry
from quickllm.security.key_manager import KeyManager
from quickllm.settings import ConfigStore
from quickllm.storage.database import Database
from quickllm.storage.history_repo import HistoryStore


@pytest.fixture
def key_manager() -> KeyManager:
    return KeyManager(machine_id=TEST_MACHINE)


@pytest.fixture
def settings(tmp_path, key_manager) -> ConfigStore:
    store = ConfigStore(tmp_path / "settings.yaml", key_manager, env={})
    store.load()
    return store


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
def transport(router) -> httpx.MockTransport:
    return httpx.MockTransport(router)


@pytest.fixture
def providers(settings, transport) -> ProviderRegistry:
    return ProviderRegistry(settings, ProvidersConfig(), transport)


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncIterator[Database]:
    db = Database(str(tmp_path / "data" / "test.db"))
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def history(database) -> HistoryStore:
    return HistoryStore(database)
