"""
Pytest Configuration and Fixtures for collabxp Tests
====================================================

Purpose
-------
Centralized fixtures for the progression engine test suite: configuration,
event bus, stores, a controllable clock and the progression service.

Architecture Notes
------------------
- Unit tests use the in-memory store and a real EventBus (fast, isolated)
- Integration tests use a temporary aiosqlite database through DatabaseService
- ConfigManager is class-level state; every test starts from the YAML
  defaults under ``config/`` with no overrides
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, Generator, List

import pytest
import pytest_asyncio

from collabxp.core.config import Config, ConfigManager
from collabxp.core.database.service import DatabaseService
from collabxp.core.event.bus import EventBus
from collabxp.modules.progression.repository import SqlProgressionStore
from collabxp.modules.progression.service import ProgressionService
from collabxp.modules.progression.store import InMemoryProgressionStore

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["LOG_LEVEL"] = "DEBUG"
    os.environ["LOG_TO_FILE"] = "false"
    Config.load()


# ============================================================================
# CONFIGURATION
# ============================================================================


@pytest.fixture(autouse=True)
def config_manager() -> Generator[type, None, None]:
    """Fresh ConfigManager loaded from the project YAML defaults."""
    ConfigManager.reset()
    ConfigManager.initialize(Config.PROJECT_ROOT / "config")
    yield ConfigManager
    ConfigManager.reset()


# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Callable clock the tests move forward explicitly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc))


# ============================================================================
# EVENTS
# ============================================================================


@pytest.fixture
def event_bus(config_manager) -> EventBus:
    return EventBus(config_manager)


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    Uses: Unit tests asserting on published event names
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock(
        side_effect=lambda name, callback, **kwargs: kwargs.get("identifier") or name
    )
    mock_bus.unsubscribe = mocker.MagicMock(return_value=True)
    return mock_bus


def published_events(mock_bus) -> List[str]:
    """Event names published on a mocked bus, in order."""
    return [call.args[0] for call in mock_bus.publish.await_args_list]


def published_payloads(mock_bus, event_name: str) -> List[Dict[str, Any]]:
    return [
        call.args[1]
        for call in mock_bus.publish.await_args_list
        if call.args[0] == event_name
    ]


# ============================================================================
# STORES & SERVICE
# ============================================================================


@pytest.fixture
def memory_store() -> InMemoryProgressionStore:
    return InMemoryProgressionStore()


@pytest.fixture
def service(memory_store, config_manager, mock_event_bus, clock) -> ProgressionService:
    return ProgressionService(
        memory_store,
        config_manager,
        mock_event_bus,
        clock=clock,
    )


@pytest_asyncio.fixture
async def sqlite_database(tmp_path) -> AsyncGenerator[str, None]:
    """
    Temporary aiosqlite database with all tables created.

    Scope: function (fresh file per test)
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'collabxp-test.db'}"
    await DatabaseService.initialize(url)
    await DatabaseService.create_tables()
    try:
        yield url
        await DatabaseService.drop_tables()
    finally:
        await DatabaseService.shutdown()


@pytest.fixture
def sql_store(sqlite_database) -> SqlProgressionStore:
    return SqlProgressionStore()
