"""
Shared pytest fixtures for BLE sensor session tests.
"""

import asyncio
from types import SimpleNamespace

import pytest  # type: ignore[import-untyped]  # pylint: disable=E0401

from envsense import publishing
from envsense.interfaces.ble.state import BLEStateManager, ConnectionState
from envsense.interfaces.ble.store import SensorStateStore

from tests.fakes import FakeSessionFactory


@pytest.fixture
def loop():
    """
    Provide a private event loop that is closed after the test.

    Pending tasks are cancelled and allowed to unwind before closing.
    """
    event_loop = asyncio.new_event_loop()
    yield event_loop
    pending = [task for task in asyncio.all_tasks(event_loop) if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        event_loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
    event_loop.close()


@pytest.fixture
def store():
    return SensorStateStore()


@pytest.fixture
def connected_store():
    store = SensorStateStore()
    store.set_connected(True)
    return store


@pytest.fixture
def ready_state_manager():
    """State manager already in READY, as it is once ingestion is armed."""
    manager = BLEStateManager()
    manager.transition_to(ConnectionState.CONNECTING)
    manager.transition_to(ConnectionState.DISCOVERING)
    manager.transition_to(ConnectionState.READY)
    return manager


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture(autouse=True)
def mock_publishing_thread(monkeypatch):
    """
    Replace the deferred publishing worker with one that runs work immediately.

    Returns:
        SimpleNamespace: Object whose `queueWork` invokes the callback inline.
    """

    def queueWork(callback):  # pylint: disable=C0103
        if callback:
            callback()

    stub = SimpleNamespace(queueWork=queueWork)
    monkeypatch.setattr(publishing, "publishingThread", stub)
    return stub
