"""
Shared fixtures for the Fintra tests.

No test touches the network or the user's data file: stores are backed by
InMemoryKeyValueStore (or a temporary directory) and "today" is pinned.
"""

import asyncio
from typing import Optional

import pytest

from fintra.audit import AuditLogger
from fintra.config.settings import AppSettings
from fintra.orchestrator import FinanceStore
from fintra.services.storage import InMemoryKeyValueStore, StorageError
from tests.factories import NOW, TODAY


class FailingKeyValueStore(InMemoryKeyValueStore):
    """In-memory store whose writes can be made to fail or stall on demand."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        super().__init__(initial)
        self.fail_writes = False
        self.refuse_writes = False
        self.fail_on_key: Optional[str] = None
        self.write_delay = 0.0
        self.writes: list[str] = []

    async def set(self, key: str, value: str) -> bool:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if self.fail_writes or key == self.fail_on_key:
            raise StorageError("disk full")
        if self.refuse_writes:
            return False
        self.writes.append(key)
        return await super().set(key, value)


@pytest.fixture
def app_settings() -> AppSettings:
    """Default settings, ignoring any local .env file."""
    return AppSettings(_env_file=None)


@pytest.fixture
def kv_store() -> FailingKeyValueStore:
    return FailingKeyValueStore()


@pytest.fixture
def store(kv_store, app_settings) -> FinanceStore:
    return FinanceStore(
        kv_store,
        audit_logger=AuditLogger(),
        settings=app_settings,
        clock=lambda: NOW,
        today=lambda: TODAY,
    )
