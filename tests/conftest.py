"""Shared fixtures: in-memory store, registry and a fixed clock."""
import threading
from datetime import datetime, timezone

import pytest

from adsync_core.metrics.accounts import AccountRegistry
from adsync_core.metrics.schema import connect
from adsync_core.metrics.store import MetricsStore


FIXED_NOW = datetime(2024, 12, 10, 3, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_conn():
    """In-memory SQLite database with schema."""
    conn = connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def db_lock():
    return threading.Lock()


@pytest.fixture
def store(db_conn, db_lock):
    return MetricsStore(db_conn, db_lock)


@pytest.fixture
def registry(db_conn, db_lock):
    return AccountRegistry(db_conn, db_lock)


@pytest.fixture
def clock():
    """Clock frozen at 2024-12-10 03:00 UTC."""
    return lambda: FIXED_NOW
