"""Account metrics storage layer.

Persists to SQLite (data/adsync.db):
- accounts: credentials, stored status, last successful sync
- daily_aggregates: one metric snapshot per (account, date)
- sync_outcomes: per-account results of background and manual syncs
"""
from .accounts import Account, AccountRegistry, AccountStatus
from .exceptions import MetricsStoreError, StoreUnavailableError
from .gaps import find_missing_dates
from .schema import connect, init_database
from .store import MetricsStore

__all__ = [
    "Account",
    "AccountRegistry",
    "AccountStatus",
    "MetricsStore",
    "MetricsStoreError",
    "StoreUnavailableError",
    "connect",
    "find_missing_dates",
    "init_database",
]
