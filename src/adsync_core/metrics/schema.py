"""SQLite schema definitions for the account metrics store.

Database: data/adsync.db (WAL mode)
Tables: accounts, daily_aggregates, sync_outcomes
"""
import logging
import sqlite3
from pathlib import Path


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open a connection usable from worker threads and initialize schema.

    The connection is created with check_same_thread=False; callers must
    serialize access (MetricsStore and AccountRegistry share one lock).

    Args:
        db_path: Path to SQLite database file, or ":memory:"
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, check_same_thread=False)
    init_database(conn)
    return conn


def init_database(conn: sqlite3.Connection) -> None:
    """Initialize metrics database with schema.

    Creates tables if they don't exist.
    Enables WAL mode for concurrent reads.

    Args:
        conn: SQLite connection
    """
    conn.execute("PRAGMA journal_mode=WAL")

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    cursor = conn.execute("SELECT MAX(version) FROM schema_version")
    current_version = cursor.fetchone()[0] or 0

    if current_version < SCHEMA_VERSION:
        _apply_schema(conn)
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
        logger.info("Database schema initialized (version %s)", SCHEMA_VERSION)
    else:
        logger.debug("Database schema up to date (version %s)", current_version)


def _apply_schema(conn: sqlite3.Connection) -> None:
    """Apply database schema.

    Args:
        conn: SQLite connection (in transaction)
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS accounts (
            account_id TEXT PRIMARY KEY,
            owner_user_id TEXT,
            display_name TEXT,
            credential TEXT,
            stored_status TEXT,
            last_sync_at TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_accounts_owner
        ON accounts(owner_user_id)
        WHERE owner_user_id IS NOT NULL
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS daily_aggregates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id TEXT NOT NULL,
            metric_date TEXT NOT NULL,
            spend REAL NOT NULL DEFAULT 0,
            revenue_broad REAL NOT NULL DEFAULT 0,
            revenue_direct REAL NOT NULL DEFAULT 0,
            clicks INTEGER NOT NULL DEFAULT 0,
            orders INTEGER NOT NULL DEFAULT 0,
            orders_direct INTEGER NOT NULL DEFAULT 0,
            impressions INTEGER NOT NULL DEFAULT 0,
            views INTEGER NOT NULL DEFAULT 0,
            checkouts INTEGER NOT NULL DEFAULT 0,
            ctr REAL,
            cpc REAL,
            conversion_rate REAL,
            direct_conversion_rate REAL,
            broad_roas REAL,
            direct_roas REAL,
            cpm REAL,
            synced_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(account_id, metric_date)
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_daily_account_date
        ON daily_aggregates(account_id, metric_date)
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sync_outcomes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            batch_id TEXT NOT NULL,
            account_id TEXT NOT NULL,
            status TEXT NOT NULL,
            synced_dates TEXT NOT NULL DEFAULT '[]',
            failed_dates TEXT NOT NULL DEFAULT '[]',
            error TEXT,
            recorded_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_outcomes_account
        ON sync_outcomes(account_id, recorded_at)
        """
    )
