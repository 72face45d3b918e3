"""Per-account, per-date metric aggregate store."""
import json
import logging
import sqlite3
import threading
from datetime import date
from typing import Iterable, Optional

from ..dates import DateRange
from ..schemas.metrics import ADDITIVE_FIELDS, RATIO_FIELDS, DailyAggregate, MetricValues
from .exceptions import StoreUnavailableError


logger = logging.getLogger(__name__)


METRIC_COLUMNS = ADDITIVE_FIELDS + RATIO_FIELDS


class MetricsStore:
    """Durable DailyAggregate table with range queries and upserts.

    At most one row exists per (account_id, metric_date). A missing row
    means the day was never synchronized, not that it had no activity.
    """

    def __init__(
        self, db_conn: sqlite3.Connection, lock: Optional[threading.Lock] = None
    ) -> None:
        """Initialize store.

        Args:
            db_conn: SQLite connection (schema already initialized)
            lock: Lock shared with other users of the same connection
        """
        self.db_conn = db_conn
        self._lock = lock or threading.Lock()

    def query(self, account_id: str, date_range: DateRange) -> list[DailyAggregate]:
        """Return stored rows for the account within the range, oldest first."""
        columns = ", ".join(METRIC_COLUMNS)
        try:
            with self._lock:
                rows = self.db_conn.execute(
                    f"""
                    SELECT metric_date, {columns}
                    FROM daily_aggregates
                    WHERE account_id=? AND metric_date >= ? AND metric_date <= ?
                    ORDER BY metric_date ASC
                    """,
                    (account_id, date_range.start.isoformat(), date_range.end.isoformat()),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("read", exc) from exc

        aggregates: list[DailyAggregate] = []
        for row in rows:
            values = dict(zip(METRIC_COLUMNS, row[1:]))
            aggregates.append(
                DailyAggregate(
                    account_id=account_id,
                    metric_date=date.fromisoformat(row[0]),
                    metrics=MetricValues(**values),
                )
            )
        return aggregates

    def stored_dates(self, account_id: str, date_range: DateRange) -> set[date]:
        try:
            with self._lock:
                rows = self.db_conn.execute(
                    """
                    SELECT metric_date FROM daily_aggregates
                    WHERE account_id=? AND metric_date >= ? AND metric_date <= ?
                    """,
                    (account_id, date_range.start.isoformat(), date_range.end.isoformat()),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("read", exc) from exc
        return {date.fromisoformat(row[0]) for row in rows}

    def upsert(self, account_id: str, metric_date: date, metrics: MetricValues) -> None:
        """Insert or overwrite the row for (account_id, metric_date)."""
        self.upsert_many(account_id, {metric_date: metrics})

    def upsert_many(self, account_id: str, rows: dict[date, MetricValues]) -> None:
        """Upsert several days for one account in a single transaction."""
        if not rows:
            return

        columns = ", ".join(METRIC_COLUMNS)
        placeholders = ", ".join("?" for _ in METRIC_COLUMNS)
        updates = ",\n".join(f"{name}=excluded.{name}" for name in METRIC_COLUMNS)
        statement = f"""
            INSERT INTO daily_aggregates (account_id, metric_date, {columns})
            VALUES (?, ?, {placeholders})
            ON CONFLICT(account_id, metric_date)
            DO UPDATE SET
                {updates},
                synced_at=CURRENT_TIMESTAMP
        """

        params = [
            (
                account_id,
                metric_date.isoformat(),
                *(getattr(metrics, name) for name in METRIC_COLUMNS),
            )
            for metric_date, metrics in sorted(rows.items())
        ]

        try:
            with self._lock:
                try:
                    self.db_conn.executemany(statement, params)
                    self.db_conn.commit()
                except sqlite3.Error:
                    self.db_conn.rollback()
                    raise
        except sqlite3.Error as exc:
            logger.error("SQLite write failed for account %s: %s", account_id, exc)
            raise StoreUnavailableError("write", exc) from exc

        logger.debug("Upserted %s daily rows for account %s", len(params), account_id)

    def record_outcome(
        self,
        batch_id: str,
        account_id: str,
        status: str,
        synced_dates: Iterable[date] = (),
        failed_dates: Iterable[date] = (),
        error: Optional[str] = None,
    ) -> None:
        """Append a per-account sync outcome to the ledger."""
        try:
            with self._lock:
                self.db_conn.execute(
                    """
                    INSERT INTO sync_outcomes (
                        batch_id, account_id, status, synced_dates, failed_dates, error
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        batch_id,
                        account_id,
                        status,
                        json.dumps(sorted(d.isoformat() for d in synced_dates)),
                        json.dumps(sorted(d.isoformat() for d in failed_dates)),
                        error,
                    ),
                )
                self.db_conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("outcome write", exc) from exc

    def recent_outcomes(
        self, account_id: Optional[str] = None, limit: int = 50
    ) -> list[dict]:
        query = """
            SELECT batch_id, account_id, status, synced_dates, failed_dates,
                   error, recorded_at
            FROM sync_outcomes
        """
        params: list = []
        if account_id is not None:
            query += " WHERE account_id=?"
            params.append(account_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        try:
            with self._lock:
                rows = self.db_conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("outcome read", exc) from exc

        return [
            {
                "batch_id": row[0],
                "account_id": row[1],
                "status": row[2],
                "synced_dates": json.loads(row[3]),
                "failed_dates": json.loads(row[4]),
                "error": row[5],
                "recorded_at": row[6],
            }
            for row in rows
        ]
