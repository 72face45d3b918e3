"""Unit tests for ReconciliationEngine Phase 1 and repair scheduling."""
import sqlite3
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from adsync_core.dates import DateRange
from adsync_core.metrics.accounts import AccountStatus
from adsync_core.metrics.exceptions import StoreUnavailableError
from adsync_core.metrics.store import MetricsStore
from adsync_core.schemas.metrics import MetricValues
from adsync_core.sync.engine import ReconciliationEngine
from adsync_core.sync.exceptions import ReconcileQueueFullError


DEC_1 = date(2024, 12, 1)
DEC_2 = date(2024, 12, 2)
DEC_3 = date(2024, 12, 3)
NOW = datetime(2024, 12, 10, 3, 0, tzinfo=timezone.utc)


class FlakyStore(MetricsStore):
    """Store whose reads fail for selected accounts."""

    def __init__(self, db_conn, lock, failing_accounts):
        super().__init__(db_conn, lock)
        self.failing_accounts = set(failing_accounts)

    def query(self, account_id, date_range):
        if account_id in self.failing_accounts:
            raise StoreUnavailableError("read", sqlite3.OperationalError("database is locked"))
        return super().query(account_id, date_range)

    def stored_dates(self, account_id, date_range):
        if account_id in self.failing_accounts:
            raise StoreUnavailableError("read", sqlite3.OperationalError("database is locked"))
        return super().stored_dates(account_id, date_range)


@pytest.fixture
def worker():
    mock_worker = MagicMock()
    mock_worker.submit.side_effect = lambda batch: batch.batch_id
    return mock_worker


@pytest.fixture
def engine(registry, store, worker, clock):
    return ReconciliationEngine(registry, store, worker=worker, clock=clock)


def _fill(store, account_id, days, spend=10.0):
    store.upsert_many(account_id, {d: MetricValues(spend=spend, clicks=1, ctr=0.1) for d in days})


@pytest.mark.asyncio
async def test_complete_range_summary(engine, registry, store, worker):
    """Test a fully stored, recently synced account needs no repair."""
    registry.register(
        "acc-1", credential="c", last_sync_at=NOW - timedelta(hours=1)
    )
    _fill(store, "acc-1", [DEC_1, DEC_2, DEC_3])

    result = await engine.synchronize(["acc-1"], DEC_1, DEC_3)

    record = result.accounts[0]
    assert record.summary.spend == 30.0
    assert record.summary.clicks == 3
    assert record.summary.ctr == 0.1
    assert record.summary.days_with_data == 3
    assert record.missing_dates == []
    assert record.health == "healthy"
    assert record.effective_health == "healthy"
    assert result.repair_batch_id is None
    worker.submit.assert_not_called()


@pytest.mark.asyncio
async def test_gaps_escalate_and_schedule_repair(engine, registry, store, worker):
    """Test gaps mark the account sync and queue exactly that account."""
    registry.register("acc-1", credential="c", last_sync_at=NOW)
    _fill(store, "acc-1", [DEC_1])

    result = await engine.synchronize(["acc-1"], DEC_1, DEC_3)

    record = result.accounts[0]
    assert record.missing_dates == [DEC_2, DEC_3]
    assert record.effective_health == "sync"
    assert result.repair_batch_id is not None

    batch = worker.submit.call_args[0][0]
    assert [job.account_id for job in batch.jobs] == ["acc-1"]
    assert batch.jobs[0].date_range == DateRange(DEC_1, DEC_3)


@pytest.mark.asyncio
async def test_reversed_range_matches_normal(engine, registry, store):
    """Test reversed endpoints return the same result as the normal order."""
    registry.register("acc-1", credential="c", last_sync_at=NOW)
    _fill(store, "acc-1", [DEC_2])

    forward = await engine.synchronize(["acc-1"], DEC_1, DEC_3, schedule_repair=False)
    reverse = await engine.synchronize(["acc-1"], DEC_3, DEC_1, schedule_repair=False)

    assert (reverse.start_date, reverse.end_date) == (DEC_1, DEC_3)
    assert reverse.accounts == forward.accounts


@pytest.mark.asyncio
async def test_no_data_returns_zero_summary(engine, registry):
    """Test an account with nothing stored gets a zero summary, not an error."""
    registry.register("acc-1", credential="c", last_sync_at=NOW)

    result = await engine.synchronize(["acc-1"], DEC_1, DEC_3, schedule_repair=False)

    record = result.accounts[0]
    assert record.summary.spend == 0
    assert record.summary.days_with_data == 0
    assert record.missing_dates == [DEC_1, DEC_2, DEC_3]


@pytest.mark.asyncio
async def test_no_cookies_account_without_data(engine, registry, worker):
    """Test credential-less accounts report no summary and are never repaired."""
    registry.register("acc-1", credential=None, stored_status=AccountStatus.ACTIVE)

    result = await engine.synchronize(["acc-1"], DEC_1, DEC_3)

    record = result.accounts[0]
    assert record.summary is None
    assert record.health == "no_cookies"
    assert record.effective_health == "no_cookies"
    worker.submit.assert_not_called()


@pytest.mark.asyncio
async def test_expired_and_deleted_accounts_not_repaired(engine, registry, worker):
    """Test expired and deleted accounts are reported but skipped for repair."""
    registry.register("expired", credential="c", stored_status=AccountStatus.INACTIVE)
    registry.register("gone", credential="c", stored_status=AccountStatus.DELETED)
    registry.register("fresh", credential="c")

    result = await engine.synchronize(["expired", "gone", "fresh"], DEC_1, DEC_3)

    by_id = {record.account_id: record for record in result.accounts}
    assert by_id["expired"].effective_health == "expired"
    assert by_id["gone"].health is None
    assert by_id["gone"].effective_health == "deleted"

    batch = worker.submit.call_args[0][0]
    assert [job.account_id for job in batch.jobs] == ["fresh"]


@pytest.mark.asyncio
async def test_stale_account_repaired_without_gaps(engine, registry, store, worker):
    """Test a complete but stale account is still queued for refresh."""
    registry.register("acc-1", credential="c", last_sync_at=NOW - timedelta(days=3))
    _fill(store, "acc-1", [DEC_1, DEC_2, DEC_3])

    result = await engine.synchronize(["acc-1"], DEC_1, DEC_3)

    assert result.accounts[0].missing_dates == []
    assert result.repair_batch_id is not None


@pytest.mark.asyncio
async def test_store_failure_is_isolated_per_account(db_conn, db_lock, registry, worker, clock):
    """Test a failed read degrades one account and leaves the other intact."""
    store = FlakyStore(db_conn, db_lock, failing_accounts={"acc-a"})
    engine = ReconciliationEngine(registry, store, worker=worker, clock=clock)
    registry.register("acc-a", credential="c", last_sync_at=NOW)
    registry.register("acc-b", credential="c", last_sync_at=NOW)
    _fill(store, "acc-a", [DEC_1, DEC_2, DEC_3])
    _fill(store, "acc-b", [DEC_1, DEC_2, DEC_3])

    result = await engine.synchronize(["acc-a", "acc-b"], DEC_1, DEC_3)

    record_a, record_b = result.accounts
    assert record_a.degraded
    assert record_a.summary.spend == 0
    assert record_a.missing_dates == []
    assert not record_b.degraded
    assert record_b.summary.spend == 30.0


@pytest.mark.asyncio
async def test_unknown_accounts_skipped_and_order_kept(engine, registry):
    """Test unknown ids are dropped and duplicates collapse."""
    registry.register("acc-2", credential="c", last_sync_at=NOW)
    registry.register("acc-1", credential="c", last_sync_at=NOW)

    result = await engine.synchronize(
        ["acc-2", "ghost", "acc-1", "acc-2"], DEC_1, DEC_1, schedule_repair=False
    )

    assert [record.account_id for record in result.accounts] == ["acc-2", "acc-1"]


@pytest.mark.asyncio
async def test_default_range_is_last_seven_days(engine, registry):
    """Test the default range ends yesterday relative to the injected clock."""
    registry.register("acc-1", credential="c")

    result = await engine.synchronize(["acc-1"], schedule_repair=False)

    assert result.end_date == date(2024, 12, 9)
    assert result.start_date == date(2024, 12, 3)


@pytest.mark.asyncio
async def test_registry_failure_raises(store, worker, clock):
    """Test an unreadable registry is the one fatal Phase-1 error."""
    registry = MagicMock()
    registry.get_many.side_effect = StoreUnavailableError(
        "account read", sqlite3.OperationalError("disk I/O error")
    )
    engine = ReconciliationEngine(registry, store, worker=worker, clock=clock)

    with pytest.raises(StoreUnavailableError):
        await engine.synchronize(["acc-1"], DEC_1, DEC_3)


@pytest.mark.asyncio
async def test_queue_full_does_not_fail_phase_one(engine, registry, worker):
    """Test a rejected repair batch still returns the Phase-1 result."""
    registry.register("acc-1", credential="c")
    worker.submit.side_effect = ReconcileQueueFullError("batch", 1)

    result = await engine.synchronize(["acc-1"], DEC_1, DEC_3)

    assert len(result.accounts) == 1
    assert result.repair_batch_id is None


@pytest.mark.asyncio
async def test_without_worker_no_repair(registry, store, clock):
    """Test an engine without a worker answers Phase 1 only."""
    registry.register("acc-1", credential="c")
    engine = ReconciliationEngine(registry, store, clock=clock)

    result = await engine.synchronize(["acc-1"], DEC_1, DEC_3)

    assert result.repair_batch_id is None
