"""Two-phase account synchronization.

Phase 1 answers from stored aggregates only and never calls the ad
platform. Phase 2 hands accounts with gaps or stale data to the background
worker and returns without waiting for it.
"""
import asyncio
import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone, tzinfo
from typing import Optional

from ..dates import Clock, DateRange, default_date_range, utc_now
from ..metrics.accounts import Account, AccountRegistry
from ..metrics.exceptions import MetricsStoreError
from ..metrics.gaps import find_missing_dates
from ..metrics.store import MetricsStore
from ..schemas.metrics import AccountSyncRecord, SynchronizeResult, summarize_metrics
from .exceptions import ReconcileQueueFullError
from .health import SessionHealth, classify, effective_health, is_stale, is_sync_eligible
from .worker import ReconcileBatch, ReconcileJob, ReconcileWorker


logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Builds account summaries from the store and schedules repairs."""

    def __init__(
        self,
        registry: AccountRegistry,
        store: MetricsStore,
        worker: Optional[ReconcileWorker] = None,
        clock: Clock = utc_now,
        tz: tzinfo = timezone.utc,
        store_timeout: float = 5.0,
        stale_after_hours: float = 24.0,
        default_range_days: int = 7,
    ) -> None:
        """Initialize engine.

        Args:
            registry: Account registry
            store: Daily aggregate store
            worker: Background worker for Phase 2; None disables repair
            clock: Source of "now" for default ranges and staleness
            tz: Calendar used to derive the default range
            store_timeout: Seconds allowed per Phase-1 store read
            stale_after_hours: Age after which a last sync counts as stale
            default_range_days: Length of the range used when none is given
        """
        self.registry = registry
        self.store = store
        self.worker = worker
        self.clock = clock
        self.tz = tz
        self.store_timeout = store_timeout
        self.stale_after_hours = stale_after_hours
        self.default_range_days = default_range_days

    def resolve_range(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> DateRange:
        """Normalize caller endpoints; missing ones come from the default range."""
        if start is None or end is None:
            default = default_date_range(self.clock, self.tz, self.default_range_days)
            start = start or default.start
            end = end or default.end
        return DateRange.normalized(start, end)

    async def synchronize(
        self,
        account_ids: Iterable[str],
        start: Optional[date] = None,
        end: Optional[date] = None,
        schedule_repair: bool = True,
    ) -> SynchronizeResult:
        """Return one record per known account from stored data.

        Unknown account ids are skipped. A failed read of one account's
        metrics marks that record degraded and does not affect the others.

        Raises:
            StoreUnavailableError: If the account registry cannot be read
        """
        date_range = self.resolve_range(start, end)
        ids = list(dict.fromkeys(account_ids))
        accounts = await asyncio.to_thread(self.registry.get_many, ids)

        unknown = [account_id for account_id in ids if account_id not in accounts]
        if unknown:
            logger.warning("Skipping unknown accounts: %s", ", ".join(unknown))

        now = self.clock()
        records: list[AccountSyncRecord] = []
        repair_jobs: list[ReconcileJob] = []
        for account_id in ids:
            account = accounts.get(account_id)
            if account is None:
                continue
            record = await self._build_record(account, date_range)
            records.append(record)
            if self._needs_repair(account, record, now):
                repair_jobs.append(ReconcileJob(account_id=account_id, date_range=date_range))

        batch_id = None
        if schedule_repair and repair_jobs:
            batch_id = self._schedule(repair_jobs)

        return SynchronizeResult(
            start_date=date_range.start,
            end_date=date_range.end,
            accounts=records,
            repair_batch_id=batch_id,
        )

    async def _build_record(
        self, account: Account, date_range: DateRange
    ) -> AccountSyncRecord:
        degraded = False
        try:
            rows = await self._read(self.store.query, account.account_id, date_range)
        except (MetricsStoreError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Metrics read failed for %s (%s), answering degraded: %s",
                account.account_id,
                date_range,
                str(exc) or type(exc).__name__,
            )
            rows = []
            degraded = True

        try:
            missing = await self._read(
                find_missing_dates,
                self.store,
                account.account_id,
                date_range.start,
                date_range.end,
            )
        except asyncio.TimeoutError:
            logger.warning("Gap detection timed out for %s", account.account_id)
            missing = set()

        health = classify(account)
        if rows or health is not SessionHealth.NO_COOKIES:
            summary = summarize_metrics(row.metrics for row in rows)
        else:
            summary = None

        return AccountSyncRecord(
            account_id=account.account_id,
            summary=summary,
            missing_dates=sorted(missing),
            health=health.value if health else None,
            effective_health=effective_health(health, missing).value,
            degraded=degraded,
        )

    async def _read(self, func, *args):
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args), timeout=self.store_timeout
        )

    def _needs_repair(
        self, account: Account, record: AccountSyncRecord, now: datetime
    ) -> bool:
        if not is_sync_eligible(account):
            return False
        return bool(record.missing_dates) or is_stale(account, now, self.stale_after_hours)

    def _schedule(self, jobs: list[ReconcileJob]) -> Optional[str]:
        if self.worker is None:
            logger.debug("No reconcile worker configured, skipping repair of %s accounts", len(jobs))
            return None
        batch = ReconcileBatch.create(jobs)
        try:
            return self.worker.submit(batch)
        except ReconcileQueueFullError as exc:
            logger.warning("Repair not scheduled: %s", exc)
            return None
