"""Phase-2 background reconciliation.

Batches of (account, date range) jobs are queued by the engine and drained
by a single consumer task. Accounts in a batch run one after another with
a fixed delay between platform calls; one account's failure never aborts
the rest of the batch.
"""
import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional

from ..dates import Clock, DateRange, utc_now
from ..metrics.accounts import AccountRegistry, AccountStatus
from ..metrics.exceptions import StoreUnavailableError
from ..metrics.store import MetricsStore
from .collector import AccountCollector, Sleep
from .exceptions import ReconcileQueueFullError
from .health import classify, is_sync_eligible


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileJob:
    account_id: str
    date_range: DateRange


@dataclass
class ReconcileBatch:
    batch_id: str
    jobs: list[ReconcileJob]

    @classmethod
    def create(cls, jobs: Iterable[ReconcileJob]) -> "ReconcileBatch":
        return cls(batch_id=uuid.uuid4().hex, jobs=list(jobs))


class OutcomeStatus(str, Enum):
    SYNCED = "synced"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class AccountOutcome:
    """Result of reconciling one account within a batch."""

    account_id: str
    status: OutcomeStatus
    synced_dates: list[date] = field(default_factory=list)
    failed_dates: list[date] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class BatchReport:
    batch_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: list[AccountOutcome] = field(default_factory=list)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)


class ReconcileWorker:
    """Single-consumer queue of reconcile batches."""

    def __init__(
        self,
        registry: AccountRegistry,
        store: MetricsStore,
        collector: AccountCollector,
        clock: Clock = utc_now,
        inter_account_delay: float = 1.0,
        queue_size: int = 100,
        history_size: int = 20,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize worker.

        Args:
            registry: Account registry for status updates
            store: Metrics store, used for the outcome ledger
            collector: Fetch-and-persist step shared with manual refresh
            clock: Source of sync timestamps
            inter_account_delay: Seconds between consecutive platform calls
            queue_size: Maximum pending batches before submit() rejects
            history_size: Number of finished batch reports kept in memory
            sleep: Awaitable sleep, injectable for tests
        """
        self.registry = registry
        self.store = store
        self.collector = collector
        self.clock = clock
        self.inter_account_delay = inter_account_delay
        self._sleep = sleep
        self._queue: asyncio.Queue[ReconcileBatch] = asyncio.Queue(maxsize=queue_size)
        self._reports: deque[BatchReport] = deque(maxlen=history_size)
        self._task: Optional[asyncio.Task] = None

    @property
    def reports(self) -> list[BatchReport]:
        """Finished batch reports, most recent first."""
        return list(reversed(self._reports))

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, batch: ReconcileBatch) -> str:
        """Queue a batch without waiting for it to run.

        Raises:
            ReconcileQueueFullError: If the queue is at capacity
        """
        try:
            self._queue.put_nowait(batch)
        except asyncio.QueueFull as exc:
            raise ReconcileQueueFullError(batch.batch_id, self._queue.maxsize) from exc
        logger.info("Queued reconcile batch %s (%s accounts)", batch.batch_id, len(batch.jobs))
        return batch.batch_id

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._consume(), name="adsync-reconcile-worker")
        logger.info("Reconcile worker started")

    async def stop(self, drain: bool = False) -> None:
        """Stop the consumer task, optionally after finishing queued batches."""
        if self._task is None:
            return
        if drain:
            await self._queue.join()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reconcile worker stopped")

    async def join(self) -> None:
        """Wait until every queued batch has been processed."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            batch = await self._queue.get()
            try:
                await self.run_batch(batch)
            except Exception:
                logger.exception("Reconcile batch %s crashed", batch.batch_id)
            finally:
                self._queue.task_done()

    async def run_batch(self, batch: ReconcileBatch) -> BatchReport:
        """Reconcile every job in the batch, in order."""
        report = BatchReport(batch_id=batch.batch_id, started_at=self.clock())
        logger.info("Running reconcile batch %s (%s accounts)", batch.batch_id, len(batch.jobs))

        called = False
        for job in batch.jobs:
            try:
                outcome, made_call = await self._process_job(job, called)
            except Exception as exc:
                logger.error(
                    "Reconcile failed for %s in batch %s: %s",
                    job.account_id,
                    batch.batch_id,
                    exc,
                    exc_info=True,
                )
                outcome = AccountOutcome(
                    account_id=job.account_id,
                    status=OutcomeStatus.FAILED,
                    failed_dates=list(job.date_range.dates()),
                    error=str(exc),
                )
                made_call = False
            called = called or made_call
            report.outcomes.append(outcome)
            await self._record(batch.batch_id, outcome)

        report.finished_at = self.clock()
        self._reports.append(report)
        logger.info(
            "Batch %s done: synced=%s partial=%s failed=%s skipped=%s",
            batch.batch_id,
            report.count(OutcomeStatus.SYNCED),
            report.count(OutcomeStatus.PARTIAL),
            report.count(OutcomeStatus.FAILED),
            report.count(OutcomeStatus.SKIPPED),
        )
        return report

    async def _process_job(
        self, job: ReconcileJob, delay_first: bool
    ) -> tuple[AccountOutcome, bool]:
        account = await asyncio.to_thread(self.registry.get, job.account_id)
        if account is None:
            return self._skipped(job, "account not found"), False
        if account.stored_status == AccountStatus.DELETED:
            return self._skipped(job, "account deleted"), False
        if not is_sync_eligible(account):
            health = classify(account)
            return self._skipped(job, f"session {health.value if health else 'unknown'}"), False

        if delay_first and self.inter_account_delay > 0:
            await self._sleep(self.inter_account_delay)

        result = await self.collector.collect(account, job.date_range)
        await self._apply_status(job.account_id, result.credential_rejected, result.any_synced)

        if result.synced_dates and not result.failed_dates:
            status = OutcomeStatus.SYNCED
        elif result.synced_dates:
            status = OutcomeStatus.PARTIAL
        else:
            status = OutcomeStatus.FAILED

        outcome = AccountOutcome(
            account_id=job.account_id,
            status=status,
            synced_dates=sorted(result.synced_dates),
            failed_dates=sorted(result.failed_dates),
            error=result.error,
        )
        return outcome, True

    async def _apply_status(self, account_id: str, rejected: bool, any_synced: bool) -> None:
        try:
            if rejected:
                await asyncio.to_thread(
                    self.registry.update_status, account_id, AccountStatus.INACTIVE
                )
            elif any_synced:
                await asyncio.to_thread(
                    self.registry.update_status, account_id, AccountStatus.ACTIVE
                )
                await asyncio.to_thread(self.registry.mark_synced, account_id, self.clock())
        except StoreUnavailableError as exc:
            logger.error("Could not update status for %s: %s", account_id, exc)

    async def _record(self, batch_id: str, outcome: AccountOutcome) -> None:
        try:
            await asyncio.to_thread(
                self.store.record_outcome,
                batch_id,
                outcome.account_id,
                outcome.status.value,
                outcome.synced_dates,
                outcome.failed_dates,
                outcome.error,
            )
        except StoreUnavailableError as exc:
            logger.error("Could not record outcome for %s: %s", outcome.account_id, exc)

    @staticmethod
    def _skipped(job: ReconcileJob, reason: str) -> AccountOutcome:
        logger.info("Skipping %s: %s", job.account_id, reason)
        return AccountOutcome(account_id=job.account_id, status=OutcomeStatus.SKIPPED, error=reason)
