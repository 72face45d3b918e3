"""Synchronous single-account refresh triggered by an operator."""
import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import date
from typing import Optional

from redis.asyncio import Redis
from redis.asyncio.lock import Lock as AsyncRedisLock

from ..dates import Clock, DateRange, utc_now
from ..metrics.accounts import Account, AccountRegistry, AccountStatus
from ..metrics.exceptions import StoreUnavailableError
from ..metrics.store import MetricsStore
from ..schemas.metrics import RefreshResult
from ..shopee.client import ShopeeAdsClient
from ..shopee.exceptions import ShopeeClientError
from .collector import AccountCollector
from .exceptions import AccountNotFoundError, AccountRefreshLockedError, CredentialMissingError
from .health import SessionHealth, classify


logger = logging.getLogger(__name__)


class ManualRefresh:
    """Fetch, store and re-status one account while the caller waits.

    With a Redis client configured, concurrent refreshes of the same
    account are rejected instead of racing on the same rows.
    """

    REFRESH_LOCK_TTL_SECONDS = 600  # 10 minutes

    def __init__(
        self,
        registry: AccountRegistry,
        store: MetricsStore,
        collector: AccountCollector,
        client: ShopeeAdsClient,
        clock: Clock = utc_now,
        redis: Optional[Redis] = None,
        lock_ttl_seconds: int = REFRESH_LOCK_TTL_SECONDS,
    ) -> None:
        """Initialize manual refresh.

        Args:
            registry: Account registry
            store: Metrics store, used for the outcome ledger
            collector: Fetch-and-persist step shared with the worker
            client: Shopee ads client, used for session checks
            clock: Source of sync timestamps
            redis: Optional redis.asyncio client for per-account locking
            lock_ttl_seconds: Redis lock TTL
        """
        self.registry = registry
        self.store = store
        self.collector = collector
        self.client = client
        self.clock = clock
        self.redis = redis
        self.lock_ttl_seconds = lock_ttl_seconds

    @staticmethod
    def lock_key(account_id: str) -> str:
        return f"adsync:refresh_lock:{account_id}"

    async def refresh(self, account_id: str, start: date, end: date) -> RefreshResult:
        """Refresh [start, end] for one account.

        Dates that were fetched and stored are reported as synced, the rest
        as failed. Any synced date marks the account active; a refresh that
        stores nothing marks it inactive. Re-running over the same range
        overwrites the same rows.

        Raises:
            AccountNotFoundError: If the account is unknown or deleted
            CredentialMissingError: If the account has no cookies
            AccountRefreshLockedError: If another refresh holds the lock
        """
        date_range = DateRange.normalized(start, end)
        account = await self._load(account_id)
        if not account.has_credential:
            raise CredentialMissingError(account_id)

        lock = await self._acquire_lock(account_id)
        try:
            result = await self.collector.collect(account, date_range)

            status = AccountStatus.ACTIVE if result.any_synced else AccountStatus.INACTIVE
            await asyncio.to_thread(self.registry.update_status, account_id, status)
            if result.any_synced:
                await asyncio.to_thread(self.registry.mark_synced, account_id, self.clock())

            if result.any_synced and not result.failed_dates:
                outcome = "synced"
            elif result.any_synced:
                outcome = "partial"
            else:
                outcome = "failed"
            try:
                await asyncio.to_thread(
                    self.store.record_outcome,
                    f"refresh-{uuid.uuid4().hex}",
                    account_id,
                    outcome,
                    result.synced_dates,
                    result.failed_dates,
                    result.error,
                )
            except StoreUnavailableError as exc:
                logger.error("Could not record refresh outcome for %s: %s", account_id, exc)
        finally:
            await self._release_lock_best_effort(lock)

        logger.info(
            "Refresh %s (%s): synced=%s failed=%s",
            account_id,
            date_range,
            len(result.synced_dates),
            len(result.failed_dates),
        )
        return RefreshResult(
            account_id=account_id,
            synced_dates=sorted(result.synced_dates),
            failed_dates=sorted(result.failed_dates),
            stored_status=status.value,
            error=result.error,
        )

    async def verify(self, account_id: str) -> SessionHealth:
        """Check the account's cookies against the platform and store the verdict.

        Raises:
            AccountNotFoundError: If the account is unknown or deleted
        """
        account = await self._load(account_id)
        if not account.has_credential:
            return SessionHealth.NO_COOKIES

        try:
            valid = await self.client.verify_session(account.credential or "")
        except ShopeeClientError as exc:
            logger.warning("Session check failed for %s: %s", account_id, exc)
            valid = False

        status = AccountStatus.ACTIVE if valid else AccountStatus.INACTIVE
        await asyncio.to_thread(self.registry.update_status, account_id, status)
        health = classify(replace(account, stored_status=status))
        logger.info("Session for %s is %s", account_id, health.value if health else None)
        return health

    async def _load(self, account_id: str) -> Account:
        account = await asyncio.to_thread(self.registry.get, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        if account.stored_status == AccountStatus.DELETED:
            raise AccountNotFoundError(account_id, reason="is deleted")
        return account

    async def _acquire_lock(self, account_id: str) -> Optional[AsyncRedisLock]:
        if self.redis is None:
            return None

        key = self.lock_key(account_id)
        lock = AsyncRedisLock(
            self.redis,
            name=key,
            timeout=self.lock_ttl_seconds,
            blocking=False,
        )
        acquired = await lock.acquire(blocking=False)
        if not acquired:
            raise AccountRefreshLockedError(account_id, key)
        logger.info("Acquired refresh lock %s", key)
        return lock

    async def _release_lock_best_effort(self, lock: Optional[AsyncRedisLock]) -> None:
        if lock is None:
            return
        try:
            await lock.release()
        except Exception as exc:
            logger.error("Failed to release refresh lock: %s", exc)
