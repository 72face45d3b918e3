"""Fetch one account's metrics for a date range and persist them.

Shared by the background reconcile worker and manual refresh. Status
updates are left to the caller; the collector only reports what happened.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, Optional

from ..dates import DateRange
from ..metrics.accounts import Account
from ..metrics.exceptions import StoreUnavailableError
from ..metrics.store import MetricsStore
from ..schemas.metrics import MetricValues
from ..shopee.client import ShopeeAdsClient
from ..shopee.exceptions import ShopeeClientError, ShopeeSessionExpiredError
from ..shopee.payloads import DailyBreakdown, EmptyPayload, MetricsPayload, RangeAggregate


logger = logging.getLogger(__name__)


Sleep = Callable[[float], Awaitable[None]]


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass
class CollectResult:
    """Per-date outcome of one collection run."""

    account_id: str
    synced_dates: set[date] = field(default_factory=set)
    failed_dates: set[date] = field(default_factory=set)
    credential_rejected: bool = False
    error: Optional[str] = None

    @property
    def any_synced(self) -> bool:
        return bool(self.synced_dates)


class AccountCollector:
    """Turns platform payloads into stored DailyAggregate rows.

    A day-by-day breakdown is stored as is. A single-day aggregate is
    stored for that day. A multi-day aggregate is never split across
    days; the range is re-fetched one date at a time instead. An explicit
    empty response stores zero rows for every date in the range.
    """

    def __init__(
        self,
        client: ShopeeAdsClient,
        store: MetricsStore,
        call_timeout: float = 30.0,
        per_date_delay: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize collector.

        Args:
            client: Shopee ads client
            store: Daily aggregate store
            call_timeout: Seconds allowed per platform call, retries included
            per_date_delay: Pause between calls in per-date fallback
            sleep: Awaitable sleep, injectable for tests
        """
        self.client = client
        self.store = store
        self.call_timeout = call_timeout
        self.per_date_delay = per_date_delay
        self._sleep = sleep

    async def collect(self, account: Account, date_range: DateRange) -> CollectResult:
        result = CollectResult(account_id=account.account_id)
        credential = account.credential or ""

        try:
            payload = await self._fetch(credential, date_range)
        except ShopeeSessionExpiredError as exc:
            logger.warning("Session rejected for %s: %s", account.account_id, exc)
            result.failed_dates.update(date_range.dates())
            result.credential_rejected = True
            result.error = str(exc)
            return result
        except (ShopeeClientError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Range fetch failed for %s (%s): %s",
                account.account_id,
                date_range,
                _describe(exc),
            )
            result.failed_dates.update(date_range.dates())
            result.error = _describe(exc)
            return result
        except Exception as exc:
            logger.error(
                "Unexpected error fetching %s (%s): %s",
                account.account_id,
                date_range,
                _describe(exc),
                exc_info=True,
            )
            result.failed_dates.update(date_range.dates())
            result.error = _describe(exc)
            return result

        if isinstance(payload, RangeAggregate) and date_range.days > 1:
            logger.info(
                "Range aggregate for %s over %s days, falling back to per-date fetch",
                account.account_id,
                date_range.days,
            )
            await self._collect_per_date(account, date_range, result)
            return result

        rows = self._rows_for_range(payload, date_range)
        result.failed_dates.update(d for d in date_range.dates() if d not in rows)
        await self._write(account.account_id, rows, result)
        return result

    async def _fetch(self, credential: str, date_range: DateRange) -> MetricsPayload:
        return await asyncio.wait_for(
            self.client.fetch_range(credential, date_range.start, date_range.end),
            timeout=self.call_timeout,
        )

    @staticmethod
    def _rows_for_range(
        payload: MetricsPayload, date_range: DateRange
    ) -> dict[date, MetricValues]:
        if isinstance(payload, EmptyPayload):
            return {day: MetricValues.zero() for day in date_range.dates()}
        if isinstance(payload, DailyBreakdown):
            return {day: m for day, m in payload.days.items() if day in date_range}
        if isinstance(payload, RangeAggregate) and payload.start == payload.end:
            if payload.start in date_range:
                return {payload.start: payload.metrics}
        return {}

    async def _collect_per_date(
        self, account: Account, date_range: DateRange, result: CollectResult
    ) -> None:
        credential = account.credential or ""
        days = list(date_range.dates())

        for index, day in enumerate(days):
            if index > 0 and self.per_date_delay > 0:
                await self._sleep(self.per_date_delay)

            single = DateRange.single(day)
            try:
                payload = await self._fetch(credential, single)
            except ShopeeSessionExpiredError as exc:
                logger.warning(
                    "Session rejected for %s at %s, stopping", account.account_id, day
                )
                result.failed_dates.update(days[index:])
                result.credential_rejected = True
                result.error = str(exc)
                return
            except (ShopeeClientError, asyncio.TimeoutError) as exc:
                logger.warning(
                    "Fetch failed for %s on %s: %s",
                    account.account_id,
                    day,
                    _describe(exc),
                )
                result.failed_dates.add(day)
                result.error = _describe(exc)
                continue
            except Exception as exc:
                logger.error(
                    "Unexpected error fetching %s on %s: %s",
                    account.account_id,
                    day,
                    _describe(exc),
                    exc_info=True,
                )
                result.failed_dates.add(day)
                result.error = _describe(exc)
                continue

            rows = self._rows_for_range(payload, single)
            if day not in rows:
                result.failed_dates.add(day)
                continue
            await self._write(account.account_id, rows, result)

    async def _write(
        self, account_id: str, rows: dict[date, MetricValues], result: CollectResult
    ) -> None:
        if not rows:
            return
        try:
            await asyncio.to_thread(self.store.upsert_many, account_id, rows)
        except StoreUnavailableError as exc:
            logger.error("Could not persist %s days for %s: %s", len(rows), account_id, exc)
            result.failed_dates.update(rows)
            result.error = str(exc)
            return
        result.synced_dates.update(rows)
