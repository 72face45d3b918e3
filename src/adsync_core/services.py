"""Wiring of store, client, worker and refresh from a SyncConfig."""
import logging
import threading
from dataclasses import dataclass
from typing import Optional

import aiohttp
from redis.asyncio import Redis

from .metrics.accounts import AccountRegistry
from .metrics.schema import connect
from .metrics.store import MetricsStore
from .shopee.client import ShopeeAdsClient
from .sync.collector import AccountCollector
from .sync.config import SyncConfig
from .sync.engine import ReconciliationEngine
from .sync.refresh import ManualRefresh
from .sync.worker import ReconcileWorker


logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: SyncConfig
    registry: AccountRegistry
    store: MetricsStore
    client: ShopeeAdsClient
    collector: AccountCollector
    worker: ReconcileWorker
    engine: ReconciliationEngine
    refresh: ManualRefresh


def build_services(
    config: SyncConfig,
    session: aiohttp.ClientSession,
    redis: Optional[Redis] = None,
    db_path: Optional[str] = None,
) -> Services:
    """Build the service graph over one SQLite connection.

    Args:
        config: Engine settings
        session: Shared aiohttp session for platform calls
        redis: Optional Redis client for refresh locks
        db_path: Overrides config.db_path (e.g. ":memory:")
    """
    conn = connect(db_path or config.db_path)
    lock = threading.Lock()
    registry = AccountRegistry(conn, lock)
    store = MetricsStore(conn, lock)

    tz = config.tz
    client = ShopeeAdsClient(
        session=session,
        base_url=config.shopee_base_url,
        timezone=tz,
        request_timeout=config.request_timeout,
    )
    collector = AccountCollector(
        client,
        store,
        call_timeout=config.call_timeout,
        per_date_delay=config.inter_account_delay,
    )
    worker = ReconcileWorker(
        registry,
        store,
        collector,
        inter_account_delay=config.inter_account_delay,
        queue_size=config.queue_size,
    )
    engine = ReconciliationEngine(
        registry,
        store,
        worker=worker,
        tz=tz,
        store_timeout=config.store_timeout,
        stale_after_hours=config.stale_after_hours,
        default_range_days=config.default_range_days,
    )
    refresh = ManualRefresh(registry, store, collector, client, redis=redis)

    logger.info("Services ready (db=%s, tz=%s)", db_path or config.db_path, tz)
    return Services(
        config=config,
        registry=registry,
        store=store,
        client=client,
        collector=collector,
        worker=worker,
        engine=engine,
        refresh=refresh,
    )


def close_services(services: Services) -> None:
    services.store.db_conn.close()
