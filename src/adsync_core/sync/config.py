"""Environment-driven configuration for the sync engine."""
import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo

from ..dates import resolve_timezone
from ..shopee.client import DEFAULT_BASE_URL


@dataclass(frozen=True)
class SyncConfig:
    """Engine settings. Read once at the call boundary, then injected."""

    db_path: Path = Path("data/adsync.db")
    timezone_name: str = "Asia/Jakarta"
    default_range_days: int = 7
    inter_account_delay: float = 1.0
    store_timeout: float = 5.0
    request_timeout: float = 10.0
    call_timeout: float = 30.0
    stale_after_hours: float = 24.0
    queue_size: int = 100
    shopee_base_url: str = DEFAULT_BASE_URL
    redis_url: str = "redis://localhost:6379"

    @property
    def tz(self) -> ZoneInfo:
        return resolve_timezone(self.timezone_name)

    @classmethod
    def from_env(cls) -> "SyncConfig":
        return cls(
            db_path=Path(os.getenv("ADSYNC_DB_PATH", "data/adsync.db")),
            timezone_name=os.getenv("ADSYNC_TIMEZONE", "Asia/Jakarta"),
            default_range_days=int(os.getenv("ADSYNC_DEFAULT_RANGE_DAYS", "7")),
            inter_account_delay=float(os.getenv("ADSYNC_INTER_ACCOUNT_DELAY", "1.0")),
            store_timeout=float(os.getenv("ADSYNC_STORE_TIMEOUT", "5.0")),
            request_timeout=float(os.getenv("ADSYNC_REQUEST_TIMEOUT", "10")),
            call_timeout=float(os.getenv("ADSYNC_CALL_TIMEOUT", "30")),
            stale_after_hours=float(os.getenv("ADSYNC_STALE_AFTER_HOURS", "24")),
            queue_size=int(os.getenv("ADSYNC_QUEUE_SIZE", "100")),
            shopee_base_url=os.getenv("SHOPEE_BASE_URL", DEFAULT_BASE_URL),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
        )
