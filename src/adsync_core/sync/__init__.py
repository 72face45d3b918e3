"""Account reconciliation: health, collection, background repair and refresh."""
from .collector import AccountCollector, CollectResult
from .config import SyncConfig
from .engine import ReconciliationEngine
from .exceptions import (
    AccountNotFoundError,
    AccountRefreshLockedError,
    CredentialMissingError,
    ReconcileQueueFullError,
    SyncError,
)
from .health import EffectiveHealth, HealthSummary, SessionHealth, classify, summarize_health
from .refresh import ManualRefresh
from .worker import (
    AccountOutcome,
    BatchReport,
    OutcomeStatus,
    ReconcileBatch,
    ReconcileJob,
    ReconcileWorker,
)

__all__ = [
    "AccountCollector",
    "CollectResult",
    "SyncConfig",
    "ReconciliationEngine",
    "SyncError",
    "AccountNotFoundError",
    "AccountRefreshLockedError",
    "CredentialMissingError",
    "ReconcileQueueFullError",
    "SessionHealth",
    "EffectiveHealth",
    "HealthSummary",
    "classify",
    "summarize_health",
    "ManualRefresh",
    "ReconcileWorker",
    "ReconcileBatch",
    "ReconcileJob",
    "AccountOutcome",
    "BatchReport",
    "OutcomeStatus",
]
