"""Session ("cookie") health derived from stored account state.

Health is a projection of what Phase 2 or a manual refresh last wrote to
the account row. It never calls the ad platform.
"""
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from ..metrics.accounts import Account, AccountStatus


class SessionHealth(str, Enum):
    """Connectivity state of an account's session cookies."""

    HEALTHY = "healthy"
    WARNING = "warning"
    EXPIRED = "expired"
    NO_COOKIES = "no_cookies"
    NEVER_TESTED = "never_tested"


class EffectiveHealth(str, Enum):
    """UI-facing health: session health escalated by gaps and deletion."""

    HEALTHY = "healthy"
    WARNING = "warning"
    EXPIRED = "expired"
    NO_COOKIES = "no_cookies"
    NEVER_TESTED = "never_tested"
    SYNC = "sync"
    DELETED = "deleted"


UNSYNCABLE = frozenset({SessionHealth.EXPIRED, SessionHealth.NO_COOKIES})


def classify(account: Account) -> Optional[SessionHealth]:
    """Derive session health; first matching rule wins.

    Returns None for deleted accounts, which callers display as deleted
    and exclude from any sync action.
    """
    if account.stored_status == AccountStatus.DELETED:
        return None
    if not account.has_credential:
        return SessionHealth.NO_COOKIES
    if account.stored_status == AccountStatus.ACTIVE:
        return SessionHealth.HEALTHY
    if account.stored_status == AccountStatus.INACTIVE:
        return SessionHealth.EXPIRED
    if account.last_sync_at is None:
        return SessionHealth.NEVER_TESTED
    return SessionHealth.WARNING


def effective_health(
    health: Optional[SessionHealth], missing_dates: Collection[date] = ()
) -> EffectiveHealth:
    """Escalate to SYNC when the range has gaps and the session could fill them."""
    if health is None:
        return EffectiveHealth.DELETED
    if missing_dates and health not in UNSYNCABLE:
        return EffectiveHealth.SYNC
    return EffectiveHealth(health.value)


def is_sync_eligible(account: Account) -> bool:
    """True when a background pass may call the platform for this account."""
    health = classify(account)
    return health is not None and health not in UNSYNCABLE


def is_stale(account: Account, now: datetime, stale_after_hours: float) -> bool:
    """True when the last successful sync is missing or older than the threshold."""
    if account.last_sync_at is None:
        return True
    last_sync = account.last_sync_at
    if last_sync.tzinfo is None and now.tzinfo is not None:
        last_sync = last_sync.replace(tzinfo=now.tzinfo)
    return now - last_sync > timedelta(hours=stale_after_hours)


def needs_update(health: Optional[SessionHealth]) -> bool:
    """True when an operator should paste fresh cookies or run a refresh."""
    return health in (
        SessionHealth.EXPIRED,
        SessionHealth.NO_COOKIES,
        SessionHealth.NEVER_TESTED,
    )


@dataclass
class HealthSummary:
    """Account counts per health value."""

    total: int = 0
    healthy: int = 0
    warning: int = 0
    expired: int = 0
    no_cookies: int = 0
    never_tested: int = 0
    deleted: int = 0
    needs_update: int = 0


def summarize_health(accounts: Iterable[Account]) -> HealthSummary:
    summary = HealthSummary()
    for account in accounts:
        summary.total += 1
        health = classify(account)
        if health is None:
            summary.deleted += 1
            continue
        setattr(summary, health.value, getattr(summary, health.value) + 1)
        if needs_update(health):
            summary.needs_update += 1
    return summary
