"""Pydantic models for normalized ad metrics and sync results."""
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, Field


ADDITIVE_FIELDS = (
    "spend",
    "revenue_broad",
    "revenue_direct",
    "clicks",
    "orders",
    "orders_direct",
    "impressions",
    "views",
    "checkouts",
)

RATIO_FIELDS = (
    "ctr",
    "cpc",
    "conversion_rate",
    "direct_conversion_rate",
    "broad_roas",
    "direct_roas",
    "cpm",
)

INTEGER_FIELDS = frozenset(
    {"clicks", "orders", "orders_direct", "impressions", "views", "checkouts"}
)


class MetricValues(BaseModel):
    """Metric snapshot for one account over one day (or one range).

    Additive fields are totals. Ratio fields are cached as reported by the
    ad platform and are never recomputed from the totals.
    """

    spend: float = 0.0
    revenue_broad: float = 0.0
    revenue_direct: float = 0.0
    clicks: int = 0
    orders: int = 0
    orders_direct: int = 0
    impressions: int = 0
    views: int = 0
    checkouts: int = 0

    ctr: Optional[float] = None
    cpc: Optional[float] = None
    conversion_rate: Optional[float] = None
    direct_conversion_rate: Optional[float] = None
    broad_roas: Optional[float] = None
    direct_roas: Optional[float] = None
    cpm: Optional[float] = None

    @classmethod
    def zero(cls) -> "MetricValues":
        return cls(**{name: 0.0 for name in RATIO_FIELDS})


class DailyAggregate(BaseModel):
    """Canonical stored snapshot for one (account_id, date)."""

    account_id: str
    metric_date: date
    metrics: MetricValues


class MetricsSummary(MetricValues):
    """Range summary: summed additive fields, day-averaged ratio fields."""

    days_with_data: int = Field(0, description="Stored days that contributed")


class CampaignState(str, Enum):
    """Campaign lifecycle state."""

    ONGOING = "ongoing"
    PAUSED = "paused"
    ENDED = "ended"


class Campaign(BaseModel):
    """Campaign with rolling-window totals used by the BCG classifier."""

    campaign_id: str
    account_id: Optional[str] = None
    title: str = ""
    state: CampaignState = CampaignState.ONGOING
    spend: float = 0.0
    revenue: float = 0.0
    clicks: int = 0
    impressions: int = 0
    orders: int = 0
    ctr: float = Field(0.0, description="Click-through rate in percent")
    conversion_rate: float = Field(0.0, description="Orders per click in percent")

    @property
    def roas(self) -> float:
        if self.spend <= 0:
            return 0.0
        return self.revenue / self.spend


class RefreshResult(BaseModel):
    """Outcome of a synchronous single-account refresh."""

    account_id: str
    synced_dates: list[date] = Field(default_factory=list)
    failed_dates: list[date] = Field(default_factory=list)
    stored_status: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return bool(self.synced_dates) and not self.failed_dates


class AccountSyncRecord(BaseModel):
    """Phase-1 view of one account."""

    account_id: str
    summary: Optional[MetricsSummary] = None
    missing_dates: list[date] = Field(default_factory=list)
    health: Optional[str] = Field(
        None, description="Session health; None for deleted accounts"
    )
    effective_health: str = Field(
        ..., description="UI-facing health: 'sync' when gaps exist, 'deleted' for deleted accounts"
    )
    degraded: bool = Field(
        False, description="True when the stored metrics could not be read"
    )


class SynchronizeResult(BaseModel):
    """Phase-1 response for a set of accounts."""

    start_date: date
    end_date: date
    accounts: list[AccountSyncRecord] = Field(default_factory=list)
    repair_batch_id: Optional[str] = Field(
        None, description="Phase-2 batch id when background repair was scheduled"
    )


def summarize_metrics(values: Iterable[MetricValues]) -> MetricsSummary:
    """Sum additive fields and average ratio fields over the given days.

    Ratios are averaged across the days that report them; days where a
    ratio is missing do not pull the average towards zero.
    """
    values = list(values)
    totals: dict[str, float] = {name: 0 for name in ADDITIVE_FIELDS}
    ratio_sums: dict[str, float] = {name: 0.0 for name in RATIO_FIELDS}
    ratio_counts: dict[str, int] = {name: 0 for name in RATIO_FIELDS}

    for value in values:
        for name in ADDITIVE_FIELDS:
            totals[name] += getattr(value, name) or 0
        for name in RATIO_FIELDS:
            ratio = getattr(value, name)
            if ratio is not None:
                ratio_sums[name] += ratio
                ratio_counts[name] += 1

    fields: dict[str, object] = {}
    for name in ADDITIVE_FIELDS:
        total = totals[name]
        fields[name] = int(total) if name in INTEGER_FIELDS else round(total, 2)
    for name in RATIO_FIELDS:
        count = ratio_counts[name]
        fields[name] = round(ratio_sums[name] / count, 4) if count else 0.0

    return MetricsSummary(days_with_data=len(values), **fields)
