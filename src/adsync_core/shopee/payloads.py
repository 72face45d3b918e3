"""Resolve raw Shopee Ads responses into normalized payload variants.

The platform answers the same report request with different shapes
depending on endpoint and data availability. Each shape is resolved once
here so callers only deal with:

- DailyBreakdown: per-day metric series
- RangeAggregate: one aggregate for the whole requested range
- EmptyPayload: successful response with no activity

Monetary fields arrive multiplied by MONEY_DIVISOR.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Optional, Union

from ..schemas.metrics import (
    Campaign,
    CampaignState,
    MetricValues,
    summarize_metrics,
)
from .exceptions import ShopeePayloadError


MONEY_DIVISOR = 100_000

SERIES_KEYS = ("report_by_time", "time_graph", "points", "report_list")
TIMESTAMP_KEYS = ("key", "timestamp", "time", "start_time")

CAMPAIGN_STATE_MAP = {
    "ongoing": CampaignState.ONGOING,
    "scheduled": CampaignState.ONGOING,
    "paused": CampaignState.PAUSED,
    "ended": CampaignState.ENDED,
    "closed": CampaignState.ENDED,
    "deleted": CampaignState.ENDED,
}


@dataclass(frozen=True)
class DailyBreakdown:
    """Per-day metrics keyed by calendar date."""

    days: dict[date, MetricValues] = field(default_factory=dict)


@dataclass(frozen=True)
class RangeAggregate:
    """Single aggregate covering [start, end] without day-level detail."""

    start: date
    end: date
    metrics: MetricValues


@dataclass(frozen=True)
class EmptyPayload:
    """Successful response reporting no activity in [start, end]."""

    start: date
    end: date


MetricsPayload = Union[DailyBreakdown, RangeAggregate, EmptyPayload]


def _number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _money(value: Any) -> float:
    number = _number(value)
    if number is None:
        return 0.0
    return round(number / MONEY_DIVISOR, 2)


def _count(value: Any) -> int:
    number = _number(value)
    if number is None:
        return 0
    return int(number)


def _ratio(value: Any, divide_by: float = 1) -> Optional[float]:
    number = _number(value)
    if number is None:
        return None
    return round(number / divide_by, 4)


def _first(report: dict, *keys: str) -> Any:
    for key in keys:
        value = report.get(key)
        if value is not None:
            return value
    return None


def normalize_report(report: dict) -> MetricValues:
    """Convert one raw report dict into MetricValues."""
    if not isinstance(report, dict):
        raise ShopeePayloadError("report is not an object", report)
    return MetricValues(
        spend=_money(_first(report, "cost", "spend", "total_cost")),
        revenue_broad=_money(_first(report, "broad_gmv", "gmv")),
        revenue_direct=_money(report.get("direct_gmv")),
        clicks=_count(_first(report, "click", "clicks", "click_count")),
        orders=_count(_first(report, "broad_order", "order", "broad_order_count")),
        orders_direct=_count(report.get("direct_order")),
        impressions=_count(_first(report, "impression", "impressions", "impression_count")),
        views=_count(_first(report, "view", "views", "view_count")),
        checkouts=_count(report.get("checkout")),
        ctr=_ratio(report.get("ctr")),
        cpc=_ratio(report.get("cpc"), MONEY_DIVISOR),
        conversion_rate=_ratio(report.get("cr")),
        direct_conversion_rate=_ratio(report.get("direct_cr")),
        broad_roas=_ratio(_first(report, "broad_roi", "roi")),
        direct_roas=_ratio(report.get("direct_roi")),
        cpm=_ratio(report.get("cpm")),
    )


def aggregate_entries(entries: list[dict]) -> MetricValues:
    """Sum campaign entry reports into one account-level snapshot.

    Ratios are derived from the summed totals since the per-campaign
    ratios cannot be added.
    """
    for entry in entries:
        if not isinstance(entry, dict):
            raise ShopeePayloadError("entry_list item is not an object", entry)
    totals = summarize_metrics(
        normalize_report(entry.get("report") or {}) for entry in entries
    )
    fields = totals.model_dump(exclude={"days_with_data"})

    clicks = totals.clicks
    impressions = totals.impressions
    spend = totals.spend
    fields.update(
        ctr=round(clicks / impressions, 4) if impressions else 0.0,
        cpc=round(spend / clicks, 4) if clicks else 0.0,
        conversion_rate=round(totals.orders / clicks, 4) if clicks else 0.0,
        direct_conversion_rate=round(totals.orders_direct / clicks, 4) if clicks else 0.0,
        broad_roas=round(totals.revenue_broad / spend, 4) if spend else 0.0,
        direct_roas=round(totals.revenue_direct / spend, 4) if spend else 0.0,
        cpm=round(spend / impressions * 1000, 4) if impressions else 0.0,
    )
    return MetricValues(**fields)


def _point_date(point: dict, tz: tzinfo) -> Optional[date]:
    raw = _first(point, *TIMESTAMP_KEYS)
    if raw is None:
        return None
    if isinstance(raw, str) and len(raw) == 10 and raw[4] == "-":
        try:
            return date.fromisoformat(raw)
        except ValueError as exc:
            raise ShopeePayloadError(f"invalid series date {raw!r}", point) from exc
    seconds = _number(raw)
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz).date()


def _resolve_series(series: list, start: date, end: date, tz: tzinfo) -> DailyBreakdown:
    grouped: dict[date, list[MetricValues]] = {}
    for point in series:
        if not isinstance(point, dict):
            raise ShopeePayloadError("series point is not an object", point)
        day = _point_date(point, tz)
        if day is None:
            raise ShopeePayloadError("series point without timestamp", point)
        if day < start or day > end:
            continue
        report = point.get("metrics") or point.get("report") or point
        grouped.setdefault(day, []).append(normalize_report(report))

    days: dict[date, MetricValues] = {}
    for day, values in grouped.items():
        if len(values) == 1:
            days[day] = values[0]
        else:
            days[day] = MetricValues(
                **summarize_metrics(values).model_dump(exclude={"days_with_data"})
            )
    return DailyBreakdown(days=days)


def resolve_metrics_payload(
    body: Any, start: date, end: date, tz: tzinfo
) -> MetricsPayload:
    """Resolve a report response body into a payload variant.

    Args:
        body: Parsed JSON body (already checked for API-level errors)
        start: First requested date
        end: Last requested date (inclusive)
        tz: Timezone used to map series timestamps to calendar dates

    Raises:
        ShopeePayloadError: If the body has none of the known shapes
    """
    if not isinstance(body, dict):
        raise ShopeePayloadError("body is not an object", body)

    data = body.get("data", body)
    if data is None:
        return EmptyPayload(start=start, end=end)
    if not isinstance(data, dict):
        raise ShopeePayloadError("data is not an object", body)

    for key in SERIES_KEYS:
        series = data.get(key)
        if isinstance(series, list) and series:
            return _resolve_series(series, start, end, tz)

    aggregate = data.get("report_aggregate")
    if isinstance(aggregate, dict) and aggregate:
        return RangeAggregate(start=start, end=end, metrics=normalize_report(aggregate))

    entries = data.get("entry_list")
    if isinstance(entries, list) and entries:
        return RangeAggregate(start=start, end=end, metrics=aggregate_entries(entries))

    known = set(SERIES_KEYS) | {"report_aggregate", "entry_list"}
    if not data or known & set(data):
        return EmptyPayload(start=start, end=end)

    raise ShopeePayloadError(f"no known metrics keys in {sorted(data)[:10]}", body)


def _percent(ratio: Optional[float], numerator: float, denominator: float) -> float:
    if ratio is not None:
        return round(ratio * 100, 4)
    if denominator:
        return round(numerator / denominator * 100, 4)
    return 0.0


def parse_campaign_list(body: Any, account_id: Optional[str] = None) -> list[Campaign]:
    """Convert a homepage/query response into Campaign records."""
    if not isinstance(body, dict):
        raise ShopeePayloadError("body is not an object", body)

    data = body.get("data") or {}
    entries = data.get("entry_list") if isinstance(data, dict) else None
    if entries is None:
        entries = body.get("entry_list") or []
    if not isinstance(entries, list):
        raise ShopeePayloadError("entry_list is not a list", body)

    campaigns: list[Campaign] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ShopeePayloadError("entry_list item is not an object", entry)
        campaign = entry.get("campaign") or {}
        if not isinstance(campaign, dict):
            raise ShopeePayloadError("campaign is not an object", entry)
        campaign_id = campaign.get("campaign_id")
        if not campaign_id:
            continue

        report = entry.get("report") or {}
        metrics = normalize_report(report)
        state = str(campaign.get("state") or entry.get("state") or "ongoing").lower()

        campaigns.append(
            Campaign(
                campaign_id=str(campaign_id),
                account_id=account_id,
                title=campaign.get("name") or campaign.get("campaign_name") or "",
                state=CAMPAIGN_STATE_MAP.get(state, CampaignState.ONGOING),
                spend=metrics.spend,
                revenue=metrics.revenue_broad,
                clicks=metrics.clicks,
                impressions=metrics.impressions,
                orders=metrics.orders,
                ctr=_percent(metrics.ctr, metrics.clicks, metrics.impressions),
                conversion_rate=_percent(
                    metrics.conversion_rate, metrics.orders, metrics.clicks
                ),
            )
        )

    return campaigns
