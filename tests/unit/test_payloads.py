"""Unit tests for Shopee payload resolution."""
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from adsync_core.schemas.metrics import CampaignState
from adsync_core.shopee.exceptions import ShopeePayloadError
from adsync_core.shopee.payloads import (
    DailyBreakdown,
    EmptyPayload,
    RangeAggregate,
    aggregate_entries,
    normalize_report,
    parse_campaign_list,
    resolve_metrics_payload,
)


JAKARTA = ZoneInfo("Asia/Jakarta")
START = date(2024, 12, 1)
END = date(2024, 12, 3)


def _ts(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=JAKARTA).timestamp())


def _report(**overrides):
    report = {
        "cost": 500000,
        "broad_gmv": 2000000,
        "direct_gmv": 1000000,
        "click": 10,
        "impression": 100,
        "broad_order": 2,
        "direct_order": 1,
        "ctr": 0.1,
        "cr": 0.2,
        "cpc": 50000,
        "broad_roi": 4.0,
    }
    report.update(overrides)
    return report


def test_normalize_report_scales_money():
    """Test money fields are divided by 100000 and aliases are honored."""
    metrics = normalize_report(_report())

    assert metrics.spend == 5.0
    assert metrics.revenue_broad == 20.0
    assert metrics.revenue_direct == 10.0
    assert metrics.cpc == 0.5
    assert metrics.clicks == 10
    assert metrics.impressions == 100
    assert metrics.ctr == 0.1
    assert metrics.broad_roas == 4.0
    assert metrics.cpm is None


def test_series_resolves_to_daily_breakdown():
    """Test a time series becomes one entry per calendar date."""
    body = {
        "code": 0,
        "data": {
            "report_by_time": [
                {"key": _ts(date(2024, 12, 1)), **_report()},
                {"key": _ts(date(2024, 12, 2)), **_report(cost=100000)},
                {"key": _ts(date(2024, 12, 9)), **_report()},
            ]
        },
    }

    payload = resolve_metrics_payload(body, START, END, JAKARTA)

    assert isinstance(payload, DailyBreakdown)
    assert set(payload.days) == {date(2024, 12, 1), date(2024, 12, 2)}
    assert payload.days[date(2024, 12, 2)].spend == 1.0


def test_series_merges_points_for_same_day():
    """Test several points on one day are summed."""
    body = {
        "data": {
            "points": [
                {"timestamp": _ts(date(2024, 12, 1)), **_report()},
                {"timestamp": _ts(date(2024, 12, 1)) + 3600, **_report()},
            ]
        }
    }

    payload = resolve_metrics_payload(body, START, END, JAKARTA)

    assert payload.days[date(2024, 12, 1)].spend == 10.0
    assert payload.days[date(2024, 12, 1)].clicks == 20


def test_report_aggregate_resolves_to_range_aggregate():
    """Test an aggregate without day detail is kept as one range value."""
    body = {"code": 0, "data": {"report_aggregate": _report()}}

    payload = resolve_metrics_payload(body, START, END, JAKARTA)

    assert isinstance(payload, RangeAggregate)
    assert (payload.start, payload.end) == (START, END)
    assert payload.metrics.spend == 5.0


def test_entry_list_resolves_to_range_aggregate():
    """Test campaign entries are summed into a range aggregate."""
    body = {
        "data": {
            "entry_list": [
                {"campaign": {"campaign_id": 1}, "report": _report()},
                {"campaign": {"campaign_id": 2}, "report": _report(click=30, impression=100)},
            ]
        }
    }

    payload = resolve_metrics_payload(body, START, END, JAKARTA)

    assert isinstance(payload, RangeAggregate)
    assert payload.metrics.spend == 10.0
    assert payload.metrics.clicks == 40
    assert payload.metrics.ctr == 0.2


@pytest.mark.parametrize(
    "body",
    [
        {"code": 0, "data": None},
        {"code": 0, "data": {}},
        {"code": 0, "data": {"report_by_time": []}},
        {"code": 0, "data": {"entry_list": [], "total": 0}},
    ],
)
def test_empty_shapes_resolve_to_empty_payload(body):
    """Test explicit no-activity responses are distinguished from errors."""
    payload = resolve_metrics_payload(body, START, END, JAKARTA)

    assert payload == EmptyPayload(start=START, end=END)


def test_unknown_shape_raises():
    """Test an unrecognized body raises ShopeePayloadError."""
    with pytest.raises(ShopeePayloadError):
        resolve_metrics_payload({"data": {"something_else": 1}}, START, END, JAKARTA)

    with pytest.raises(ShopeePayloadError):
        resolve_metrics_payload(["not", "a", "dict"], START, END, JAKARTA)


def test_series_point_without_timestamp_raises():
    """Test series points must carry a timestamp."""
    body = {"data": {"time_graph": [{"cost": 1}]}}

    with pytest.raises(ShopeePayloadError):
        resolve_metrics_payload(body, START, END, JAKARTA)


def test_series_point_with_invalid_date_raises():
    """Test a malformed YYYY-MM-DD key raises ShopeePayloadError."""
    body = {"data": {"time_graph": [{"key": "2024-13-45", "cost": 1}]}}

    with pytest.raises(ShopeePayloadError, match="invalid series date"):
        resolve_metrics_payload(body, START, END, JAKARTA)


def test_non_object_entries_raise():
    """Test entry_list items that are not objects raise ShopeePayloadError."""
    with pytest.raises(ShopeePayloadError):
        resolve_metrics_payload({"data": {"entry_list": ["oops"]}}, START, END, JAKARTA)

    with pytest.raises(ShopeePayloadError):
        parse_campaign_list({"data": {"entry_list": [42]}})

    with pytest.raises(ShopeePayloadError):
        parse_campaign_list({"data": {"entry_list": [{"campaign": "7"}]}})


def test_non_object_report_raises():
    """Test a report that is not an object raises ShopeePayloadError."""
    with pytest.raises(ShopeePayloadError):
        normalize_report(["cost", 1])


def test_aggregate_entries_empty_ratios_are_zero():
    """Test ratios derived from zero totals are zero, not division errors."""
    metrics = aggregate_entries([{"report": {}}])

    assert metrics.ctr == 0.0
    assert metrics.broad_roas == 0.0


def test_parse_campaign_list():
    """Test homepage entries become Campaign records with percent ratios."""
    body = {
        "code": 0,
        "data": {
            "entry_list": [
                {
                    "campaign": {"campaign_id": 11, "name": "Promo A", "state": "paused"},
                    "report": _report(),
                },
                {"campaign": {}, "report": _report()},
                {
                    "campaign": {"campaign_id": 12, "name": "Promo B"},
                    "report": {"cost": 0, "click": 4, "impression": 200, "broad_order": 1},
                },
            ]
        },
    }

    campaigns = parse_campaign_list(body, account_id="acc-1")

    assert [c.campaign_id for c in campaigns] == ["11", "12"]
    first, second = campaigns
    assert first.account_id == "acc-1"
    assert first.state == CampaignState.PAUSED
    assert first.revenue == 20.0
    assert first.roas == 4.0
    assert first.ctr == 10.0
    assert first.conversion_rate == 20.0
    assert second.ctr == 2.0
    assert second.conversion_rate == 25.0
    assert second.roas == 0.0
