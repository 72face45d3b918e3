"""Unit tests for API routes."""
import sqlite3
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from adsync_core.main import create_app
from adsync_core.metrics.accounts import AccountStatus
from adsync_core.metrics.exceptions import StoreUnavailableError
from adsync_core.schemas.metrics import Campaign, MetricValues
from adsync_core.services import build_services, close_services
from adsync_core.shopee.exceptions import ShopeePayloadError
from adsync_core.shopee.payloads import EmptyPayload
from adsync_core.sync.config import SyncConfig


HEADERS = {"X-ADSYNC-API-KEY": "test-api-key"}


@pytest.fixture
def services():
    """Service graph over an in-memory database and a mocked HTTP session."""
    config = SyncConfig(inter_account_delay=0)
    services = build_services(config, session=MagicMock(), db_path=":memory:")
    services.client.fetch_range = AsyncMock()
    services.client.verify_session = AsyncMock()
    services.client.fetch_campaign_list = AsyncMock()
    yield services
    close_services(services)


@pytest.fixture
def client(monkeypatch, services):
    """Create test client with mocked environment."""
    monkeypatch.setenv("ADSYNC_API_KEY", "test-api-key")
    app = create_app(services)
    with TestClient(app) as client:
        yield client


def test_sync_returns_stored_summary(client, services):
    """Test sync answers from the store and queues repair for gaps."""
    services.registry.register("acc-1", credential="c")
    services.store.upsert("acc-1", date(2024, 12, 1), MetricValues(spend=12.5, clicks=4))

    response = client.post(
        "/api/v1/sync",
        json={"account_ids": ["acc-1"], "start_date": "2024-12-02", "end_date": "2024-12-01"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["start_date"] == "2024-12-01"
    assert data["end_date"] == "2024-12-02"
    record = data["accounts"][0]
    assert record["summary"]["spend"] == 12.5
    assert record["missing_dates"] == ["2024-12-02"]
    assert record["effective_health"] == "sync"
    assert data["repair_batch_id"] is not None
    assert services.worker.pending == 1
    services.client.fetch_range.assert_not_called()


def test_sync_empty_account_ids(client):
    """Test sync rejects an empty account list."""
    response = client.post("/api/v1/sync", json={"account_ids": []}, headers=HEADERS)

    assert response.status_code == 400


def test_sync_registry_unavailable(client, services):
    """Test an unreadable registry maps to 503."""
    services.engine.registry = MagicMock()
    services.engine.registry.get_many.side_effect = StoreUnavailableError(
        "account read", sqlite3.OperationalError("disk I/O error")
    )

    response = client.post("/api/v1/sync", json={"account_ids": ["acc-1"]}, headers=HEADERS)

    assert response.status_code == 503


def test_refresh_account(client, services):
    """Test refresh stores the range and returns the split."""
    services.registry.register("acc-1", credential="c", stored_status=AccountStatus.INACTIVE)
    services.client.fetch_range.return_value = EmptyPayload(
        start=date(2024, 12, 1), end=date(2024, 12, 2)
    )

    response = client.post(
        "/api/v1/accounts/acc-1/refresh",
        json={"start_date": "2024-12-01", "end_date": "2024-12-02"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["synced_dates"] == ["2024-12-01", "2024-12-02"]
    assert data["failed_dates"] == []
    assert data["stored_status"] == "active"


def test_refresh_errors(client, services):
    """Test unknown accounts give 404 and missing cookies give 409."""
    services.registry.register("no-cookies", credential=None)

    missing = client.post("/api/v1/accounts/ghost/refresh", json={}, headers=HEADERS)
    no_cookies = client.post("/api/v1/accounts/no-cookies/refresh", json={}, headers=HEADERS)

    assert missing.status_code == 404
    assert no_cookies.status_code == 409


def test_verify_account(client, services):
    """Test verify returns the new session health."""
    services.registry.register("acc-1", credential="c")
    services.client.verify_session.return_value = False

    response = client.post("/api/v1/accounts/acc-1/verify", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"account_id": "acc-1", "health": "expired"}


def test_accounts_health(client, services):
    """Test health listing with per-value counts."""
    services.registry.register("a", credential="c", owner_user_id="u1")
    services.registry.register("b", credential=None, owner_user_id="u1")
    services.registry.register(
        "c",
        credential="c",
        stored_status=None,
        owner_user_id="u2",
        last_sync_at=datetime(2024, 12, 1, tzinfo=timezone.utc),
    )

    response = client.get("/api/v1/accounts/health", headers=HEADERS)
    scoped = client.get("/api/v1/accounts/health?owner_user_id=u1", headers=HEADERS)

    summary = response.json()["summary"]
    assert summary["total"] == 3
    assert summary["healthy"] == 1
    assert summary["no_cookies"] == 1
    assert summary["warning"] == 1
    assert summary["needs_update"] == 1
    assert len(scoped.json()["accounts"]) == 2


def test_sync_reports(client, services):
    """Test reports include the persisted outcome ledger."""
    services.store.record_outcome("batch-1", "acc-1", "synced", [date(2024, 12, 1)])

    response = client.get("/api/v1/sync/reports?account_id=acc-1", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["batches"] == []
    assert data["outcomes"][0]["batch_id"] == "batch-1"
    assert data["outcomes"][0]["synced_dates"] == ["2024-12-01"]


def test_classify_inline_campaigns(client):
    """Test inline campaigns are classified against each other."""
    response = client.post(
        "/api/v1/campaigns/classify",
        json={
            "campaigns": [
                {"campaign_id": "1", "spend": 100, "revenue": 300, "ctr": 2, "conversion_rate": 1},
                {"campaign_id": "2", "spend": 100, "revenue": 50, "ctr": 0.1, "conversion_rate": 0.1},
            ]
        },
        headers=HEADERS,
    )

    assert response.status_code == 200
    data = response.json()
    categories = {p["campaign_id"]: p["category"] for p in data["positions"]}
    assert categories == {"1": "stars", "2": "dogs"}
    assert data["counts"]["stars"] == 1
    assert data["counts"]["cash_cows"] == 0


def test_classify_fetches_campaigns_per_account(client, services):
    """Test campaigns are fetched for accounts with cookies only."""
    services.registry.register("acc-1", credential="c")
    services.registry.register("acc-2", credential=None)
    services.client.fetch_campaign_list.return_value = [
        Campaign(campaign_id="9", account_id="acc-1", spend=10, revenue=30, ctr=3)
    ]

    response = client.post(
        "/api/v1/campaigns/classify",
        json={
            "account_ids": ["acc-1", "acc-2"],
            "start_date": "2024-12-01",
            "end_date": "2024-12-07",
        },
        headers=HEADERS,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["skipped_accounts"] == ["acc-2"]
    assert data["positions"][0]["category"] == "question_marks"
    services.client.fetch_campaign_list.assert_awaited_once_with(
        "c", date(2024, 12, 1), date(2024, 12, 7), account_id="acc-1"
    )


def test_classify_skips_account_with_malformed_payload(client, services):
    """Test an unparseable campaign list skips that account only."""
    services.registry.register("acc-1", credential="c")
    services.registry.register("acc-2", credential="c")
    services.client.fetch_campaign_list.side_effect = [
        ShopeePayloadError("entry_list item is not an object"),
        [Campaign(campaign_id="9", account_id="acc-2", spend=10, revenue=30, ctr=3)],
    ]

    response = client.post(
        "/api/v1/campaigns/classify",
        json={"account_ids": ["acc-1", "acc-2"]},
        headers=HEADERS,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["skipped_accounts"] == ["acc-1"]
    assert [p["campaign_id"] for p in data["positions"]] == ["9"]


def test_classify_requires_campaigns(client):
    """Test classify rejects an empty request."""
    response = client.post("/api/v1/campaigns/classify", json={}, headers=HEADERS)

    assert response.status_code == 400
