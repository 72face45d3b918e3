"""FastAPI routes for synchronization, refresh, health and classification."""
import asyncio
import logging
from dataclasses import asdict
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..analysis.bcg import (
    EngagementGrowth,
    GrowthStrategy,
    PeriodOverPeriodGrowth,
    category_counts,
    classify_positions,
)
from ..dates import DateRange
from ..metrics.exceptions import StoreUnavailableError
from ..schemas.metrics import Campaign, RefreshResult, SynchronizeResult
from ..services import Services
from ..shopee.exceptions import ShopeeClientError
from ..sync.exceptions import (
    AccountNotFoundError,
    AccountRefreshLockedError,
    CredentialMissingError,
)
from ..sync.health import classify, needs_update, summarize_health
from .auth import require_api_key


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(require_api_key)], tags=["sync"])


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services not initialized",
        )
    return services


def _store_unavailable(exc: StoreUnavailableError) -> HTTPException:
    logger.error("Store unavailable: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Metrics store unavailable",
    )


class SyncRequest(BaseModel):
    """Request payload for a synchronization pass."""

    account_ids: list[str] = Field(..., description="Accounts to synchronize (non-empty)")
    start_date: Optional[date] = Field(None, description="Range start (default: 7 days ago)")
    end_date: Optional[date] = Field(None, description="Range end (default: yesterday)")
    schedule_repair: bool = Field(
        True, description="Queue background repair for accounts with gaps or stale data"
    )


class RefreshRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class VerifyResponse(BaseModel):
    account_id: str
    health: str


class AccountHealthItem(BaseModel):
    account_id: str
    display_name: Optional[str] = None
    stored_status: Optional[str] = None
    health: Optional[str] = None
    needs_update: bool
    last_sync_at: Optional[str] = None


class HealthResponse(BaseModel):
    """Per-account session health with totals per health value."""

    summary: dict[str, int]
    accounts: list[AccountHealthItem]


class OutcomeItem(BaseModel):
    account_id: str
    status: str
    synced_dates: list[date] = Field(default_factory=list)
    failed_dates: list[date] = Field(default_factory=list)
    error: Optional[str] = None


class BatchReportItem(BaseModel):
    batch_id: str
    started_at: str
    finished_at: Optional[str] = None
    outcomes: list[OutcomeItem]


class ReportsResponse(BaseModel):
    pending_batches: int
    batches: list[BatchReportItem]
    outcomes: list[dict]


class ClassifyRequest(BaseModel):
    """Campaigns to classify, given inline or fetched per account."""

    campaigns: list[Campaign] = Field(
        default_factory=list, description="Inline campaign metrics"
    )
    previous_campaigns: list[Campaign] = Field(
        default_factory=list,
        description="Same campaigns over the previous period (enables period-over-period growth)",
    )
    account_ids: list[str] = Field(
        default_factory=list, description="Fetch campaigns for these accounts instead"
    )
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    compare_previous: bool = Field(
        False, description="When fetching, also fetch the preceding period of equal length"
    )


class PositionItem(BaseModel):
    campaign_id: str
    title: str
    roas: float
    growth_rate: float
    market_share: float
    category: str


class ClassifyResponse(BaseModel):
    positions: list[PositionItem]
    counts: dict[str, int]
    skipped_accounts: list[str] = Field(default_factory=list)


@router.post(
    "/sync",
    response_model=SynchronizeResult,
    summary="Synchronize accounts from stored data",
    description=(
        "Answers from stored daily aggregates without calling the ad platform. "
        "Accounts with gaps or stale data are queued for background repair."
    ),
)
async def synchronize(payload: SyncRequest, request: Request) -> SynchronizeResult:
    if not payload.account_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="account_ids must be non-empty",
        )

    services = get_services(request)
    try:
        return await services.engine.synchronize(
            payload.account_ids,
            payload.start_date,
            payload.end_date,
            schedule_repair=payload.schedule_repair,
        )
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc


@router.post(
    "/accounts/{account_id}/refresh",
    response_model=RefreshResult,
    summary="Refresh one account now",
)
async def refresh_account(
    account_id: str, payload: RefreshRequest, request: Request
) -> RefreshResult:
    """Fetch and store the range for one account while the caller waits."""
    services = get_services(request)
    date_range = services.engine.resolve_range(payload.start_date, payload.end_date)

    try:
        return await services.refresh.refresh(account_id, date_range.start, date_range.end)
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (CredentialMissingError, AccountRefreshLockedError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc


@router.post("/accounts/{account_id}/verify", response_model=VerifyResponse)
async def verify_account(account_id: str, request: Request) -> VerifyResponse:
    services = get_services(request)
    try:
        health = await services.refresh.verify(account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc
    return VerifyResponse(account_id=account_id, health=health.value)


@router.get("/accounts/health", response_model=HealthResponse)
async def accounts_health(
    request: Request, owner_user_id: Optional[str] = Query(None)
) -> HealthResponse:
    services = get_services(request)
    try:
        accounts = await asyncio.to_thread(
            services.registry.list_accounts, owner_user_id, True
        )
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc

    items = []
    for account in accounts:
        health = classify(account)
        items.append(
            AccountHealthItem(
                account_id=account.account_id,
                display_name=account.display_name,
                stored_status=account.stored_status.value if account.stored_status else None,
                health=health.value if health else None,
                needs_update=needs_update(health),
                last_sync_at=account.last_sync_at.isoformat() if account.last_sync_at else None,
            )
        )

    return HealthResponse(summary=asdict(summarize_health(accounts)), accounts=items)


@router.get("/sync/reports", response_model=ReportsResponse)
async def sync_reports(
    request: Request,
    account_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
) -> ReportsResponse:
    """Recent background batches and the persisted per-account outcome ledger."""
    services = get_services(request)
    try:
        outcomes = await asyncio.to_thread(
            services.store.recent_outcomes, account_id, limit
        )
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc

    batches = [
        BatchReportItem(
            batch_id=report.batch_id,
            started_at=report.started_at.isoformat(),
            finished_at=report.finished_at.isoformat() if report.finished_at else None,
            outcomes=[
                OutcomeItem(
                    account_id=outcome.account_id,
                    status=outcome.status.value,
                    synced_dates=outcome.synced_dates,
                    failed_dates=outcome.failed_dates,
                    error=outcome.error,
                )
                for outcome in report.outcomes
            ],
        )
        for report in services.worker.reports
    ]
    return ReportsResponse(
        pending_batches=services.worker.pending, batches=batches, outcomes=outcomes
    )


async def _fetch_campaigns(
    services: Services, account_ids: list[str], date_range: DateRange
) -> tuple[list[Campaign], list[str]]:
    accounts = await asyncio.to_thread(services.registry.get_many, account_ids)
    campaigns: list[Campaign] = []
    skipped: list[str] = []
    for account_id in account_ids:
        account = accounts.get(account_id)
        if account is None or not account.has_credential:
            skipped.append(account_id)
            continue
        try:
            campaigns.extend(
                await services.client.fetch_campaign_list(
                    account.credential or "",
                    date_range.start,
                    date_range.end,
                    account_id=account_id,
                )
            )
        except ShopeeClientError as exc:
            logger.warning("Campaign fetch failed for %s: %s", account_id, exc)
            skipped.append(account_id)
    return campaigns, skipped


@router.post("/campaigns/classify", response_model=ClassifyResponse)
async def classify_campaigns(payload: ClassifyRequest, request: Request) -> ClassifyResponse:
    """Place campaigns on the growth/share matrix.

    The cohort is everything classified in one request. Growth uses
    period-over-period revenue when previous-period campaigns are given,
    otherwise the CTR/conversion proxy.
    """
    campaigns = list(payload.campaigns)
    previous = list(payload.previous_campaigns)
    skipped: list[str] = []

    if payload.account_ids:
        services = get_services(request)
        date_range = services.engine.resolve_range(payload.start_date, payload.end_date)
        try:
            fetched, skipped = await _fetch_campaigns(services, payload.account_ids, date_range)
            campaigns.extend(fetched)
            if payload.compare_previous:
                prior_end = date_range.start - timedelta(days=1)
                prior = DateRange(prior_end - timedelta(days=date_range.days - 1), prior_end)
                fetched_previous, _ = await _fetch_campaigns(
                    services, payload.account_ids, prior
                )
                previous.extend(fetched_previous)
        except StoreUnavailableError as exc:
            raise _store_unavailable(exc) from exc

    if not campaigns:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No campaigns to classify",
        )

    strategy: GrowthStrategy = (
        PeriodOverPeriodGrowth(previous) if previous else EngagementGrowth()
    )
    positions = classify_positions(campaigns, strategy)
    counts = category_counts(positions)

    return ClassifyResponse(
        positions=[
            PositionItem(
                campaign_id=p.campaign_id,
                title=p.title,
                roas=p.roas,
                growth_rate=p.growth_rate,
                market_share=p.market_share,
                category=p.category.value,
            )
            for p in positions
        ],
        counts={category.value: count for category, count in counts.items()},
        skipped_accounts=skipped,
    )
