"""Async Shopee Seller Ads client authenticated with session cookies."""
import asyncio
import logging
import random
import re
from datetime import date, datetime, time, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo

import aiohttp

from ..schemas.metrics import Campaign
from .exceptions import ShopeeApiError, ShopeePayloadError, ShopeeSessionExpiredError
from .payloads import MetricsPayload, parse_campaign_list, resolve_metrics_payload


DEFAULT_BASE_URL = "https://seller.shopee.co.id"

TIME_GRAPH_PATH = "/api/pas/v1/report/get_time_graph/"
HOMEPAGE_QUERY_PATH = "/api/pas/v1/homepage/query/"
ADS_DATA_PATH = "/api/pas/v1/meta/get_ads_data/"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36"
)

# Body-level codes the platform uses for a logged-out session
SESSION_ERROR_CODES = {2, 401, 403, 10002}


def clean_cookies(cookies: str) -> str:
    """Normalize a pasted cookie blob into a single Cookie header value."""
    collapsed = re.sub(r"\s+", " ", cookies or "").strip()
    parts = [part.strip() for part in collapsed.split(";")]
    return "; ".join(part for part in parts if part)


def day_bounds(start: date, end: date, tz: tzinfo) -> tuple[int, int]:
    """Unix seconds for start-of-day(start) and end-of-day(end) in tz."""
    start_ts = datetime.combine(start, time.min, tzinfo=tz).timestamp()
    end_ts = datetime.combine(end, time(23, 59, 59), tzinfo=tz).timestamp()
    return int(start_ts), int(end_ts)


class ShopeeAdsClient:
    """Async client for the Shopee Seller Centre ads endpoints.

    Every call takes the account's cookie blob explicitly; the client holds
    no per-account state. Transient failures (429, 5xx, network errors,
    timeouts) are retried with exponential backoff and jitter.
    """

    MAX_RETRY_ATTEMPTS = 3
    RETRY_BASE_DELAY = 2.0  # seconds
    RETRY_MULTIPLIER = 2.0
    RETRY_MAX_DELAY = 30.0  # seconds
    RETRY_JITTER_MS = 250  # milliseconds

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str = DEFAULT_BASE_URL,
        timezone: tzinfo = ZoneInfo("Asia/Jakarta"),
        request_timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize Shopee Ads client.

        Args:
            session: Injected aiohttp ClientSession
            base_url: Seller Centre origin
            timezone: Calendar used to convert dates to Unix timestamps
            request_timeout: Total seconds allowed per HTTP request
            logger: Optional logger instance
        """
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timezone = timezone
        self.request_timeout = request_timeout
        self.logger = logger or logging.getLogger(__name__)

    async def fetch_range(self, credential: str, start: date, end: date) -> MetricsPayload:
        """Fetch account-level metrics for [start, end].

        Returns:
            DailyBreakdown, RangeAggregate or EmptyPayload

        Raises:
            ShopeeSessionExpiredError: If the cookies are rejected
            ShopeeApiError: On transport errors or exhausted retries
            ShopeePayloadError: If the body has an unknown shape
        """
        start_ts, end_ts = day_bounds(start, end, self.timezone)
        payload = {
            "agg_interval": 4,
            "campaign_type": "new_cpc_homepage",
            "start_time": start_ts,
            "end_time": end_ts,
            "need_roi_target_setting": False,
        }

        body = await self._post_json(TIME_GRAPH_PATH, credential, payload)
        resolved = resolve_metrics_payload(body, start, end, self.timezone)
        self.logger.debug(
            "Resolved %s..%s report as %s", start, end, type(resolved).__name__
        )
        return resolved

    async def fetch_campaign_list(
        self,
        credential: str,
        start: date,
        end: date,
        account_id: Optional[str] = None,
    ) -> list[Campaign]:
        """Fetch campaigns with their metric totals for [start, end]."""
        start_ts, end_ts = day_bounds(start, end, self.timezone)
        payload = {
            "start_time": start_ts,
            "end_time": end_ts,
            "filter_list": [
                {
                    "campaign_type": "product_homepage",
                    "state": "all",
                    "search_term": "",
                    "product_placement_list": ["all", "search_product", "targeting"],
                    "npa_filter": "exclude_npa",
                    "is_valid_rebate_only": False,
                }
            ],
            "offset": 0,
            "limit": 1000,
        }

        body = await self._post_json(HOMEPAGE_QUERY_PATH, credential, payload)
        campaigns = parse_campaign_list(body, account_id=account_id)
        self.logger.info(
            "Fetched %s campaigns for %s..%s", len(campaigns), start, end
        )
        return campaigns

    async def verify_session(self, credential: str) -> bool:
        """Check whether the cookies are still accepted.

        Returns:
            True if the session is valid, False if it was rejected

        Raises:
            ShopeeApiError: If validity could not be determined
        """
        try:
            await self._post_json(
                ADS_DATA_PATH, credential, {"info_type_list": ["ads_toggle"]}
            )
        except ShopeeSessionExpiredError:
            return False
        return True

    async def _post_json(self, path: str, credential: str, payload: dict) -> dict:
        """POST with retry logic and API-level error checks.

        Raises:
            ShopeeSessionExpiredError: On 401/403 or a logged-out body code
            ShopeeApiError: On non-retryable errors or max retries exceeded
        """
        url = f"{self.base_url}{path}"
        cookie_header = clean_cookies(credential)
        headers = {
            "Cookie": cookie_header,
            "User-Agent": USER_AGENT,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        attempt = 0
        while True:
            attempt += 1

            try:
                timeout = aiohttp.ClientTimeout(total=self.request_timeout)
                async with self.session.post(
                    url, json=payload, headers=headers, timeout=timeout
                ) as resp:
                    if resp.status in (401, 403):
                        raise ShopeeSessionExpiredError(
                            f"HTTP {resp.status}: session rejected", status=resp.status
                        )

                    if resp.status == 429 or 500 <= resp.status < 600:
                        response_text = await resp.text()
                        if attempt >= self.MAX_RETRY_ATTEMPTS:
                            raise ShopeeApiError(
                                f"HTTP {resp.status} after {attempt} attempts: "
                                f"{self._redact(response_text[:200], cookie_header)}",
                                status=resp.status,
                            )

                        delay = None
                        if resp.status == 429:
                            delay = self._retry_after_seconds(
                                resp.headers.get("Retry-After")
                            )
                        if delay is None:
                            delay = self._calculate_backoff(attempt)
                        self.logger.warning(
                            "HTTP %s from %s, backoff=%.2fs, attempt=%s",
                            resp.status,
                            path,
                            delay,
                            attempt,
                        )
                        await asyncio.sleep(delay)
                        continue

                    if resp.status >= 400:
                        response_text = await resp.text()
                        raise ShopeeApiError(
                            f"HTTP {resp.status} (non-retryable): "
                            f"{self._redact(response_text[:500], cookie_header)}",
                            status=resp.status,
                        )

                    try:
                        body = await resp.json(content_type=None)
                    except ValueError as exc:
                        # Logged-out sessions are often served an HTML page with 200
                        raise ShopeePayloadError(
                            f"response from {path} is not JSON: {exc}"
                        ) from exc

            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if attempt >= self.MAX_RETRY_ATTEMPTS:
                    raise ShopeeApiError(
                        f"Network error after {attempt} attempts: {exc!r}"
                    ) from exc

                delay = self._calculate_backoff(attempt)
                self.logger.warning(
                    "Network error on %s: %r, backoff=%.2fs, attempt=%s",
                    path,
                    exc,
                    delay,
                    attempt,
                )
                await asyncio.sleep(delay)
                continue

            self._check_body(body)
            return body

    @staticmethod
    def _check_body(body: Any) -> None:
        """Raise for API-level errors carried in a 200 response."""
        if not isinstance(body, dict):
            return
        code = body.get("code")
        if code in (None, 0):
            return

        message = body.get("msg") or body.get("message") or "API returned error code"
        if code in SESSION_ERROR_CODES or "login" in str(message).lower():
            raise ShopeeSessionExpiredError(f"code={code}: {message}")
        raise ShopeeApiError(f"code={code}: {message}")

    def _retry_after_seconds(self, value: Optional[str]) -> Optional[float]:
        """Seconds from a numeric Retry-After header, None when absent or unparseable."""
        if not value:
            return None
        try:
            seconds = float(value)
        except ValueError:
            self.logger.debug("Ignoring non-numeric Retry-After %r", value)
            return None
        return min(max(seconds, 0.0), self.RETRY_MAX_DELAY)

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate exponential backoff with jitter.

        Args:
            attempt: Current retry attempt number (1-indexed)

        Returns:
            Delay in seconds
        """
        delay = min(
            self.RETRY_BASE_DELAY * (self.RETRY_MULTIPLIER ** (attempt - 1)),
            self.RETRY_MAX_DELAY,
        )
        jitter = random.uniform(0, self.RETRY_JITTER_MS / 1000.0)
        return delay + jitter

    @staticmethod
    def _redact(text: str, secret: str) -> str:
        if not text or not secret:
            return text
        return text.replace(secret, "[REDACTED]")
