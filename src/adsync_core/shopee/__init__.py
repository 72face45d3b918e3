"""Shopee Seller Ads integration."""
from .client import ShopeeAdsClient, clean_cookies
from .exceptions import (
    ShopeeApiError,
    ShopeeClientError,
    ShopeePayloadError,
    ShopeeSessionExpiredError,
)
from .payloads import DailyBreakdown, EmptyPayload, MetricsPayload, RangeAggregate

__all__ = [
    "ShopeeAdsClient",
    "clean_cookies",
    "ShopeeClientError",
    "ShopeeApiError",
    "ShopeeSessionExpiredError",
    "ShopeePayloadError",
    "DailyBreakdown",
    "RangeAggregate",
    "EmptyPayload",
    "MetricsPayload",
]
