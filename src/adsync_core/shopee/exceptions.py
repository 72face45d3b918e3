"""Custom exceptions for the Shopee Ads client."""


class ShopeeClientError(Exception):
    """Base exception for all Shopee Ads client errors."""


class ShopeeApiError(ShopeeClientError):
    """Raised for transport failures, non-2xx responses and exhausted retries."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class ShopeeSessionExpiredError(ShopeeApiError):
    """Raised when the platform rejects the session cookies."""


class ShopeePayloadError(ShopeeClientError):
    """Raised when a response body cannot be resolved to a known payload."""

    def __init__(self, reason: str, body: object = None):
        self.reason = reason
        self.body = body
        super().__init__(f"Unrecognized Shopee payload: {reason}")
