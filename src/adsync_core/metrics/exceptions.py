"""Custom exceptions for the metrics store and account registry."""


class MetricsStoreError(Exception):
    """Base exception for all metrics store errors."""


class StoreUnavailableError(MetricsStoreError):
    """Raised when a store read or write fails."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Metrics store {operation} failed: {cause}")
