"""Custom exceptions for reconciliation and manual refresh."""


class SyncError(Exception):
    """Base exception for all reconciliation errors."""


class AccountNotFoundError(SyncError):
    """Raised when an account does not exist or has been deleted."""

    def __init__(self, account_id: str, reason: str = "not found"):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Account {account_id} {reason}")


class CredentialMissingError(SyncError):
    """Raised when an account has no usable session cookies."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} has no session cookies")


class AccountRefreshLockedError(SyncError):
    """Raised when another refresh of the same account holds the lock."""

    def __init__(self, account_id: str, lock_key: str):
        self.account_id = account_id
        self.lock_key = lock_key
        super().__init__(
            f"Refresh lock already held for account={account_id}, key={lock_key}"
        )


class ReconcileQueueFullError(SyncError):
    """Raised when the background reconcile queue is at capacity."""

    def __init__(self, batch_id: str, capacity: int):
        self.batch_id = batch_id
        self.capacity = capacity
        super().__init__(
            f"Reconcile queue full (capacity={capacity}), dropped batch {batch_id}"
        )
