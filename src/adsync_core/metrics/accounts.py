"""Account registry backed by the accounts table."""
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .exceptions import StoreUnavailableError


logger = logging.getLogger(__name__)


class AccountStatus(str, Enum):
    """Stored account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["AccountStatus"]:
        """Map stored status strings, including legacy spellings.

        Returns None for empty or unrecognized values.
        """
        if not raw:
            return None
        return _STATUS_ALIASES.get(raw.strip().lower())


_STATUS_ALIASES = {
    "active": AccountStatus.ACTIVE,
    "aktif": AccountStatus.ACTIVE,
    "connected": AccountStatus.ACTIVE,
    "inactive": AccountStatus.INACTIVE,
    "expire": AccountStatus.INACTIVE,
    "expired": AccountStatus.INACTIVE,
    "disconnected": AccountStatus.INACTIVE,
    "deleted": AccountStatus.DELETED,
}


@dataclass(frozen=True)
class Account:
    """One seller shop tracked by the system."""

    account_id: str
    credential: Optional[str] = None
    stored_status: Optional[AccountStatus] = None
    last_sync_at: Optional[datetime] = None
    owner_user_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def has_credential(self) -> bool:
        return bool(self.credential and self.credential.strip())


_ACCOUNT_COLUMNS = (
    "account_id, credential, stored_status, last_sync_at, owner_user_id, display_name"
)


def _row_to_account(row: tuple) -> Account:
    account_id, credential, stored_status, last_sync_at, owner_user_id, name = row
    return Account(
        account_id=account_id,
        credential=credential,
        stored_status=AccountStatus.parse(stored_status),
        last_sync_at=datetime.fromisoformat(last_sync_at) if last_sync_at else None,
        owner_user_id=owner_user_id,
        display_name=name,
    )


class AccountRegistry:
    """Read accounts and update their status and sync timestamps.

    Account creation and deletion belong to the operator-facing layer;
    register() exists for tooling and tests.
    """

    def __init__(
        self, db_conn: sqlite3.Connection, lock: Optional[threading.Lock] = None
    ) -> None:
        """Initialize registry.

        Args:
            db_conn: SQLite connection (schema already initialized)
            lock: Lock shared with other users of the same connection
        """
        self.db_conn = db_conn
        self._lock = lock or threading.Lock()

    def register(
        self,
        account_id: str,
        credential: Optional[str] = None,
        stored_status: AccountStatus | str | None = AccountStatus.ACTIVE,
        owner_user_id: Optional[str] = None,
        display_name: Optional[str] = None,
        last_sync_at: Optional[datetime] = None,
    ) -> Account:
        """Insert or replace an account row."""
        status = stored_status.value if isinstance(stored_status, AccountStatus) else stored_status
        try:
            with self._lock:
                self.db_conn.execute(
                    """
                    INSERT INTO accounts (
                        account_id, credential, stored_status, last_sync_at,
                        owner_user_id, display_name
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(account_id)
                    DO UPDATE SET
                        credential=excluded.credential,
                        stored_status=excluded.stored_status,
                        last_sync_at=excluded.last_sync_at,
                        owner_user_id=excluded.owner_user_id,
                        display_name=excluded.display_name,
                        updated_at=CURRENT_TIMESTAMP
                    """,
                    (
                        account_id,
                        credential,
                        status,
                        last_sync_at.isoformat() if last_sync_at else None,
                        owner_user_id,
                        display_name,
                    ),
                )
                self.db_conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("account register", exc) from exc

        return Account(
            account_id=account_id,
            credential=credential,
            stored_status=AccountStatus.parse(status),
            last_sync_at=last_sync_at,
            owner_user_id=owner_user_id,
            display_name=display_name,
        )

    def get(self, account_id: str) -> Optional[Account]:
        try:
            with self._lock:
                row = self.db_conn.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id=?",
                    (account_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("account read", exc) from exc
        return _row_to_account(row) if row else None

    def get_many(self, account_ids: Iterable[str]) -> dict[str, Account]:
        """Fetch accounts by id; unknown ids are absent from the result."""
        ids = list(dict.fromkeys(account_ids))
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        try:
            with self._lock:
                rows = self.db_conn.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts "
                    f"WHERE account_id IN ({placeholders})",
                    ids,
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("account read", exc) from exc
        return {row[0]: _row_to_account(row) for row in rows}

    def list_accounts(
        self, owner_user_id: Optional[str] = None, include_deleted: bool = False
    ) -> list[Account]:
        query = f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE 1=1"
        params: list = []
        if owner_user_id is not None:
            query += " AND owner_user_id=?"
            params.append(owner_user_id)
        if not include_deleted:
            query += " AND COALESCE(stored_status, '') != 'deleted'"
        query += " ORDER BY COALESCE(display_name, account_id) ASC"

        try:
            with self._lock:
                rows = self.db_conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("account list", exc) from exc
        return [_row_to_account(row) for row in rows]

    def update_status(self, account_id: str, status: AccountStatus) -> None:
        try:
            with self._lock:
                self.db_conn.execute(
                    """
                    UPDATE accounts
                    SET stored_status=?, updated_at=CURRENT_TIMESTAMP
                    WHERE account_id=?
                    """,
                    (status.value, account_id),
                )
                self.db_conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("account status update", exc) from exc
        logger.info("Account %s status -> %s", account_id, status.value)

    def mark_synced(self, account_id: str, synced_at: datetime) -> None:
        try:
            with self._lock:
                self.db_conn.execute(
                    """
                    UPDATE accounts
                    SET last_sync_at=?, updated_at=CURRENT_TIMESTAMP
                    WHERE account_id=?
                    """,
                    (synced_at.isoformat(), account_id),
                )
                self.db_conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("account sync timestamp update", exc) from exc
