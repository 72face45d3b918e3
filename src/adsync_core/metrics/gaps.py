"""Missing-date detection against stored daily aggregates."""
import logging
from datetime import date
from typing import Protocol

from ..dates import DateRange
from .exceptions import MetricsStoreError


logger = logging.getLogger(__name__)


class StoredDatesReader(Protocol):
    def stored_dates(self, account_id: str, date_range: DateRange) -> set[date]: ...


def find_missing_dates(
    store: StoredDatesReader, account_id: str, start: date, end: date
) -> set[date]:
    """Return dates in [start, end] with no stored aggregate for the account.

    Reversed endpoints are swapped. A store failure yields an empty set:
    callers must read an empty result as "nothing known to be missing",
    not as proof that the range is complete.
    """
    date_range = DateRange.normalized(start, end)
    try:
        stored = store.stored_dates(account_id, date_range)
    except MetricsStoreError as exc:
        logger.warning(
            "Gap detection unavailable for %s (%s): %s", account_id, date_range, exc
        )
        return set()

    return {day for day in date_range.dates() if day not in stored}
