from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from ..models import ReservationStatus, TERMINAL_STATUSES
from .errors import InsufficientCapacityError, InvalidInputError, NoSuitableCombinationError

DEFAULT_DURATION = timedelta(hours=2)

_TRAILING_NUMBER = re.compile(r"(\d+)$")


@dataclass(frozen=True)
class TableSnapshot:
    table_id: int
    code: str
    capacity: int


@dataclass(frozen=True)
class BookedWindow:
    """A blocking reservation holding one table."""

    reservation_id: int
    table_id: int
    start_at: datetime
    end_at: datetime | None


def effective_end(start: datetime, end: datetime | None) -> datetime:
    """Resolve an open-ended window to its default duration."""
    return end if end is not None else start + DEFAULT_DURATION


def overlaps(existing_start: datetime, existing_end: datetime, new_start: datetime, new_end: datetime) -> bool:
    """Half-open intervals [s1, e1) and [s2, e2) intersect iff s1 < e2 and s2 < e1."""
    return existing_start < new_end and new_start < existing_end


def resolve_window(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    if start is None:
        raise InvalidInputError("start is required")
    resolved_end = effective_end(start, end)
    if resolved_end <= start:
        raise InvalidInputError("end must be later than start")
    return start, resolved_end


def conflicting_table_ids(
    booked: Iterable[BookedWindow],
    *,
    start: datetime,
    end: datetime,
) -> list[int]:
    """Return ids of tables whose booked windows overlap [start, end), ascending."""
    conflicts = {
        window.table_id
        for window in booked
        if overlaps(window.start_at, effective_end(window.start_at, window.end_at), start, end)
    }
    return sorted(conflicts)


def validate_party_size(party_size: int) -> None:
    if party_size <= 0:
        raise InvalidInputError("party_size must be > 0")


def validate_table_selection(table_ids: Sequence[int] | None) -> list[int]:
    """Return the distinct ids in first-seen order."""
    if not table_ids:
        raise InvalidInputError("at least one table must be selected")
    return list(dict.fromkeys(table_ids))


def resolve_initial_status(status: ReservationStatus | str | None) -> ReservationStatus:
    if status is None or not str(status).strip():
        return ReservationStatus.PENDING
    try:
        resolved = ReservationStatus(str(status).strip().upper())
    except ValueError as exc:
        raise InvalidInputError(f"unknown status: {status}") from exc
    if resolved in TERMINAL_STATUSES:
        raise InvalidInputError(f"a reservation cannot be created as {resolved.value}")
    return resolved


def validate_capacity(capacity: int, *, party_size: int) -> None:
    if capacity < party_size:
        raise InsufficientCapacityError(capacity, party_size)


def code_number(code: str) -> int | None:
    match = _TRAILING_NUMBER.search(code.strip())
    return int(match.group(1)) if match else None


def greedy_sort_key(table: TableSnapshot) -> tuple[int, int, int, str]:
    """
    Ordering used by auto-assignment: capacity ascending, then the number at the
    end of the code ascending (codes without one go after all numbered codes),
    then the code itself.
    """
    number = code_number(table.code)
    if number is None:
        return (table.capacity, 1, 0, table.code)
    return (table.capacity, 0, number, table.code)


def pick_tables_greedy(candidates: Iterable[TableSnapshot], *, party_size: int) -> list[TableSnapshot]:
    """
    First-fit selection over the sorted candidates, stopping once the running
    capacity covers the party. This may over-allocate; it is not an optimal
    subset search.
    """
    validate_party_size(party_size)
    chosen: list[TableSnapshot] = []
    total = 0
    for table in sorted(candidates, key=greedy_sort_key):
        chosen.append(table)
        total += table.capacity
        if total >= party_size:
            return chosen
    raise NoSuitableCombinationError(party_size, total)
