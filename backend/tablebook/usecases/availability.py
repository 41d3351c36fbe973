from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Sequence

from ..domain.errors import InvalidInputError
from ..domain.repositories import ReservationRepository, TableRepository, UnitOfWork
from ..domain.services import conflicting_table_ids, resolve_window
from ..models import DiningTable
from ..utils.time import to_utc_naive


def resolve_utc_window(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    """Validate an aware window and return it as naive UTC, open end resolved."""
    try:
        utc_start = to_utc_naive(start) if start is not None else None
        utc_end = to_utc_naive(end) if end is not None else None
    except ValueError as exc:
        raise InvalidInputError("start/end must be timezone-aware") from exc
    return resolve_window(utc_start, utc_end)


async def find_conflicts(
    res_repo: ReservationRepository,
    *,
    table_ids: Iterable[int],
    start: datetime,
    end: datetime,
    exclude_reservation_id: int | None = None,
    lock: bool = False,
) -> List[int]:
    """
    Tables among ``table_ids`` held by a blocking reservation in [start, end). Naive UTC bounds.

    Writers pass ``lock=True`` so the lookup reads current rows rather than
    the transaction snapshot.
    """
    ids = list(dict.fromkeys(table_ids))
    if not ids:
        return []
    booked = await res_repo.list_blocking_windows(
        start=start,
        end=end,
        table_ids=ids,
        exclude_reservation_id=exclude_reservation_id,
        lock=lock,
    )
    return conflicting_table_ids(booked, start=start, end=end)


async def available_tables(
    table_repo: TableRepository,
    res_repo: ReservationRepository,
    *,
    start: datetime,
    end: datetime,
) -> List[DiningTable]:
    """Active tables free in [start, end), ordered by code. Runs inside the caller's transaction."""
    tables = await table_repo.list_active()
    booked = await res_repo.list_blocking_windows(start=start, end=end)
    taken = set(conflicting_table_ids(booked, start=start, end=end))
    return [table for table in tables if table.id not in taken]


async def is_available_for_tables(
    uow: UnitOfWork,
    *,
    table_ids: Sequence[int],
    start: datetime,
    end: datetime | None = None,
) -> bool:
    """
    True when none of ``table_ids`` is held by a blocking reservation in the window.

    Only reservations are consulted: ids that are unknown or belong to
    inactive tables are reported available here and rejected as invalid
    input when a booking is attempted. Use ``list_available_tables`` to get
    bookable tables.
    """
    utc_start, utc_end = resolve_utc_window(start, end)
    if not table_ids:
        return True
    async with uow:
        conflicts = await find_conflicts(uow.reservations, table_ids=table_ids, start=utc_start, end=utc_end)
    return not conflicts


async def list_available_tables(
    uow: UnitOfWork,
    *,
    start: datetime,
    end: datetime | None = None,
) -> List[DiningTable]:
    utc_start, utc_end = resolve_utc_window(start, end)
    async with uow:
        return await available_tables(uow.tables, uow.reservations, start=utc_start, end=utc_end)
