from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from typing import List, Sequence

from ..domain.errors import (
    ConflictError,
    CustomerNotFoundError,
    InvalidInputError,
    ReservationNotFoundError,
    TableOverlapError,
)
from ..domain.lifecycle import TransitionResult, cancellation_fields, plan_transition
from ..domain.repositories import ReservationListItem, UnitOfWork
from ..domain.services import (
    TableSnapshot,
    effective_end,
    pick_tables_greedy,
    resolve_initial_status,
    validate_capacity,
    validate_party_size,
    validate_table_selection,
)
from ..models import TERMINAL_STATUSES, Reservation, ReservationStatus
from ..utils.time import to_utc_naive, utc_naive_to_aware, utc_now_naive
from .availability import available_tables, find_conflicts, resolve_utc_window

logger = logging.getLogger(__name__)


async def _require_active_tables(uow: UnitOfWork, table_ids: List[int]) -> None:
    # Locks the rows so overlapping creators for the same tables serialize here.
    tables = await uow.tables.get_active_by_ids_for_update(table_ids)
    if len(tables) != len(table_ids):
        found = {table.id for table in tables}
        invalid = [table_id for table_id in table_ids if table_id not in found]
        raise InvalidInputError(f"invalid or inactive table(s): {invalid}")


async def _book(
    uow: UnitOfWork,
    *,
    customer_id: int,
    start_at: datetime,
    end_at: datetime | None,
    effective_end_at: datetime,
    party_size: int,
    status: ReservationStatus,
    notes: str | None,
    table_ids: List[int],
) -> Reservation:
    """Checks and writes of a booking. Must run inside an open unit of work."""
    if not await uow.customers.exists(customer_id):
        raise CustomerNotFoundError(customer_id)

    await _require_active_tables(uow, table_ids)

    capacity = await uow.tables.sum_active_capacity(table_ids)
    validate_capacity(capacity, party_size=party_size)

    conflicts = await find_conflicts(
        uow.reservations,
        table_ids=table_ids,
        start=start_at,
        end=effective_end_at,
        lock=True,
    )
    if conflicts:
        raise TableOverlapError(conflicts)

    reservation = await uow.reservations.create(
        customer_id=customer_id,
        start_at=start_at,
        end_at=end_at,
        party_size=party_size,
        status=status,
        notes=notes,
    )
    await uow.assignments.add(reservation.id, table_ids)
    return reservation


async def create_reservation_with_tables(
    uow: UnitOfWork,
    *,
    customer_id: int,
    start: datetime | None,
    end: datetime | None = None,
    party_size: int,
    status: ReservationStatus | str | None = None,
    notes: str | None = None,
    table_ids: Sequence[int] | None,
) -> int:
    """
    Create a reservation and assign ``table_ids`` to it in one transaction.

    Input is validated before the transaction opens (window, party size,
    table selection, status). Inside it the customer, the tables, their
    capacity and their availability are checked in that order; any failure
    rolls back both the reservation row and its assignments.
    """
    start_at, effective_end_at = resolve_utc_window(start, end)
    validate_party_size(party_size)
    ids = validate_table_selection(table_ids)
    initial_status = resolve_initial_status(status)

    async with uow:
        reservation = await _book(
            uow,
            customer_id=customer_id,
            start_at=start_at,
            end_at=to_utc_naive(end) if end is not None else None,
            effective_end_at=effective_end_at,
            party_size=party_size,
            status=initial_status,
            notes=notes,
            table_ids=ids,
        )
    logger.info("reservation %s created with tables %s", reservation.id, ids)
    return reservation.id


async def create_reservation_auto_assign(
    uow: UnitOfWork,
    *,
    customer_id: int,
    start: datetime | None,
    end: datetime | None = None,
    party_size: int,
    status: ReservationStatus | str | None = None,
    notes: str | None = None,
) -> int:
    """Pick tables greedily among those free in the window, then book them in the same transaction."""
    start_at, effective_end_at = resolve_utc_window(start, end)
    validate_party_size(party_size)
    initial_status = resolve_initial_status(status)

    async with uow:
        candidates = await available_tables(uow.tables, uow.reservations, start=start_at, end=effective_end_at)
        chosen = pick_tables_greedy(
            (TableSnapshot(table_id=t.id, code=t.code, capacity=t.capacity) for t in candidates),
            party_size=party_size,
        )
        ids = [table.table_id for table in chosen]
        reservation = await _book(
            uow,
            customer_id=customer_id,
            start_at=start_at,
            end_at=to_utc_naive(end) if end is not None else None,
            effective_end_at=effective_end_at,
            party_size=party_size,
            status=initial_status,
            notes=notes,
            table_ids=ids,
        )
    logger.info("reservation %s created with auto-assigned tables %s", reservation.id, ids)
    return reservation.id


async def _transition(
    uow: UnitOfWork,
    reservation_id: int,
    target: ReservationStatus,
    *,
    reason: str | None = None,
) -> TransitionResult:
    async with uow:
        reservation = await uow.reservations.get_for_update(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        current = ReservationStatus(reservation.status)
        changed = plan_transition(current, target)
        if changed:
            if target == ReservationStatus.CANCELLED:
                fields = cancellation_fields(
                    existing_cancelled_at=reservation.cancelled_at,
                    existing_reason=reservation.cancellation_reason,
                    reason=reason,
                    now=utc_now_naive(),
                )
                reservation.cancelled_at = fields.cancelled_at
                reservation.cancellation_reason = fields.cancellation_reason
            reservation.status = target
            await uow.reservations.save(reservation)

    if changed:
        logger.info("reservation %s moved %s -> %s", reservation_id, current.value, target.value)
    return TransitionResult(
        reservation_id=reservation_id,
        status_from=current,
        status_to=target,
        changed=changed,
    )


async def confirm_reservation(uow: UnitOfWork, *, reservation_id: int) -> TransitionResult:
    return await _transition(uow, reservation_id, ReservationStatus.CONFIRMED)


async def cancel_reservation(uow: UnitOfWork, *, reservation_id: int, reason: str | None = None) -> TransitionResult:
    return await _transition(uow, reservation_id, ReservationStatus.CANCELLED, reason=reason)


async def mark_no_show(uow: UnitOfWork, *, reservation_id: int) -> TransitionResult:
    return await _transition(uow, reservation_id, ReservationStatus.NO_SHOW)


async def reassign_tables(uow: UnitOfWork, *, reservation_id: int, table_ids: Sequence[int] | None) -> None:
    """Replace the whole table set of a live reservation."""
    ids = validate_table_selection(table_ids)

    async with uow:
        reservation = await uow.reservations.get_for_update(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        status = ReservationStatus(reservation.status)
        if status in TERMINAL_STATUSES:
            raise ConflictError(f"cannot reassign tables of a {status.value} reservation")

        await _require_active_tables(uow, ids)

        capacity = await uow.tables.sum_active_capacity(ids)
        validate_capacity(capacity, party_size=reservation.party_size)

        start_at = reservation.start_at
        end_at = effective_end(start_at, reservation.end_at)
        conflicts = await find_conflicts(
            uow.reservations,
            table_ids=ids,
            start=start_at,
            end=end_at,
            exclude_reservation_id=reservation.id,
            lock=True,
        )
        if conflicts:
            raise TableOverlapError(conflicts)

        await uow.assignments.replace(reservation.id, ids)
        await uow.reservations.save(reservation)
    logger.info("reservation %s reassigned to tables %s", reservation_id, ids)


async def get_reservation_table_ids(uow: UnitOfWork, *, reservation_id: int) -> List[int]:
    async with uow:
        if await uow.reservations.get(reservation_id) is None:
            raise ReservationNotFoundError(reservation_id)
        return await uow.assignments.table_ids_for(reservation_id)


async def list_reservations(
    uow: UnitOfWork,
    *,
    window_start: datetime | None = None,
    window_end: datetime | None = None,
    status: ReservationStatus | str | None = None,
) -> List[ReservationListItem]:
    if (window_start is None) != (window_end is None):
        raise InvalidInputError("window start and end must be given together")
    utc_start = utc_end = None
    if window_start is not None and window_end is not None:
        utc_start, utc_end = resolve_utc_window(window_start, window_end)

    status_filter: ReservationStatus | None = None
    if status is not None and str(status).strip():
        try:
            status_filter = ReservationStatus(str(status).strip().upper())
        except ValueError as exc:
            raise InvalidInputError(f"unknown status: {status}") from exc

    async with uow:
        items = await uow.reservations.list_filtered(
            window_start=utc_start,
            window_end=utc_end,
            status=status_filter,
        )
    return [
        dataclasses.replace(
            item,
            start_at=utc_naive_to_aware(item.start_at),
            end_at=utc_naive_to_aware(item.end_at) if item.end_at is not None else None,
            created_at=utc_naive_to_aware(item.created_at),
        )
        for item in items
    ]
