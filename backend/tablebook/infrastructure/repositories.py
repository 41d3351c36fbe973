from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.repositories import (
    AssignmentRepository,
    CustomerRepository,
    ReservationListItem,
    ReservationRepository,
    TableRepository,
)
from ..domain.services import DEFAULT_DURATION, BookedWindow
from ..models import (
    NON_BLOCKING_STATUSES,
    Customer,
    DiningTable,
    Reservation,
    ReservationStatus,
    ReservationTable,
)
from ..utils.time import utc_now_naive


def _window_overlap_clause(start: datetime, end: datetime):
    """
    Reservations whose effective window intersects [start, end).

    An open-ended reservation lasts DEFAULT_DURATION, so it reaches past
    ``start`` only if it began after ``start - DEFAULT_DURATION``.
    """
    return and_(
        Reservation.start_at < end,
        or_(
            Reservation.end_at > start,
            and_(Reservation.end_at.is_(None), Reservation.start_at > start - DEFAULT_DURATION),
        ),
    )


def blocking_windows_statement(
    *,
    start: datetime,
    end: datetime,
    table_ids: List[int] | None = None,
    exclude_reservation_id: int | None = None,
    lock: bool = False,
) -> Select:
    """
    Assignment rows of blocking reservations whose window may touch [start, end).

    With ``lock`` the rows are read with ``FOR UPDATE``. A locking read sees
    the latest committed rows instead of the transaction's snapshot, so a
    booking committed while we waited on the table locks is not missed.
    """
    stmt = (
        select(
            ReservationTable.reservation_id,
            ReservationTable.table_id,
            Reservation.start_at,
            Reservation.end_at,
        )
        .join(Reservation, Reservation.id == ReservationTable.reservation_id)
        .where(
            Reservation.status.not_in(list(NON_BLOCKING_STATUSES)),
            _window_overlap_clause(start, end),
        )
    )
    if table_ids is not None:
        stmt = stmt.where(ReservationTable.table_id.in_(table_ids))
    if exclude_reservation_id is not None:
        stmt = stmt.where(ReservationTable.reservation_id != exclude_reservation_id)
    if lock:
        stmt = stmt.with_for_update()
    return stmt


class SqlAlchemyCustomerRepository(CustomerRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def exists(self, customer_id: int) -> bool:
        return await self.session.scalar(select(Customer.id).where(Customer.id == customer_id)) is not None


class SqlAlchemyTableRepository(TableRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_active_by_ids_for_update(self, table_ids: Iterable[int]) -> List[DiningTable]:
        ids = list(dict.fromkeys(table_ids))
        if not ids:
            return []
        # Lock in id order so concurrent creators never wait on each other in a cycle.
        stmt = (
            select(DiningTable)
            .where(DiningTable.id.in_(ids), DiningTable.active.is_(True))
            .order_by(DiningTable.id)
            .with_for_update()
        )
        return list((await self.session.scalars(stmt)).all())

    async def sum_active_capacity(self, table_ids: Iterable[int]) -> int:
        ids = list(dict.fromkeys(table_ids))
        if not ids:
            return 0
        stmt = select(func.coalesce(func.sum(DiningTable.capacity), 0)).where(
            DiningTable.id.in_(ids),
            DiningTable.active.is_(True),
        )
        return int(await self.session.scalar(stmt) or 0)

    async def list_active(self) -> List[DiningTable]:
        stmt = select(DiningTable).where(DiningTable.active.is_(True)).order_by(DiningTable.code)
        return list((await self.session.scalars(stmt)).all())


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, reservation_id: int) -> Optional[Reservation]:
        result = await self.session.scalar(select(Reservation).where(Reservation.id == reservation_id))
        return result if isinstance(result, Reservation) else None

    async def get_for_update(self, reservation_id: int) -> Optional[Reservation]:
        result = await self.session.scalar(
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result if isinstance(result, Reservation) else None

    async def create(
        self,
        *,
        customer_id: int,
        start_at: datetime,
        end_at: datetime | None,
        party_size: int,
        status: ReservationStatus,
        notes: str | None,
    ) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            customer_id=customer_id,
            start_at=start_at,
            end_at=end_at,
            party_size=party_size,
            status=status,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        reservation.updated_at = utc_now_naive()
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def list_blocking_windows(
        self,
        *,
        start: datetime,
        end: datetime,
        table_ids: Iterable[int] | None = None,
        exclude_reservation_id: int | None = None,
        lock: bool = False,
    ) -> List[BookedWindow]:
        ids = list(dict.fromkeys(table_ids)) if table_ids is not None else None
        if ids is not None and not ids:
            return []
        stmt = blocking_windows_statement(
            start=start,
            end=end,
            table_ids=ids,
            exclude_reservation_id=exclude_reservation_id,
            lock=lock,
        )
        rows = await self.session.execute(stmt)
        return [
            BookedWindow(reservation_id=res_id, table_id=table_id, start_at=start_at, end_at=end_at)
            for res_id, table_id, start_at, end_at in rows.all()
        ]

    async def list_filtered(
        self,
        *,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
        status: ReservationStatus | None = None,
    ) -> List[ReservationListItem]:
        stmt: Select = (
            select(Reservation, Customer.full_name)
            .join(Customer, Customer.id == Reservation.customer_id)
            .order_by(Reservation.start_at, Reservation.id)
        )
        if window_start is not None and window_end is not None:
            stmt = stmt.where(_window_overlap_clause(window_start, window_end))
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        rows = (await self.session.execute(stmt)).all()

        codes: dict[int, list[str]] = defaultdict(list)
        ids = [reservation.id for reservation, _ in rows]
        if ids:
            code_rows = await self.session.execute(
                select(ReservationTable.reservation_id, DiningTable.code)
                .join(DiningTable, DiningTable.id == ReservationTable.table_id)
                .where(ReservationTable.reservation_id.in_(ids))
                .order_by(DiningTable.code)
            )
            for reservation_id, code in code_rows.all():
                codes[reservation_id].append(code)

        return [
            ReservationListItem(
                reservation_id=reservation.id,
                customer_id=reservation.customer_id,
                customer_name=full_name,
                start_at=reservation.start_at,
                end_at=reservation.end_at,
                party_size=reservation.party_size,
                status=reservation.status,
                notes=reservation.notes,
                created_at=reservation.created_at,
                table_codes=codes.get(reservation.id, []),
            )
            for reservation, full_name in rows
        ]


class SqlAlchemyAssignmentRepository(AssignmentRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, reservation_id: int, table_ids: Iterable[int]) -> None:
        for table_id in dict.fromkeys(table_ids):
            self.session.add(ReservationTable(reservation_id=reservation_id, table_id=table_id))
        await self.session.flush()

    async def replace(self, reservation_id: int, table_ids: Iterable[int]) -> None:
        existing = await self.session.scalars(
            select(ReservationTable).where(ReservationTable.reservation_id == reservation_id)
        )
        for assignment in existing.all():
            await self.session.delete(assignment)
        # Old rows must be gone before re-inserting a table that stays assigned.
        await self.session.flush()
        await self.add(reservation_id, table_ids)

    async def table_ids_for(self, reservation_id: int) -> List[int]:
        stmt = (
            select(ReservationTable.table_id)
            .where(ReservationTable.reservation_id == reservation_id)
            .order_by(ReservationTable.table_id)
        )
        return list((await self.session.scalars(stmt)).all())
