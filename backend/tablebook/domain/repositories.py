from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Protocol

from ..models import DiningTable, Reservation, ReservationStatus
from .services import BookedWindow


@dataclass(frozen=True)
class ReservationListItem:
    reservation_id: int
    customer_id: int
    customer_name: str
    start_at: datetime
    end_at: datetime | None
    party_size: int
    status: ReservationStatus
    notes: str | None
    created_at: datetime
    table_codes: list[str] = field(default_factory=list)


class CustomerRepository(Protocol):
    async def exists(self, customer_id: int) -> bool: ...


class TableRepository(Protocol):
    async def get_active_by_ids_for_update(self, table_ids: Iterable[int]) -> list[DiningTable]: ...

    async def sum_active_capacity(self, table_ids: Iterable[int]) -> int: ...

    async def list_active(self) -> list[DiningTable]: ...


class ReservationRepository(Protocol):
    async def get(self, reservation_id: int) -> Reservation | None: ...

    async def get_for_update(self, reservation_id: int) -> Reservation | None: ...

    async def create(
        self,
        *,
        customer_id: int,
        start_at: datetime,
        end_at: datetime | None,
        party_size: int,
        status: ReservationStatus,
        notes: str | None,
    ) -> Reservation: ...

    async def save(self, reservation: Reservation) -> Reservation: ...

    async def list_blocking_windows(
        self,
        *,
        start: datetime,
        end: datetime,
        table_ids: Iterable[int] | None = None,
        exclude_reservation_id: int | None = None,
        lock: bool = False,
    ) -> list[BookedWindow]: ...

    async def list_filtered(
        self,
        *,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
        status: ReservationStatus | None = None,
    ) -> list[ReservationListItem]: ...


class AssignmentRepository(Protocol):
    async def add(self, reservation_id: int, table_ids: Iterable[int]) -> None: ...

    async def replace(self, reservation_id: int, table_ids: Iterable[int]) -> None: ...

    async def table_ids_for(self, reservation_id: int) -> list[int]: ...


class UnitOfWork(Protocol):
    """One transaction; repositories share it for the duration of ``async with``."""

    customers: CustomerRepository
    tables: TableRepository
    reservations: ReservationRepository
    assignments: AssignmentRepository

    async def __aenter__(self) -> "UnitOfWork": ...

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool | None: ...
