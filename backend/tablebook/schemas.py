from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer

from .domain.lifecycle import TransitionResult
from .domain.repositories import ReservationListItem
from .models import DiningTable, ReservationStatus


class ReservationCreate(BaseModel):
    customer_id: int
    start_at: datetime
    end_at: Optional[datetime] = None
    party_size: int
    status: Optional[str] = None
    notes: Optional[str] = None
    table_ids: List[int] = Field(default_factory=list)


class ReservationAutoAssign(BaseModel):
    customer_id: int
    start_at: datetime
    end_at: Optional[datetime] = None
    party_size: int
    status: Optional[str] = None
    notes: Optional[str] = None


class ReservationCancel(BaseModel):
    reason: Optional[str] = None


class TableAssignment(BaseModel):
    table_ids: List[int] = Field(default_factory=list)


class ReservationCreated(BaseModel):
    reservation_id: int
    table_ids: List[int]


class ReservationTables(BaseModel):
    reservation_id: int
    table_ids: List[int]


class StatusChange(BaseModel):
    reservation_id: int
    changed: bool
    status: ReservationStatus

    @classmethod
    def from_result(cls, result: TransitionResult) -> "StatusChange":
        return cls(
            reservation_id=result.reservation_id,
            changed=result.changed,
            status=result.status_to,
        )


class TableRead(BaseModel):
    table_id: int
    code: str
    capacity: int
    active: bool

    @classmethod
    def from_db(cls, *, table: DiningTable) -> "TableRead":
        return cls(table_id=table.id, code=table.code, capacity=table.capacity, active=table.active)


class ReservationRead(BaseModel):
    reservation_id: int
    customer_id: int
    customer_name: str
    start_at: datetime
    end_at: Optional[datetime]
    party_size: int
    status: ReservationStatus
    notes: Optional[str]
    created_at: datetime
    table_codes: List[str]

    @field_serializer("start_at", "end_at", "created_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return dt.isoformat() if dt is not None else None

    @classmethod
    def from_item(cls, *, item: ReservationListItem) -> "ReservationRead":
        return cls(
            reservation_id=item.reservation_id,
            customer_id=item.customer_id,
            customer_name=item.customer_name,
            start_at=item.start_at,
            end_at=item.end_at,
            party_size=item.party_size,
            status=item.status,
            notes=item.notes,
            created_at=item.created_at,
            table_codes=list(item.table_codes),
        )
