import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session
from ..domain.errors import ReservationError
from ..domain.lifecycle import TransitionResult
from ..infrastructure.unit_of_work import SqlAlchemyUnitOfWork
from ..schemas import (
    ReservationAutoAssign,
    ReservationCancel,
    ReservationCreate,
    ReservationCreated,
    ReservationRead,
    ReservationTables,
    StatusChange,
    TableAssignment,
)
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import AuditAction, emit_audit_log
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])


def _audit(action: AuditAction, **fields: object) -> None:
    try:
        emit_audit_log(action=action, **fields)  # type: ignore[arg-type]
    except RuntimeError as exc:
        logger.error("audit log failed for %s: %s", action, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


def _status_change(action: AuditAction, result: TransitionResult, *, reason: Optional[str] = None) -> StatusChange:
    if result.changed:
        _audit(
            action,
            reservation_id=result.reservation_id,
            status_from=result.status_from,
            status_to=result.status_to,
            changed=True,
            reason=reason,
        )
    return StatusChange.from_result(result)


@router.get("", response_model=List[ReservationRead])
async def list_reservations(
    window_start: Optional[datetime] = Query(default=None, alias="from"),
    window_end: Optional[datetime] = Query(default=None, alias="to"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
) -> list[ReservationRead]:
    uow = SqlAlchemyUnitOfWork(session)
    try:
        items = await reservation_usecase.list_reservations(
            uow,
            window_start=window_start,
            window_end=window_end,
            status=status_filter,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return [ReservationRead.from_item(item=item) for item in items]


@router.post("", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
) -> ReservationCreated:
    uow = SqlAlchemyUnitOfWork(session)
    try:
        reservation_id = await reservation_usecase.create_reservation_with_tables(
            uow,
            customer_id=payload.customer_id,
            start=payload.start_at,
            end=payload.end_at,
            party_size=payload.party_size,
            status=payload.status,
            notes=payload.notes,
            table_ids=payload.table_ids,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    table_ids = list(dict.fromkeys(payload.table_ids))
    _audit(
        "reservation.created",
        reservation_id=reservation_id,
        customer_id=payload.customer_id,
        party_size=payload.party_size,
        table_ids=table_ids,
    )
    return ReservationCreated(reservation_id=reservation_id, table_ids=table_ids)


@router.post("/auto-assign", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
async def create_reservation_auto_assign(
    payload: ReservationAutoAssign,
    session: AsyncSession = Depends(get_session),
) -> ReservationCreated:
    uow = SqlAlchemyUnitOfWork(session)
    try:
        reservation_id = await reservation_usecase.create_reservation_auto_assign(
            uow,
            customer_id=payload.customer_id,
            start=payload.start_at,
            end=payload.end_at,
            party_size=payload.party_size,
            status=payload.status,
            notes=payload.notes,
        )
        table_ids = await reservation_usecase.get_reservation_table_ids(uow, reservation_id=reservation_id)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    _audit(
        "reservation.created",
        reservation_id=reservation_id,
        customer_id=payload.customer_id,
        party_size=payload.party_size,
        table_ids=table_ids,
        extra={"auto_assigned": True},
    )
    return ReservationCreated(reservation_id=reservation_id, table_ids=table_ids)


@router.get("/{reservation_id}/tables", response_model=ReservationTables)
async def get_reservation_tables(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ReservationTables:
    uow = SqlAlchemyUnitOfWork(session)
    try:
        table_ids = await reservation_usecase.get_reservation_table_ids(uow, reservation_id=reservation_id)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return ReservationTables(reservation_id=reservation_id, table_ids=table_ids)


@router.put("/{reservation_id}/tables", response_model=ReservationTables)
async def reassign_tables(
    payload: TableAssignment,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ReservationTables:
    uow = SqlAlchemyUnitOfWork(session)
    try:
        await reservation_usecase.reassign_tables(uow, reservation_id=reservation_id, table_ids=payload.table_ids)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    table_ids = list(dict.fromkeys(payload.table_ids))
    _audit("reservation.tables_reassigned", reservation_id=reservation_id, table_ids=table_ids)
    return ReservationTables(reservation_id=reservation_id, table_ids=table_ids)


@router.post("/{reservation_id}/confirm", response_model=StatusChange)
async def confirm_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> StatusChange:
    uow = SqlAlchemyUnitOfWork(session)
    try:
        result = await reservation_usecase.confirm_reservation(uow, reservation_id=reservation_id)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return _status_change("reservation.confirmed", result)


@router.post("/{reservation_id}/cancel", response_model=StatusChange)
async def cancel_reservation(
    reservation_id: int = Path(..., ge=1),
    payload: Optional[ReservationCancel] = Body(default=None),
    session: AsyncSession = Depends(get_session),
) -> StatusChange:
    uow = SqlAlchemyUnitOfWork(session)
    reason = payload.reason if payload is not None else None
    try:
        result = await reservation_usecase.cancel_reservation(uow, reservation_id=reservation_id, reason=reason)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return _status_change("reservation.cancelled", result, reason=reason)


@router.post("/{reservation_id}/no-show", response_model=StatusChange)
async def mark_no_show(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> StatusChange:
    uow = SqlAlchemyUnitOfWork(session)
    try:
        result = await reservation_usecase.mark_no_show(uow, reservation_id=reservation_id)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return _status_change("reservation.no_show", result)
