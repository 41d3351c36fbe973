from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session
from ..domain.errors import ReservationError
from ..infrastructure.unit_of_work import SqlAlchemyUnitOfWork
from ..schemas import TableRead
from ..usecases import availability as availability_usecase
from .errors import to_http_exception

router = APIRouter(prefix="/tables", tags=["tables"])


@router.get("/available", response_model=List[TableRead])
async def list_available_tables(
    start: datetime = Query(..., description="window start, ISO 8601 with offset"),
    end: Optional[datetime] = Query(default=None, description="window end; defaults to start + 2h"),
    session: AsyncSession = Depends(get_session),
) -> list[TableRead]:
    uow = SqlAlchemyUnitOfWork(session)
    try:
        tables = await availability_usecase.list_available_tables(uow, start=start, end=end)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return [TableRead.from_db(table=table) for table in tables]
