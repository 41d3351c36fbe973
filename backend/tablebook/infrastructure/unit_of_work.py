from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from ..domain.errors import StorageError
from ..domain.repositories import UnitOfWork
from .repositories import (
    SqlAlchemyAssignmentRepository,
    SqlAlchemyCustomerRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyTableRepository,
)

logger = logging.getLogger(__name__)


class SqlAlchemyUnitOfWork(UnitOfWork):
    """
    Binds the repositories to one ``AsyncSession`` and scopes a transaction to
    ``async with``: commit when the block exits cleanly, rollback otherwise.

    Database failures surface as StorageError after the rollback; business
    errors propagate unchanged.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.customers = SqlAlchemyCustomerRepository(session)
        self.tables = SqlAlchemyTableRepository(session)
        self.reservations = SqlAlchemyReservationRepository(session)
        self.assignments = SqlAlchemyAssignmentRepository(session)
        self._transaction: Optional[AsyncSessionTransaction] = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        if self._transaction is not None:
            raise RuntimeError("unit of work is already in a transaction")
        self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        transaction, self._transaction = self._transaction, None
        if transaction is None:  # pragma: no cover
            return False
        if exc is None:
            try:
                await transaction.commit()
            except SQLAlchemyError as commit_exc:
                logger.exception("commit failed")
                raise StorageError("failed to commit transaction") from commit_exc
            return False

        try:
            await transaction.rollback()
        except SQLAlchemyError as rollback_exc:
            logger.error("rollback failed after %r: %s", exc, rollback_exc)
            raise StorageError("failed to roll back transaction") from rollback_exc
        if isinstance(exc, SQLAlchemyError):
            logger.error("transaction rolled back after storage error: %s", exc)
            raise StorageError("storage operation failed") from exc
        return False
