from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Type

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from tablebook.infrastructure.unit_of_work import SqlAlchemyUnitOfWork
from tablebook.models import Base, Customer, DiningTable


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def make_customer(customer_id: int, name: str = "Ada Lovelace") -> Customer:
    return Customer(id=customer_id, full_name=name, phone="600000000", email=None, created_at=_utc_now_naive())


def make_table(table_id: int, code: str, capacity: int, active: bool = True) -> DiningTable:
    return DiningTable(id=table_id, code=code, capacity=capacity, active=active)


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def uow(session: AsyncSession) -> SqlAlchemyUnitOfWork:
    return SqlAlchemyUnitOfWork(session)


@pytest.fixture
def seed(session_maker: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[None]]:
    async def _seed(*objects: Any) -> None:
        async with session_maker() as s:
            async with s.begin():
                s.add_all(objects)

    return _seed


@pytest.fixture
def count_rows(session_maker: async_sessionmaker[AsyncSession]) -> Callable[[Type[Any]], Awaitable[int]]:
    async def _count(model: Type[Any]) -> int:
        async with session_maker() as s:
            return int(await s.scalar(select(func.count()).select_from(model)) or 0)

    return _count
