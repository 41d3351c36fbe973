from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import Settings, get_settings


def engine_options(settings: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {
        "echo": settings.echo_sql,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }
    if make_url(settings.database_url).get_backend_name() == "mysql":
        options["isolation_level"] = settings.db_isolation_level
    return options


settings = get_settings()

engine = create_async_engine(settings.database_url, **engine_options(settings))

async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
