"""
Database setup — async engine and session factory.
"""

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storefront.db._tables import Base


async def create_database(
    url: str = "sqlite+aiosqlite:///./storefront.db",
    *,
    echo: bool = False,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """
    Create tables and return (session_factory, engine).

    Note: SQLite writers wait on the database lock instead of failing fast.
    Почему: concurrent materialize calls must block on the payment link
    insert, not error out with "database is locked".
    """
    connect_args: dict[str, Any] = {}
    if make_url(url).get_backend_name() == "sqlite":
        connect_args["timeout"] = 30

    engine = create_async_engine(url, echo=echo, connect_args=connect_args)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


__all__ = ("create_database",)
