"""
Database engine, session factory and the request-scoped session dependency.

Production runs on PostgreSQL through asyncpg; tests and local tooling use
SQLite through aiosqlite. Pool sizing only applies to the server database.
"""
from typing import AsyncGenerator

from sqlalchemy import MetaData
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from agsuite.core.config import Settings, settings

# Constraint names stay stable across dialects; the partial unique indexes
# on registrations and the attendance upsert key depend on them
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """Base class for all AG Suite models."""
    metadata = metadata


def engine_options(config: Settings) -> dict:
    """Keyword arguments for create_async_engine under the given settings."""
    options = {"echo": config.DB_ECHO}
    if make_url(config.DATABASE_URL).get_backend_name() != "sqlite":
        options.update(
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
            pool_recycle=config.DB_POOL_RECYCLE,
        )
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session.

    Services commit their own admission and review steps; whatever is left
    pending when the handler returns is committed here, and any error rolls
    the open transaction back.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables for every AG Suite model."""
    # Register every mapped table on the metadata before create_all
    import agsuite.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
