from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from hrsign.config import settings


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_foreign_keys(dbapi_conn, _connection_record):
    # Tenant cascades rely on FK enforcement, which SQLite leaves off by default.
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str) -> AsyncEngine:
    if _is_sqlite(url):
        db_engine = create_async_engine(url, echo=settings.debug)
        event.listen(db_engine.sync_engine, "connect", _enable_foreign_keys)
        return db_engine
    return create_async_engine(url, echo=settings.debug, pool_size=20, max_overflow=10, pool_pre_ping=True)


engine = build_engine(settings.database_url)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success, rolls back on any error.

    The signing flow commits mid-request on purpose, so a failure after a
    signature is recorded only rolls back the work done since that commit.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
