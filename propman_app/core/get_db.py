from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from .settings import settings


def _sqlite_foreign_keys(dbapi_connection, _record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, **extra) -> AsyncEngine:
    kwargs = {"echo": settings.DATABASE_ECHO}
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    kwargs.update(extra)
    engine = create_async_engine(url, **kwargs)
    if url.startswith("sqlite"):
        # ON DELETE rules are only honoured with the pragma set per connection
        event.listen(engine.sync_engine, "connect", _sqlite_foreign_keys)
    return engine


async_engine: AsyncEngine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db_async():
    session = AsyncSessionLocal()
    try:
        yield session
    finally:
        await session.close()


class Base(DeclarativeBase):
    pass
