"""
Pytest configuration and fixtures
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("TOKEN_PEPPER", "test-pepper")
os.environ.pop("EMAIL_SERVER", None)
os.environ.pop("TERMII_API_KEY", None)
os.environ.pop("RATE_LIMIT_REDIS_URL", None)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app import app
from core.breaker import breaker, outbound_breaker
from core.get_db import Base, build_engine, get_db_async
from models.enums import PropertyRole, UserRole

from factories import associate, make_property, make_unit, make_user


@pytest.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_breakers():
    breaker.reset()
    outbound_breaker.reset()
    yield
    breaker.reset()
    outbound_breaker.reset()


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_async] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def admin(db):
    return await make_user(db, UserRole.ADMIN, email="admin@example.com")


@pytest.fixture
async def landlord(db):
    return await make_user(db, UserRole.LANDLORD, email="landlord@example.com")


@pytest.fixture
async def tenant(db):
    return await make_user(db, UserRole.TENANT, email="tenant@example.com")


@pytest.fixture
async def estate(db, landlord, tenant):
    """A landlord-owned property with one unit and a tenant living in it."""
    prop = await make_property(db, landlord, name="Acacia Court")
    unit = await make_unit(db, prop)
    await associate(db, tenant, prop, unit, PropertyRole.TENANT)
    return prop, unit
