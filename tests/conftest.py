"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- Fake external gateways (fleet, mirror, distance, token manager)
- Fixed clocks and test data factories
"""
# Settings are read at import time, so the environment is prepared first
import os
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("FLEET_COMPANY_ID", "company-test")
os.environ.setdefault("TIMEZONE", "Europe/Budapest")

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from courier_sync.db.database import Base, get_db
from courier_sync.db.models import Courier
from courier_sync.domain.services.external import (
    CodaMirrorClient,
    DistanceMatrixClient,
    FleetApiClient,
)
from courier_sync.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

BUDAPEST = ZoneInfo("Europe/Budapest")

# 2024-05-15 10:00 local (CEST, UTC+2): inside the operating window
WORKDAY_MORNING = datetime(2024, 5, 15, 8, 0, tzinfo=timezone.utc)


def fixed_clock(moment: datetime):
    """Clock that always returns ``moment``"""
    return lambda: moment


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_factory(db_session: AsyncSession):
    """SessionFactory handing out the test session (never closed by the code under test)"""
    @asynccontextmanager
    async def _factory():
        yield db_session

    return _factory


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Fake External Gateways
# ============================================================================

@pytest.fixture
def fleet_api() -> AsyncMock:
    """Fleet API with empty feeds by default"""
    fleet = AsyncMock(spec=FleetApiClient)
    fleet.list_couriers.return_value = []
    fleet.get_metrics.return_value = []
    fleet.get_earnings.return_value = []
    fleet.get_cash_balances.return_value = []
    fleet.get_delivery_statuses.return_value = []
    fleet.get_locations.return_value = []
    fleet.get_courier_detail.return_value = {}
    return fleet


@pytest.fixture
def mirror() -> AsyncMock:
    """Mirror that accepts every write"""
    client = AsyncMock(spec=CodaMirrorClient)
    client.add_courier.return_value = "i-row-1"
    client.update_cash_balance.return_value = True
    client.update_hotspot.return_value = True
    return client


@pytest.fixture
def distance_api() -> AsyncMock:
    return AsyncMock(spec=DistanceMatrixClient)


@pytest.fixture
def token_manager() -> AsyncMock:
    manager = AsyncMock()
    manager.get_valid_token.return_value = "access-token"
    return manager


# ============================================================================
# Test Data Factories
# ============================================================================

def courier_payload(courier_id: int = 5001, **overrides) -> dict:
    """Courier roster entry as the fleet API returns it"""
    payload = {
        "id": courier_id,
        "firstName": "Anna",
        "lastName": "Kovacs",
        "name": "Anna Kovacs",
        "email": f"courier{courier_id}@example.com",
        "phone": "+36301234567",
        "contractType": "freelancer",
        "vehicleType": "bicycle",
        "allowShiftReservation": True,
        "capabilities": ["alcohol"],
        "contractValidFrom": "2023-03-01",
        "isDisabled": False,
        "createdAt": "2023-03-01T09:30:00Z",
        "updatedAt": "2024-05-01T12:00:00Z",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def courier_factory(db_session: AsyncSession):
    """Factory for creating stored couriers"""
    async def _create_courier(
        courier_id: int = 5001,
        name: str = "Anna Kovacs",
        team: str | None = None,
        mirror_row_id: str | None = None,
        is_disabled: bool = False,
        team_synced_at: int | None = None,
    ) -> Courier:
        if team is not None and team_synced_at is None:
            team_synced_at = epoch_ms(WORKDAY_MORNING)
        courier = Courier(
            courier_id=courier_id,
            first_name=name.split(" ")[0],
            last_name=name.split(" ")[-1],
            name=name,
            is_disabled=is_disabled,
            team=team,
            team_synced_at=team_synced_at,
            created_at=epoch_ms(WORKDAY_MORNING),
            updated_at=epoch_ms(WORKDAY_MORNING),
            mirror_row_id=mirror_row_id,
        )
        db_session.add(courier)
        await db_session.commit()
        await db_session.refresh(courier)
        return courier

    return _create_courier


# ============================================================================
# Circuit Breaker Reset
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from courier_sync.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()
