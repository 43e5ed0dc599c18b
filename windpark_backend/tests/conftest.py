"""
Centralized Test Configuration.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from windpark_backend.app.main import app
from windpark_backend.app.db.session import get_db, Base
from windpark_backend.app.core.guards import AuthContext
from windpark_backend.app.core.jwt import create_access_token
import windpark_backend.app.core.redis_client as redis_client_module
from windpark_backend.app.models.enums import UserRole
from windpark_backend.app.models.energy_settlement import EnergySettlement, EnergySettlementItem
from windpark_backend.app.models.park import Park, Turbine, Fund
from windpark_backend.app.models.settlement_enums import EnergySettlementStatus, DistributionMode

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT_ID = 1
OTHER_TENANT_ID = 2


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}

    async def aclose(self):
        self.store = {}


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    """Fresh sessions for the code under test, separate from fixture data."""
    return TestingSessionLocal


# --- Auth helpers ---------------------------------------------------------

def make_token(role: UserRole = UserRole.MANAGER, tenant_id: int = TENANT_ID, user_id: int = 10) -> str:
    return create_access_token(data={
        "sub": f"user{user_id}",
        "user_id": user_id,
        "tenant_id": tenant_id,
        "role": role.value,
    })


def auth_headers(role: UserRole = UserRole.MANAGER, tenant_id: int = TENANT_ID, user_id: int = 10) -> dict:
    return {"Authorization": f"Bearer {make_token(role, tenant_id, user_id)}"}


@pytest.fixture
def manager_headers():
    return auth_headers(UserRole.MANAGER)


@pytest.fixture
def admin_headers():
    return auth_headers(UserRole.ADMIN, user_id=1)


@pytest.fixture
def viewer_headers():
    return auth_headers(UserRole.VIEWER, user_id=20)


@pytest.fixture
def foreign_headers():
    """Administrator of another tenant."""
    return auth_headers(UserRole.ADMIN, tenant_id=OTHER_TENANT_ID, user_id=99)


@pytest.fixture
def manager_auth():
    return AuthContext(tenant_id=TENANT_ID, actor_id=10, role=UserRole.MANAGER, username="user10")


@pytest.fixture
def admin_auth():
    return AuthContext(tenant_id=TENANT_ID, actor_id=1, role=UserRole.ADMIN, username="user1")


# --- Master data ----------------------------------------------------------

@pytest.fixture
async def park(db_session):
    """Park of tenant 1 with two turbines and two funds."""
    park = Park(tenant_id=TENANT_ID, name="Windpark Nordfeld", short_name="WP-NF")
    db_session.add(park)
    await db_session.flush()

    turbines = [
        Turbine(park_id=park.id, designation="WEA 01"),
        Turbine(park_id=park.id, designation="WEA 02"),
    ]
    funds = [
        Fund(tenant_id=TENANT_ID, name="Bürgerwind Nordfeld GmbH & Co. KG", address="Hauptstr. 1, 25813 Husum"),
        Fund(tenant_id=TENANT_ID, name="Nordfeld Beteiligungs GmbH", address="Marktplatz 3, 25813 Husum"),
    ]
    db_session.add_all(turbines + funds)
    await db_session.commit()

    return {"park": park, "turbines": turbines, "funds": funds}


@pytest.fixture
async def foreign_park(db_session):
    park = Park(tenant_id=OTHER_TENANT_ID, name="Windpark Südhang")
    fund = Fund(tenant_id=OTHER_TENANT_ID, name="Südhang Invest KG")
    db_session.add_all([park, fund])
    await db_session.commit()
    return {"park": park, "fund": fund}


async def make_calculated_settlement(
    db_session,
    park_data,
    shares,
    net_revenue=Decimal("100000.00"),
    total_production=Decimal("500000.000"),
    eeg_revenue=Decimal("80000.00"),
    dv_revenue=Decimal("20000.00"),
    eeg_production=Decimal("400000.000"),
    dv_production=Decimal("100000.000"),
    month=3,
    year=2026,
):
    """
    Persist a CALCULATED settlement.

    shares: list of (fund index or None, turbine index or None, kWh, EUR)
    """
    park = park_data["park"]
    settlement = EnergySettlement(
        tenant_id=park.tenant_id,
        park_id=park.id,
        year=year,
        month=month,
        status=EnergySettlementStatus.CALCULATED,
        net_operator_revenue_eur=net_revenue,
        total_production_kwh=total_production,
        eeg_revenue_eur=eeg_revenue,
        dv_revenue_eur=dv_revenue,
        eeg_production_kwh=eeg_production,
        dv_production_kwh=dv_production,
        distribution_mode=DistributionMode.PROPORTIONAL,
        calculation_details={"source": "test"},
    )
    settlement.items = [
        EnergySettlementItem(
            recipient_fund_id=park_data["funds"][fund_index].id if fund_index is not None else None,
            turbine_id=park_data["turbines"][turbine_index].id if turbine_index is not None else None,
            production_share_kwh=Decimal(str(kwh)),
            revenue_share_eur=Decimal(str(eur)),
        )
        for fund_index, turbine_index, kwh, eur in shares
    ]
    db_session.add(settlement)
    await db_session.commit()
    return settlement


@pytest.fixture
async def calculated_settlement(db_session, park):
    """March 2026, EEG/DV split, two recipients."""
    return await make_calculated_settlement(
        db_session,
        park,
        shares=[
            (0, 0, "300000.000", "60000.00"),
            (1, 1, "200000.000", "40000.00"),
        ],
    )
