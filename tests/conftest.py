"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
Every session shares one in-memory connection (``StaticPool``), so seed
data must be committed before a service opens its own unit of work.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hrms.auth.permissions import Actor, Authorizer
from hrms.common.audit import AuditSink
from hrms.common.constants import EmploymentStatus, LeaveStatus, LeaveType, UserRole
from hrms.common.transaction import UnitOfWork
from hrms.config import settings
from hrms.database import Base, get_db
from hrms.dependencies import get_audit_sink, get_unit_of_work
from hrms.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import hrms.common.audit  # noqa: F401
import hrms.core_hr.models  # noqa: F401
import hrms.leave.models  # noqa: F401

from hrms.core_hr.models import Employee
from hrms.leave.models import LeaveBalance, LeavePolicy, LeaveRequest

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from hrms.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def _test_unit_of_work() -> UnitOfWork:
    return UnitOfWork(TestSessionFactory)


def _test_audit_sink() -> AuditSink:
    return AuditSink(TestSessionFactory)


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_unit_of_work] = _test_unit_of_work
    application.dependency_overrides[get_audit_sink] = _test_audit_sink
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Collaborators ───────────────────────────────────────────────────

@pytest.fixture
def uow() -> UnitOfWork:
    return _test_unit_of_work()


@pytest.fixture
def audit() -> AuditSink:
    return _test_audit_sink()


@pytest.fixture
def authorizer() -> Authorizer:
    return Authorizer()


# ── Dates ───────────────────────────────────────────────────────────

# Requests are filed for next year so "start in the past" never trips.
NEXT_YEAR = date.today().year + 1


def next_year(month: int, day: int) -> date:
    return date(NEXT_YEAR, month, day)


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    first_name: str = "Test",
    last_name: str = "User",
    reporting_manager_id: Optional[uuid.UUID] = None,
    employment_status: EmploymentStatus = EmploymentStatus.active,
    is_active: bool = True,
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"EMP-{code}",
        first_name=first_name,
        last_name=last_name,
        email=f"{first_name.lower()}.{code.lower()}@example.com",
        reporting_manager_id=reporting_manager_id,
        employment_status=employment_status,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.commit()
    return emp


async def _seed_policy(
    db: AsyncSession,
    *,
    name: str = "Annual Leave",
    leave_type: LeaveType = LeaveType.annual,
    days_allowed: Decimal = Decimal("20"),
    carry_forward: bool = True,
    max_carry_forward: Optional[Decimal] = Decimal("5"),
    is_active: bool = True,
) -> LeavePolicy:
    policy = LeavePolicy(
        id=uuid.uuid4(),
        name=name,
        leave_type=leave_type,
        days_allowed=days_allowed,
        carry_forward=carry_forward,
        max_carry_forward=max_carry_forward if carry_forward else None,
        is_active=is_active,
    )
    db.add(policy)
    await db.commit()
    return policy


async def _seed_balance(
    db: AsyncSession,
    employee: Employee,
    policy: LeavePolicy,
    *,
    year: int = NEXT_YEAR,
    allocated: Decimal = Decimal("20"),
    carry_forward: Decimal = Decimal("0"),
    adjustment: Decimal = Decimal("0"),
    used: Decimal = Decimal("0"),
) -> LeaveBalance:
    balance = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee.id,
        policy_id=policy.id,
        year=year,
        allocated_days=allocated,
        carry_forward_days=carry_forward,
        adjustment_days=adjustment,
        adjustment_reason="Seeded" if adjustment else None,
        used_days=used,
        remaining_days=allocated + carry_forward + adjustment - used,
    )
    db.add(balance)
    await db.commit()
    return balance


async def _seed_request(
    db: AsyncSession,
    employee: Employee,
    policy: LeavePolicy,
    start_date: date,
    end_date: date,
    *,
    status: LeaveStatus = LeaveStatus.pending,
) -> LeaveRequest:
    request = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=employee.id,
        policy_id=policy.id,
        start_date=start_date,
        end_date=end_date,
        days=Decimal((end_date - start_date).days + 1),
        status=status,
    )
    db.add(request)
    await db.commit()
    return request


async def _reload(db: AsyncSession, model, obj_id: uuid.UUID):
    """Re-read a row, discarding whatever the session had cached."""
    return await db.get(model, obj_id, populate_existing=True)


# ── Auth helpers ────────────────────────────────────────────────────

def actor_for(employee: Employee, role: UserRole = UserRole.employee) -> Actor:
    return Actor(employee_id=employee.id, role=role)


def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(
    employee: Employee, role: UserRole = UserRole.employee,
) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee.id, role)}"}
