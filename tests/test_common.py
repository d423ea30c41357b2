"""Tests for common utilities — problem details, criteria, pagination,
the unit of work and the audit sink.
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from hrms.common.audit import AuditSink, AuditTrail
from hrms.common.constants import LeaveStatus
from hrms.common.exceptions import (
    ConflictError,
    TransientDatabaseError,
    ValidationException,
    register_exception_handlers,
)
from hrms.common.filters import Eq, In, Overlaps, Range, apply_criteria, apply_sorting
from hrms.common.pagination import PaginationParams, paginate
from hrms.common.transaction import UnitOfWork, is_retryable, is_transient
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.leave.exceptions import InsufficientBalance
from hrms.leave.models import LeavePolicy, LeaveRequest
from hrms.leave.schemas import LeaveRequestOut
from tests.conftest import (
    TestSessionFactory,
    _make_employee,
    _seed_employee,
    _seed_policy,
    _seed_request,
    next_year,
)


class _SqlState(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


def _dbapi_error(sqlstate: str) -> DBAPIError:
    return DBAPIError("UPDATE leave_balances", {}, _SqlState(sqlstate))


# ═════════════════════════════════════════════════════════════════════
# RFC 7807 problem details
# ═════════════════════════════════════════════════════════════════════


def _error_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("Already there.", code="BALANCE_ALREADY_EXISTS")

    @app.get("/insufficient")
    async def insufficient():
        raise InsufficientBalance(3, 5)

    @app.get("/transient")
    async def transient():
        raise TransientDatabaseError()

    @app.get("/typed")
    async def typed(year: int):
        return {"year": year}

    return app


class TestProblemDetail:

    async def _get(self, path: str):
        async with AsyncClient(
            transport=ASGITransport(app=_error_app()), base_url="http://test",
        ) as ac:
            return await ac.get(path)

    async def test_conflict_carries_code(self):
        resp = await self._get("/conflict")
        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["code"] == "BALANCE_ALREADY_EXISTS"
        assert body["retryable"] is False
        assert body["instance"] == "/conflict"

    async def test_domain_violation_lists_field_errors(self):
        resp = await self._get("/insufficient")
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "INSUFFICIENT_BALANCE"
        assert "days" in body["errors"]

    async def test_transient_is_retryable(self):
        resp = await self._get("/transient")
        assert resp.status_code == 503
        assert resp.headers["retry-after"] == "1"
        body = resp.json()
        assert body["code"] == "TRANSIENT_ERROR"
        assert body["retryable"] is True

    async def test_request_validation_error(self):
        resp = await self._get("/typed?year=soon")
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert "year" in body["errors"]


# ═════════════════════════════════════════════════════════════════════
# Criteria and sorting
# ═════════════════════════════════════════════════════════════════════


class TestCriteria:

    async def _seed(self, db: AsyncSession):
        emp = await _seed_employee(db)
        other = await _seed_employee(db, first_name="Other")
        policy = await _seed_policy(db)
        r1 = await _seed_request(db, emp, policy, next_year(3, 2), next_year(3, 4))
        r2 = await _seed_request(
            db, emp, policy, next_year(5, 10), next_year(5, 12),
            status=LeaveStatus.approved,
        )
        r3 = await _seed_request(db, other, policy, next_year(3, 3), next_year(3, 3))
        return emp, other, r1, r2, r3

    async def _ids(self, db: AsyncSession, criteria) -> set[uuid.UUID]:
        query = apply_criteria(select(LeaveRequest.id), LeaveRequest, criteria)
        return set((await db.execute(query)).scalars().all())

    async def test_eq_skips_none(self, db: AsyncSession):
        emp, other, r1, r2, r3 = await self._seed(db)
        assert await self._ids(db, [Eq("employee_id", emp.id), Eq("status", None)]) == {
            r1.id, r2.id,
        }

    async def test_in(self, db: AsyncSession):
        emp, other, r1, r2, r3 = await self._seed(db)
        ids = await self._ids(db, [In("status", [LeaveStatus.approved])])
        assert ids == {r2.id}

    async def test_range_is_inclusive(self, db: AsyncSession):
        emp, other, r1, r2, r3 = await self._seed(db)
        ids = await self._ids(
            db, [Range("start_date", lower=next_year(3, 3), upper=next_year(5, 10))],
        )
        assert ids == {r2.id, r3.id}

    async def test_overlaps(self, db: AsyncSession):
        emp, other, r1, r2, r3 = await self._seed(db)
        ids = await self._ids(
            db, [Overlaps("start_date", "end_date", next_year(3, 4), next_year(3, 20))],
        )
        assert ids == {r1.id}

    def test_unknown_column_rejected(self):
        with pytest.raises(ValueError):
            apply_criteria(select(LeaveRequest), LeaveRequest, [Eq("nope", 1)])

    def test_unknown_sort_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            apply_sorting(select(LeaveRequest), LeaveRequest, "-nope")
        assert "sort" in exc_info.value.errors

    def test_sort_outside_allowed_rejected(self):
        with pytest.raises(ValidationException):
            apply_sorting(
                select(LeaveRequest), LeaveRequest, "reason", allowed=["start_date"],
            )


# ═════════════════════════════════════════════════════════════════════
# Pagination
# ═════════════════════════════════════════════════════════════════════


class TestPagination:

    async def test_paginate_with_schema_and_sort(self, db: AsyncSession):
        emp = await _seed_employee(db)
        policy = await _seed_policy(db)
        for day in (2, 9, 16):
            await _seed_request(db, emp, policy, next_year(4, day), next_year(4, day))

        params = PaginationParams(page=1, page_size=2, sort="-start_date")
        page = await paginate(
            db, select(LeaveRequest), params, model=LeaveRequest, schema=LeaveRequestOut,
        )

        assert page.meta.total == 3
        assert page.meta.total_pages == 2
        assert page.meta.has_next is True
        assert page.meta.has_prev is False
        assert [r.start_date for r in page.data] == [next_year(4, 16), next_year(4, 9)]
        assert isinstance(page.data[0], LeaveRequestOut)

    async def test_empty_result(self, db: AsyncSession):
        params = PaginationParams(page=1, page_size=10, sort=None)
        page = await paginate(db, select(LeavePolicy), params, model=LeavePolicy)
        assert page.meta.total == 0
        assert page.meta.total_pages == 0
        assert list(page.data) == []


# ═════════════════════════════════════════════════════════════════════
# Unit of work
# ═════════════════════════════════════════════════════════════════════


class TestErrorClassification:

    def test_stale_data_is_retryable(self):
        assert is_retryable(StaleDataError("version mismatch"))

    @pytest.mark.parametrize("state", ["40001", "40P01"])
    def test_serialization_and_deadlock_are_retryable(self, state):
        assert is_retryable(_dbapi_error(state))
        assert not is_transient(_dbapi_error(state))

    @pytest.mark.parametrize("state", ["55P03", "57014", "08006"])
    def test_timeouts_and_connection_loss_are_transient(self, state):
        assert is_transient(_dbapi_error(state))
        assert not is_retryable(_dbapi_error(state))

    def test_operational_error_is_transient(self):
        assert is_transient(OperationalError("SELECT 1", {}, Exception("gone")))

    def test_integrity_error_is_neither(self):
        exc = IntegrityError("INSERT", {}, _SqlState("23505"))
        assert not is_retryable(exc)
        assert not is_transient(exc)


class TestUnitOfWork:

    def test_timeouts_default_from_settings(self):
        uow = UnitOfWork(TestSessionFactory)
        assert uow.max_retries == settings.TX_MAX_RETRIES
        assert uow.lock_timeout_ms == settings.TX_LOCK_TIMEOUT_MS
        assert uow.statement_timeout_ms == settings.TX_STATEMENT_TIMEOUT_MS

    def test_explicit_zero_is_kept(self):
        uow = UnitOfWork(
            TestSessionFactory, max_retries=0, lock_timeout_ms=0, statement_timeout_ms=0,
        )
        assert uow.max_retries == 0
        assert uow.lock_timeout_ms == 0
        assert uow.statement_timeout_ms == 0

    async def test_commits_on_success(self, db: AsyncSession):
        uow = UnitOfWork(TestSessionFactory)

        async def _create(session: AsyncSession):
            emp = await _seed_employee_row(session)
            return emp.id

        employee_id = await uow.run(_create)

        assert await db.get(Employee, employee_id) is not None

    async def test_rolls_back_on_domain_error(self, db: AsyncSession):
        uow = UnitOfWork(TestSessionFactory)
        created: list[uuid.UUID] = []

        async def _create_then_fail(session: AsyncSession):
            emp = await _seed_employee_row(session)
            created.append(emp.id)
            raise InsufficientBalance(0, 1)

        with pytest.raises(InsufficientBalance):
            await uow.run(_create_then_fail)

        assert await db.get(Employee, created[0]) is None

    async def test_retries_conflicts_then_succeeds(self, caplog):
        uow = UnitOfWork(TestSessionFactory, max_retries=3)
        calls = {"n": 0}

        async def _flaky(session: AsyncSession):
            calls["n"] += 1
            if calls["n"] < 3:
                raise StaleDataError("version mismatch")
            return "done"

        with caplog.at_level(logging.WARNING, logger="hrms.common.transaction"):
            assert await uow.run(_flaky) == "done"
        assert calls["n"] == 3
        assert "retrying" in caplog.text

    async def test_exhausted_retries_become_transient(self):
        uow = UnitOfWork(TestSessionFactory, max_retries=2)
        calls = {"n": 0}

        async def _always_conflicts(session: AsyncSession):
            calls["n"] += 1
            raise _dbapi_error("40001")

        with pytest.raises(TransientDatabaseError) as exc_info:
            await uow.run(_always_conflicts)
        assert calls["n"] == 3
        assert exc_info.value.retryable is True

    async def test_lock_timeout_is_not_retried(self):
        uow = UnitOfWork(TestSessionFactory, max_retries=3)
        calls = {"n": 0}

        async def _times_out(session: AsyncSession):
            calls["n"] += 1
            raise _dbapi_error("55P03")

        with pytest.raises(TransientDatabaseError):
            await uow.run(_times_out)
        assert calls["n"] == 1

    async def test_other_database_errors_propagate(self):
        uow = UnitOfWork(TestSessionFactory)

        async def _constraint(session: AsyncSession):
            raise IntegrityError("INSERT", {}, _SqlState("23505"))

        with pytest.raises(IntegrityError):
            await uow.run(_constraint)


async def _seed_employee_row(session: AsyncSession):
    emp = Employee(**_make_employee())
    session.add(emp)
    await session.flush()
    return emp


# ═════════════════════════════════════════════════════════════════════
# Audit sink
# ═════════════════════════════════════════════════════════════════════


class TestAuditSink:

    async def test_records_entry(self, db: AsyncSession):
        sink = AuditSink(TestSessionFactory)
        entity_id = uuid.uuid4()
        actor_id = uuid.uuid4()

        await sink.record(
            action="adjust",
            entity_type="leave_balance",
            entity_id=entity_id,
            actor_id=actor_id,
            old_values={"remaining_days": "25.0"},
            new_values={"remaining_days": "27.0"},
        )

        rows = (await db.execute(
            select(AuditTrail).where(AuditTrail.entity_id == entity_id)
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].action == "adjust"
        assert rows[0].actor_id == actor_id
        assert rows[0].new_values == {"remaining_days": "27.0"}

    async def test_failure_is_logged_and_swallowed(self, caplog):
        def _broken_factory():
            raise RuntimeError("audit database unreachable")

        sink = AuditSink(_broken_factory)
        with caplog.at_level(logging.ERROR, logger="hrms.common.audit"):
            await sink.record(
                action="approve",
                entity_type="leave_request",
                entity_id=uuid.uuid4(),
            )
        assert "Audit write failed" in caplog.text
