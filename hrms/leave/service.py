"""Leave services — policies, balances and requests.

Each mutating method runs one ``UnitOfWork`` and then records an audit
entry. Reads take a plain ``AsyncSession`` from ``get_db``.
"""

from __future__ import annotations

import logging
import uuid
from calendar import monthrange
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.permissions import Actor, Authorizer
from hrms.common.audit import AuditSink
from hrms.common.constants import ACTIVE_LEAVE_STATUSES, LeaveStatus, UserRole
from hrms.common.exceptions import ForbiddenException, ValidationException
from hrms.common.filters import Criterion, Eq, In, Overlaps, Range, apply_criteria
from hrms.common.pagination import PaginatedResponse, PaginationParams, paginate
from hrms.common.transaction import UnitOfWork
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.leave.coordinator import lock_request, snapshot as request_snapshot
from hrms.leave.exceptions import (
    BalanceNotFound,
    EmployeeNotFound,
    InsufficientBalance,
    InvalidCarryForwardConfig,
    InvalidStartDate,
    OverlappingRequest,
    PolicyHasActiveRequests,
    PolicyNameExists,
    RequestNotFound,
)
from hrms.leave.ledger import BalanceLedger
from hrms.leave.lifecycle import RequestLifecycle
from hrms.leave.models import LeaveBalance, LeavePolicy, LeaveRequest
from hrms.leave.overlap import OverlapDetector
from hrms.leave.policies import PolicyCatalog
from hrms.leave.schemas import (
    BalanceStatsOverview,
    BalanceSummaryOut,
    BalanceTypeSummary,
    CalendarEntry,
    LeaveBalanceCreate,
    LeaveBalanceFilters,
    LeaveBalanceOut,
    LeaveBalanceUpdate,
    LeaveCalendarOut,
    LeavePolicyCreate,
    LeavePolicyOut,
    LeavePolicyUpdate,
    LeaveRequestCreate,
    LeaveRequestFilters,
    LeaveRequestOut,
    LeaveRequestSummaryOut,
    LeaveRequestUpdate,
    PolicyUsageStats,
    StatusBreakdown,
    TypeUtilization,
)

logger = logging.getLogger(__name__)


def count_leave_days(start_date: date, end_date: date) -> Decimal:
    """Inclusive calendar-day count; a single-day request is 1."""
    return Decimal((end_date - start_date).days + 1)


def balance_snapshot(balance: LeaveBalance) -> dict[str, Any]:
    return LeaveBalanceOut.model_validate(balance).model_dump(mode="json")


def policy_snapshot(policy: LeavePolicy) -> dict[str, Any]:
    return LeavePolicyOut.model_validate(policy).model_dump(mode="json")


async def _has_active_requests(db: AsyncSession, policy_id: uuid.UUID) -> bool:
    count = (await db.execute(
        select(func.count()).select_from(LeaveRequest).where(
            LeaveRequest.policy_id == policy_id,
            LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
        )
    )).scalar_one()
    return count > 0


# ═════════════════════════════════════════════════════════════════════
# Policies
# ═════════════════════════════════════════════════════════════════════


class PolicyService:

    def __init__(self, uow: UnitOfWork, audit: AuditSink) -> None:
        self.uow = uow
        self.audit = audit

    @staticmethod
    async def _ensure_unique_name(
        db: AsyncSession, name: str, *, exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(LeavePolicy.id).where(
            func.lower(LeavePolicy.name) == name.strip().lower()
        )
        if exclude_id is not None:
            query = query.where(LeavePolicy.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise PolicyNameExists(name)

    @staticmethod
    async def _ensure_carry_forward_config(
        db: AsyncSession,
        carry_forward: bool,
        max_carry_forward: Optional[Decimal],
        *,
        policy_id: Optional[uuid.UUID] = None,
    ) -> None:
        if carry_forward and max_carry_forward is None:
            raise InvalidCarryForwardConfig(
                "max_carry_forward is required when carry_forward is enabled."
            )
        if policy_id is None:
            return
        # Existing balances must stay within the new rule.
        limit = max_carry_forward if carry_forward else Decimal("0")
        over = (await db.execute(
            select(func.count()).select_from(LeaveBalance).where(
                LeaveBalance.policy_id == policy_id,
                LeaveBalance.carry_forward_days > limit,
            )
        )).scalar_one()
        if over:
            raise InvalidCarryForwardConfig(
                f"{over} existing balance(s) carry forward more than {limit} days."
            )

    async def create(self, data: LeavePolicyCreate, actor: Actor) -> LeavePolicy:
        async def _create(db: AsyncSession) -> LeavePolicy:
            await self._ensure_unique_name(db, data.name)
            await self._ensure_carry_forward_config(
                db, data.carry_forward, data.max_carry_forward,
            )
            policy = LeavePolicy(
                id=uuid.uuid4(),
                name=data.name.strip(),
                leave_type=data.leave_type,
                description=data.description,
                days_allowed=data.days_allowed,
                carry_forward=data.carry_forward,
                max_carry_forward=data.max_carry_forward if data.carry_forward else None,
                is_active=data.is_active,
            )
            db.add(policy)
            await db.flush()
            return policy

        policy = await self.uow.run(_create)
        await self.audit.record(
            action="create", entity_type="leave_policy", entity_id=policy.id,
            actor_id=actor.employee_id, new_values=policy_snapshot(policy),
        )
        return policy

    async def update(
        self, policy_id: uuid.UUID, data: LeavePolicyUpdate, actor: Actor,
    ) -> LeavePolicy:
        changes = data.model_dump(exclude_unset=True)

        async def _update(db: AsyncSession) -> tuple[LeavePolicy, dict[str, Any]]:
            policy = await PolicyCatalog.get(db, policy_id)
            before = policy_snapshot(policy)

            if changes.get("name") is not None:
                await self._ensure_unique_name(db, changes["name"], exclude_id=policy.id)
                changes["name"] = changes["name"].strip()

            if changes.get("is_active") is False and policy.is_active:
                if await _has_active_requests(db, policy.id):
                    raise PolicyHasActiveRequests(policy.id)

            if "carry_forward" in changes or "max_carry_forward" in changes:
                carry_forward = changes.get("carry_forward", policy.carry_forward)
                max_cf = changes.get("max_carry_forward", policy.max_carry_forward)
                await self._ensure_carry_forward_config(
                    db, carry_forward, max_cf, policy_id=policy.id,
                )
                if not carry_forward:
                    changes["max_carry_forward"] = None

            for field, value in changes.items():
                setattr(policy, field, value)
            await db.flush()
            return policy, before

        policy, before = await self.uow.run(_update)
        await self.audit.record(
            action="update", entity_type="leave_policy", entity_id=policy.id,
            actor_id=actor.employee_id, old_values=before,
            new_values=policy_snapshot(policy),
        )
        return policy

    async def deactivate(self, policy_id: uuid.UUID, actor: Actor) -> LeavePolicy:
        """Soft delete: policies with ledger history are never removed."""
        return await self.update(
            policy_id, LeavePolicyUpdate(is_active=False), actor,
        )

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def usage_stats(
        db: AsyncSession, policy_id: uuid.UUID, year: int,
    ) -> PolicyUsageStats:
        """How many balances a policy funds in *year* and how its requests stand.

        Requests are counted when they start within the year; ``days_used``
        sums the approved ones.
        """
        policy = await PolicyCatalog.get(db, policy_id)
        with_balance = (await db.execute(
            select(func.count()).select_from(LeaveBalance).where(
                LeaveBalance.policy_id == policy.id,
                LeaveBalance.year == year,
            )
        )).scalar_one()
        by_status = await _status_breakdown(db, [
            Eq("policy_id", policy.id),
            Range("start_date", *_year_bounds(year)),
        ])
        return PolicyUsageStats(
            policy_id=policy.id,
            name=policy.name,
            leave_type=policy.leave_type,
            year=year,
            employees_with_balance=with_balance,
            total_requests=sum(b.count for b in by_status),
            by_status=by_status,
            days_used=_days_with_status(by_status, LeaveStatus.approved),
        )


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class BalanceService:

    def __init__(self, uow: UnitOfWork, audit: AuditSink) -> None:
        self.uow = uow
        self.audit = audit

    async def create(self, data: LeaveBalanceCreate, actor: Actor) -> LeaveBalance:
        balance = await self.uow.run(
            lambda db: BalanceLedger.create(
                db,
                data.employee_id,
                data.policy_id,
                data.year,
                data.allocated_days,
                data.carry_forward_days,
                data.adjustment_days,
                data.adjustment_reason,
            )
        )
        await self.audit.record(
            action="create", entity_type="leave_balance", entity_id=balance.id,
            actor_id=actor.employee_id, new_values=balance_snapshot(balance),
        )
        return balance

    async def adjust(
        self,
        balance_id: uuid.UUID,
        delta: Decimal,
        reason: Optional[str],
        actor: Actor,
    ) -> LeaveBalance:
        async def _adjust(db: AsyncSession) -> tuple[LeaveBalance, dict[str, Any]]:
            before = balance_snapshot(await BalanceLedger.lock(db, balance_id))
            balance = await BalanceLedger.apply_adjustment(db, balance_id, delta, reason)
            return balance, before

        balance, before = await self.uow.run(_adjust)
        await self.audit.record(
            action="adjust", entity_type="leave_balance", entity_id=balance.id,
            actor_id=actor.employee_id, old_values=before,
            new_values=balance_snapshot(balance),
        )
        return balance

    async def update(
        self, balance_id: uuid.UUID, data: LeaveBalanceUpdate, actor: Actor,
    ) -> LeaveBalance:
        async def _update(db: AsyncSession) -> tuple[LeaveBalance, dict[str, Any]]:
            before = balance_snapshot(await BalanceLedger.lock(db, balance_id))
            balance = await BalanceLedger.update_allocation(
                db,
                balance_id,
                allocated=data.allocated_days,
                carry_forward=data.carry_forward_days,
                adjustment=data.adjustment_days,
                adjustment_reason=data.adjustment_reason,
                used=data.used_days,
            )
            return balance, before

        balance, before = await self.uow.run(_update)
        await self.audit.record(
            action="update", entity_type="leave_balance", entity_id=balance.id,
            actor_id=actor.employee_id, old_values=before,
            new_values=balance_snapshot(balance),
        )
        return balance

    async def delete(self, balance_id: uuid.UUID, actor: Actor) -> None:
        async def _delete(db: AsyncSession) -> dict[str, Any]:
            before = balance_snapshot(await BalanceLedger.lock(db, balance_id))
            await BalanceLedger.delete(db, balance_id)
            return before

        before = await self.uow.run(_delete)
        await self.audit.record(
            action="delete", entity_type="leave_balance", entity_id=balance_id,
            actor_id=actor.employee_id, old_values=before,
        )

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get(db: AsyncSession, balance_id: uuid.UUID, actor: Actor) -> LeaveBalance:
        balance = await db.get(LeaveBalance, balance_id)
        if balance is None:
            raise BalanceNotFound(balance_id)
        await _ensure_visible(db, actor, balance.employee_id)
        return balance

    @staticmethod
    async def list(
        db: AsyncSession,
        filters: LeaveBalanceFilters,
        params: PaginationParams,
        actor: Actor,
    ) -> PaginatedResponse:
        query = apply_criteria(select(LeaveBalance), LeaveBalance, filters.to_criteria())
        query = _scope_to_actor(query, LeaveBalance.employee_id, actor)
        if not params.sort:
            query = query.order_by(LeaveBalance.year.desc(), LeaveBalance.created_at)
        return await paginate(db, query, params, model=LeaveBalance, schema=LeaveBalanceOut)

    @staticmethod
    async def summary(
        db: AsyncSession, employee_id: uuid.UUID, year: int, actor: Actor,
    ) -> BalanceSummaryOut:
        """Totals for one employee and year, grouped by leave type."""
        await _ensure_visible(db, actor, employee_id)
        rows = (await db.execute(
            select(LeaveBalance, LeavePolicy.leave_type)
            .join(LeavePolicy, LeavePolicy.id == LeaveBalance.policy_id)
            .where(LeaveBalance.employee_id == employee_id, LeaveBalance.year == year)
            .order_by(LeavePolicy.leave_type, LeavePolicy.name)
        )).all()

        grouped: dict[Any, list[LeaveBalanceOut]] = {}
        for balance, leave_type in rows:
            grouped.setdefault(leave_type, []).append(LeaveBalanceOut.model_validate(balance))

        balances = [b for b, _ in rows]
        zero = Decimal("0")
        return BalanceSummaryOut(
            employee_id=employee_id,
            year=year,
            total_allocated=sum((b.allocated_days for b in balances), zero),
            total_carry_forward=sum((b.carry_forward_days for b in balances), zero),
            total_adjustment=sum((b.adjustment_days for b in balances), zero),
            total_used=sum((b.used_days for b in balances), zero),
            total_remaining=sum((b.remaining_days for b in balances), zero),
            by_leave_type=[
                BalanceTypeSummary(leave_type=lt, balances=items)
                for lt, items in grouped.items()
            ],
        )

    @staticmethod
    async def stats_overview(
        db: AsyncSession, year: int, actor: Actor,
    ) -> BalanceStatsOverview:
        """Totals and utilization across every balance the actor can see."""
        query = (
            select(
                LeavePolicy.leave_type,
                func.count(LeaveBalance.id).label("balances"),
                func.coalesce(func.sum(LeaveBalance.allocated_days), 0).label("allocated"),
                func.coalesce(func.sum(LeaveBalance.carry_forward_days), 0).label("carry_forward"),
                func.coalesce(func.sum(LeaveBalance.adjustment_days), 0).label("adjustment"),
                func.coalesce(func.sum(LeaveBalance.used_days), 0).label("used"),
                func.coalesce(func.sum(LeaveBalance.remaining_days), 0).label("remaining"),
            )
            .join(LeavePolicy, LeavePolicy.id == LeaveBalance.policy_id)
            .where(LeaveBalance.year == year)
            .group_by(LeavePolicy.leave_type)
            .order_by(LeavePolicy.leave_type)
        )
        query = _scope_to_actor(query, LeaveBalance.employee_id, actor)
        rows = (await db.execute(query)).all()

        by_type = [
            TypeUtilization(
                leave_type=row.leave_type,
                balances=row.balances,
                allocated=_dec(row.allocated),
                used=_dec(row.used),
                remaining=_dec(row.remaining),
                utilization_rate=utilization_rate(_dec(row.used), _dec(row.allocated)),
            )
            for row in rows
        ]
        total_allocated = sum((_dec(r.allocated) for r in rows), Decimal("0"))
        total_used = sum((_dec(r.used) for r in rows), Decimal("0"))
        return BalanceStatsOverview(
            year=year,
            total_balances=sum(r.balances for r in rows),
            total_allocated=total_allocated,
            total_carry_forward=sum((_dec(r.carry_forward) for r in rows), Decimal("0")),
            total_adjustment=sum((_dec(r.adjustment) for r in rows), Decimal("0")),
            total_used=total_used,
            total_remaining=sum((_dec(r.remaining) for r in rows), Decimal("0")),
            utilization_rate=utilization_rate(total_used, total_allocated),
            by_leave_type=by_type,
        )


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestService:

    def __init__(
        self, uow: UnitOfWork, authorizer: Authorizer, audit: AuditSink,
    ) -> None:
        self.uow = uow
        self.authorizer = authorizer
        self.audit = audit

    @staticmethod
    async def _lock_active_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        # Serializes overlap checks for one employee across concurrent submissions.
        result = await db.execute(
            select(Employee).where(Employee.id == employee_id).with_for_update()
        )
        employee = result.scalars().first()
        if employee is None or not employee.is_employed:
            raise EmployeeNotFound(employee_id)
        return employee

    async def create(self, data: LeaveRequestCreate, actor: Actor) -> LeaveRequest:
        employee_id = data.employee_id or actor.employee_id

        async def _create(db: AsyncSession) -> LeaveRequest:
            employee = await self._lock_active_employee(db, employee_id)
            self.authorizer.ensure_can_act_for(actor, employee)
            policy = await PolicyCatalog.get(db, data.policy_id, active_only=True)

            if data.start_date < date.today():
                raise InvalidStartDate()
            days = count_leave_days(data.start_date, data.end_date)

            if await OverlapDetector.has_overlap(
                db, employee.id, data.start_date, data.end_date,
            ):
                raise OverlappingRequest()

            year = data.start_date.year
            balance = await BalanceLedger.get(db, employee.id, policy.id, year)
            if balance is None:
                raise BalanceNotFound(f"{employee.id}/{policy.id}/{year}")
            if balance.remaining_days < days:
                raise InsufficientBalance(balance.remaining_days, days)

            request = LeaveRequest(
                id=uuid.uuid4(),
                employee_id=employee.id,
                policy_id=policy.id,
                start_date=data.start_date,
                end_date=data.end_date,
                days=days,
                reason=data.reason,
            )
            db.add(request)
            await db.flush()
            return request

        request = await self.uow.run(_create)
        logger.info(
            "Leave request %s filed for %s (%s days)", request.id, employee_id, request.days,
        )
        await self.audit.record(
            action="create", entity_type="leave_request", entity_id=request.id,
            actor_id=actor.employee_id, new_values=request_snapshot(request),
        )
        return request

    async def update(
        self, request_id: uuid.UUID, data: LeaveRequestUpdate, actor: Actor,
    ) -> LeaveRequest:
        """Edit a pending request's dates or reason."""

        async def _update(db: AsyncSession) -> tuple[LeaveRequest, dict[str, Any]]:
            request = await lock_request(db, request_id)
            before = request_snapshot(request)
            employee = await self._lock_active_employee(db, request.employee_id)
            self.authorizer.ensure_can_act_for(actor, employee)
            RequestLifecycle.ensure_editable(request)

            start = data.start_date or request.start_date
            end = data.end_date or request.end_date
            if end < start:
                raise ValidationException(
                    {"end_date": ["end_date must be on or after start_date"]},
                )

            if (start, end) != (request.start_date, request.end_date):
                if start < date.today():
                    raise InvalidStartDate()
                if await OverlapDetector.has_overlap(
                    db, request.employee_id, start, end, exclude_request_id=request.id,
                ):
                    raise OverlappingRequest()

                new_days = count_leave_days(start, end)
                balance = await BalanceLedger.get(
                    db, request.employee_id, request.policy_id, start.year,
                )
                if balance is None:
                    raise BalanceNotFound(f"{request.employee_id}/{request.policy_id}/{start.year}")
                # Same balance: the old days stop counting against it.
                credit = request.days if start.year == request.start_date.year else Decimal("0")
                if balance.remaining_days + credit < new_days:
                    raise InsufficientBalance(balance.remaining_days + credit, new_days)

                request.start_date = start
                request.end_date = end
                request.days = new_days

            if data.reason is not None:
                request.reason = data.reason
            await db.flush()
            return request, before

        request, before = await self.uow.run(_update)
        await self.audit.record(
            action="update", entity_type="leave_request", entity_id=request.id,
            actor_id=actor.employee_id, old_values=before,
            new_values=request_snapshot(request),
        )
        return request

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get(db: AsyncSession, request_id: uuid.UUID, actor: Actor) -> LeaveRequest:
        request = await db.get(LeaveRequest, request_id)
        if request is None:
            raise RequestNotFound(request_id)
        await _ensure_visible(db, actor, request.employee_id)
        return request

    @staticmethod
    async def list(
        db: AsyncSession,
        filters: LeaveRequestFilters,
        params: PaginationParams,
        actor: Actor,
    ) -> PaginatedResponse:
        query = apply_criteria(select(LeaveRequest), LeaveRequest, filters.to_criteria())
        query = _scope_to_actor(query, LeaveRequest.employee_id, actor)
        if not params.sort:
            query = query.order_by(LeaveRequest.start_date.desc())
        return await paginate(db, query, params, model=LeaveRequest, schema=LeaveRequestOut)

    @staticmethod
    async def summary(
        db: AsyncSession, employee_id: uuid.UUID, year: int, actor: Actor,
    ) -> LeaveRequestSummaryOut:
        """One employee's balances for *year*, request counts and latest requests."""
        await _ensure_visible(db, actor, employee_id)
        balances = (await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.employee_id == employee_id, LeaveBalance.year == year)
            .order_by(LeaveBalance.created_at)
        )).scalars().all()
        by_status = await _status_breakdown(db, [
            Eq("employee_id", employee_id),
            Range("start_date", *_year_bounds(year)),
        ])
        recent = (await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.applied_at.desc())
            .limit(settings.RECENT_REQUESTS_LIMIT)
        )).scalars().all()

        return LeaveRequestSummaryOut(
            employee_id=employee_id,
            year=year,
            balances=[LeaveBalanceOut.model_validate(b) for b in balances],
            total_requests=sum(b.count for b in by_status),
            by_status=by_status,
            days_taken=_days_with_status(by_status, LeaveStatus.approved),
            recent=[LeaveRequestOut.model_validate(r) for r in recent],
        )

    @staticmethod
    async def calendar(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        month: Optional[int],
        actor: Actor,
    ) -> LeaveCalendarOut:
        """Pending and approved leave overlapping a year, or one month of it."""
        await _ensure_visible(db, actor, employee_id)
        if month is None:
            from_date, to_date = _year_bounds(year)
        else:
            from_date = date(year, month, 1)
            to_date = date(year, month, monthrange(year, month)[1])

        query = apply_criteria(
            select(LeaveRequest, LeavePolicy)
            .join(LeavePolicy, LeavePolicy.id == LeaveRequest.policy_id),
            LeaveRequest,
            [
                Eq("employee_id", employee_id),
                In("status", ACTIVE_LEAVE_STATUSES),
                Overlaps("start_date", "end_date", from_date, to_date),
            ],
        )
        rows = (await db.execute(query.order_by(LeaveRequest.start_date))).all()

        return LeaveCalendarOut(
            employee_id=employee_id,
            year=year,
            month=month,
            from_date=from_date,
            to_date=to_date,
            entries=[
                CalendarEntry(
                    id=request.id,
                    policy_id=policy.id,
                    policy_name=policy.name,
                    leave_type=policy.leave_type,
                    start_date=request.start_date,
                    end_date=request.end_date,
                    days=request.days,
                    status=request.status,
                    reason=request.reason,
                )
                for request, policy in rows
            ],
        )


# ── Reporting helpers ───────────────────────────────────────────────

def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


def _year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def utilization_rate(used: Decimal, allocated: Decimal) -> Decimal:
    """``used`` as a percentage of ``allocated``, to two places; 0 when nothing is allocated."""
    if not allocated:
        return Decimal("0")
    return round(used / allocated * 100, 2)


async def _status_breakdown(
    db: AsyncSession, criteria: Sequence[Criterion],
) -> list[StatusBreakdown]:
    query = apply_criteria(
        select(
            LeaveRequest.status,
            func.count(LeaveRequest.id).label("requests"),
            func.coalesce(func.sum(LeaveRequest.days), 0).label("days"),
        ),
        LeaveRequest,
        criteria,
    )
    rows = (await db.execute(
        query.group_by(LeaveRequest.status).order_by(LeaveRequest.status)
    )).all()
    return [
        StatusBreakdown(status=row.status, count=row.requests, days=_dec(row.days))
        for row in rows
    ]


def _days_with_status(breakdown: Sequence[StatusBreakdown], status: LeaveStatus) -> Decimal:
    return next((b.days for b in breakdown if b.status == status), Decimal("0"))


# ── Visibility ──────────────────────────────────────────────────────

def _scope_to_actor(query, employee_col, actor: Actor):
    """Employees see their own rows, managers add direct reports, HR sees all."""
    if actor.is_privileged:
        return query
    if actor.role == UserRole.manager:
        reports = select(Employee.id).where(
            Employee.reporting_manager_id == actor.employee_id
        )
        return query.where(
            or_(employee_col == actor.employee_id, employee_col.in_(reports))
        )
    return query.where(employee_col == actor.employee_id)


async def _ensure_visible(db: AsyncSession, actor: Actor, employee_id: uuid.UUID) -> None:
    if actor.is_privileged or actor.employee_id == employee_id:
        return
    employee = await db.get(Employee, employee_id)
    if employee is None or not Authorizer().can_act_for(actor, employee):
        raise ForbiddenException(detail="You cannot view leave data for this employee.")
