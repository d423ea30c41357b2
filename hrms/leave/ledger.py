"""BalanceLedger — owner of every LeaveBalance mutation.

All writes go through this class so one arithmetic invariant holds
after every operation::

    remaining_days == allocated_days + carry_forward_days
                      + adjustment_days - used_days
    remaining_days >= 0, used_days >= 0

Callers run these methods inside a ``UnitOfWork``; the ``lock`` helpers
take a row lock on PostgreSQL, and the ``version`` column catches any
concurrent write that slips past it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import ACTIVE_LEAVE_STATUSES, LeaveStatus
from hrms.core_hr.models import Employee
from hrms.leave.exceptions import (
    AdjustmentReasonRequired,
    BalanceHasActiveRequests,
    BalanceInvariantViolation,
    BalanceNotFound,
    DuplicateBalance,
    EmployeeNotFound,
    InsufficientBalance,
    InsufficientBalanceForUpdate,
    NegativeBalanceNotAllowed,
    UsedDaysBelowApproved,
)
from hrms.leave.models import LeaveBalance, LeavePolicy, LeaveRequest
from hrms.leave.policies import PolicyCatalog, ensure_carry_forward_allowed

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BalanceLedger:

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get(
        db: AsyncSession,
        employee_id: uuid.UUID,
        policy_id: uuid.UUID,
        year: int,
        *,
        for_update: bool = False,
    ) -> Optional[LeaveBalance]:
        query = select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.policy_id == policy_id,
            LeaveBalance.year == year,
        )
        if for_update:
            query = query.with_for_update()
        return (await db.execute(query)).scalars().first()

    @staticmethod
    async def lock(db: AsyncSession, balance_id: uuid.UUID) -> LeaveBalance:
        """Load a balance by id holding its row lock, or raise ``BalanceNotFound``."""
        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.id == balance_id)
            .with_for_update()
        )
        balance = result.scalars().first()
        if balance is None:
            raise BalanceNotFound(balance_id)
        return balance

    @staticmethod
    async def _days_in_status(
        db: AsyncSession, balance: LeaveBalance, statuses: Sequence[LeaveStatus],
    ) -> Decimal:
        result = await db.execute(
            select(func.coalesce(func.sum(LeaveRequest.days), 0)).where(
                LeaveRequest.employee_id == balance.employee_id,
                LeaveRequest.policy_id == balance.policy_id,
                LeaveRequest.status.in_(statuses),
                LeaveRequest.start_date >= date(balance.year, 1, 1),
                LeaveRequest.start_date <= date(balance.year, 12, 31),
            )
        )
        return Decimal(str(result.scalar_one()))

    @staticmethod
    async def committed_days(db: AsyncSession, balance: LeaveBalance) -> Decimal:
        """Days held by pending and approved requests charged to *balance*."""
        return await BalanceLedger._days_in_status(db, balance, ACTIVE_LEAVE_STATUSES)

    @staticmethod
    async def approved_days(db: AsyncSession, balance: LeaveBalance) -> Decimal:
        """Days of approved requests; cancelling them releases this much usage."""
        return await BalanceLedger._days_in_status(db, balance, (LeaveStatus.approved,))

    # ── Invariant ───────────────────────────────────────────────────

    @staticmethod
    def verify(balance: LeaveBalance) -> None:
        """Raise ``BalanceInvariantViolation`` if *balance* is inconsistent."""
        expected = balance.total_days - balance.used_days
        if balance.remaining_days != expected:
            raise BalanceInvariantViolation(
                balance.id,
                f"remaining {balance.remaining_days} != expected {expected}",
            )
        if balance.used_days < ZERO:
            raise BalanceInvariantViolation(balance.id, "used days are negative")
        if balance.remaining_days < ZERO:
            raise BalanceInvariantViolation(balance.id, "remaining days are negative")

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    def build(
        employee_id: uuid.UUID,
        policy: LeavePolicy,
        year: int,
        allocated: Decimal,
        carry_forward: Decimal = ZERO,
        adjustment: Decimal = ZERO,
        reason: Optional[str] = None,
    ) -> LeaveBalance:
        """Construct a new, unused balance row after checking the policy rules."""
        ensure_carry_forward_allowed(policy, carry_forward)
        if adjustment and not (reason and reason.strip()):
            raise AdjustmentReasonRequired()

        remaining = allocated + carry_forward + adjustment
        if remaining < ZERO:
            raise NegativeBalanceNotAllowed(allocated + carry_forward, adjustment)

        balance = LeaveBalance(
            id=uuid.uuid4(),
            employee_id=employee_id,
            policy_id=policy.id,
            year=year,
            allocated_days=allocated,
            carry_forward_days=carry_forward,
            adjustment_days=adjustment,
            adjustment_reason=reason.strip() if adjustment else None,
            used_days=ZERO,
            remaining_days=remaining,
        )
        BalanceLedger.verify(balance)
        return balance

    @staticmethod
    async def create(
        db: AsyncSession,
        employee_id: uuid.UUID,
        policy_id: uuid.UUID,
        year: int,
        allocated: Decimal,
        carry_forward: Decimal = ZERO,
        adjustment: Decimal = ZERO,
        reason: Optional[str] = None,
    ) -> LeaveBalance:
        employee = await db.get(Employee, employee_id)
        if employee is None or not employee.is_employed:
            raise EmployeeNotFound(employee_id)
        policy = await PolicyCatalog.get(db, policy_id, active_only=True)

        if await BalanceLedger.get(db, employee_id, policy_id, year) is not None:
            raise DuplicateBalance(employee_id, policy_id, year)

        balance = BalanceLedger.build(
            employee_id, policy, year, allocated, carry_forward, adjustment, reason,
        )
        db.add(balance)
        await db.flush()
        return balance

    # ── Adjustments ─────────────────────────────────────────────────

    @staticmethod
    async def apply_adjustment(
        db: AsyncSession,
        balance_id: uuid.UUID,
        delta: Decimal,
        reason: Optional[str],
    ) -> LeaveBalance:
        """Add *delta* (signed) to the adjustment and to the remaining days."""
        balance = await BalanceLedger.lock(db, balance_id)
        if not delta:
            return balance
        if not (reason and reason.strip()):
            raise AdjustmentReasonRequired()

        new_remaining = balance.remaining_days + delta
        if new_remaining < ZERO:
            raise NegativeBalanceNotAllowed(balance.remaining_days, delta)

        balance.adjustment_days = balance.adjustment_days + delta
        balance.adjustment_reason = reason.strip()
        balance.remaining_days = new_remaining
        BalanceLedger.verify(balance)
        await db.flush()
        return balance

    # ── Usage (driven by request transitions) ───────────────────────

    @staticmethod
    async def reserve_usage(
        db: AsyncSession, balance: LeaveBalance, days: Decimal,
    ) -> LeaveBalance:
        """Move *days* from remaining to used. *balance* must already be locked."""
        if balance.remaining_days < days:
            raise InsufficientBalance(balance.remaining_days, days)
        balance.used_days = balance.used_days + days
        balance.remaining_days = balance.remaining_days - days
        BalanceLedger.verify(balance)
        await db.flush()
        return balance

    @staticmethod
    async def release_usage(
        db: AsyncSession, balance: LeaveBalance, days: Decimal,
    ) -> LeaveBalance:
        """Return *days* from used to remaining. *balance* must already be locked."""
        if balance.used_days < days:
            raise BalanceInvariantViolation(
                balance.id, f"cannot release {days} days, only {balance.used_days} used",
            )
        balance.used_days = balance.used_days - days
        balance.remaining_days = balance.remaining_days + days
        BalanceLedger.verify(balance)
        await db.flush()
        return balance

    # ── Administrative edit ─────────────────────────────────────────

    @staticmethod
    async def update_allocation(
        db: AsyncSession,
        balance_id: uuid.UUID,
        *,
        allocated: Optional[Decimal] = None,
        carry_forward: Optional[Decimal] = None,
        adjustment: Optional[Decimal] = None,
        adjustment_reason: Optional[str] = None,
        used: Optional[Decimal] = None,
    ) -> LeaveBalance:
        """Correct a balance's components without over-committing it.

        The new entitlement (allocated + carry-forward + adjustment) must
        still cover the used days plus every pending and approved request
        charged to this balance, and used days may not drop below the days
        of approved requests, which a cancel releases.
        """
        balance = await BalanceLedger.lock(db, balance_id)

        new_allocated = balance.allocated_days if allocated is None else allocated
        new_cf = balance.carry_forward_days if carry_forward is None else carry_forward
        new_adjustment = balance.adjustment_days if adjustment is None else adjustment
        new_used = balance.used_days if used is None else used
        new_reason = adjustment_reason if adjustment_reason is not None else balance.adjustment_reason

        if carry_forward is not None:
            policy = await PolicyCatalog.get(db, balance.policy_id)
            ensure_carry_forward_allowed(policy, new_cf)

        if new_adjustment and not (new_reason and new_reason.strip()):
            raise AdjustmentReasonRequired()

        if used is not None:
            approved = await BalanceLedger.approved_days(db, balance)
            if new_used < approved:
                raise UsedDaysBelowApproved(new_used, approved)

        if any(v is not None for v in (allocated, carry_forward, adjustment, used)):
            new_total = new_allocated + new_cf + new_adjustment
            committed = new_used + await BalanceLedger.committed_days(db, balance)
            if new_total < committed:
                raise InsufficientBalanceForUpdate(new_total, committed)

        balance.allocated_days = new_allocated
        balance.carry_forward_days = new_cf
        balance.adjustment_days = new_adjustment
        balance.adjustment_reason = new_reason if new_adjustment else None
        balance.used_days = new_used
        balance.remaining_days = new_allocated + new_cf + new_adjustment - new_used
        BalanceLedger.verify(balance)
        await db.flush()
        return balance

    # ── Removal ─────────────────────────────────────────────────────

    @staticmethod
    async def delete(db: AsyncSession, balance_id: uuid.UUID) -> LeaveBalance:
        balance = await BalanceLedger.lock(db, balance_id)
        if await BalanceLedger.committed_days(db, balance) > ZERO:
            raise BalanceHasActiveRequests(balance_id)
        await db.delete(balance)
        await db.flush()
        return balance
