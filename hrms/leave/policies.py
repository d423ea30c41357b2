"""PolicyCatalog — read-only lookup of leave policies and their carry-forward rule."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.leave.exceptions import (
    CarryForwardExceedsLimit,
    CarryForwardNotAllowed,
    LeaveRuleViolation,
    PolicyNotFound,
)
from hrms.leave.models import LeavePolicy


def carry_forward_violation(
    policy: LeavePolicy, days: Decimal,
) -> Optional[LeaveRuleViolation]:
    """Return the error *days* of carry-forward would raise against *policy*, if any.

    Exactly ``max_carry_forward`` is accepted.
    """
    if not days:
        return None
    if not policy.carry_forward:
        return CarryForwardNotAllowed(policy.name)
    limit = policy.max_carry_forward or Decimal("0")
    if days > limit:
        return CarryForwardExceedsLimit(days, limit)
    return None


def ensure_carry_forward_allowed(policy: LeavePolicy, days: Decimal) -> None:
    error = carry_forward_violation(policy, days)
    if error is not None:
        raise error


class PolicyCatalog:
    """Direct lookups; callers decide whether retired policies are acceptable."""

    @staticmethod
    async def get(
        db: AsyncSession,
        policy_id: uuid.UUID,
        *,
        active_only: bool = False,
    ) -> LeavePolicy:
        policy = await db.get(LeavePolicy, policy_id)
        if policy is None or (active_only and not policy.is_active):
            raise PolicyNotFound(policy_id)
        return policy

    @staticmethod
    async def get_many(
        db: AsyncSession,
        policy_ids: Iterable[uuid.UUID],
        *,
        active_only: bool = False,
    ) -> dict[uuid.UUID, LeavePolicy]:
        ids = set(policy_ids)
        if not ids:
            return {}
        query = select(LeavePolicy).where(LeavePolicy.id.in_(ids))
        if active_only:
            query = query.where(LeavePolicy.is_active.is_(True))
        rows = (await db.execute(query)).scalars().all()
        return {p.id: p for p in rows}

    @staticmethod
    async def list(
        db: AsyncSession, *, active_only: bool = True,
    ) -> Sequence[LeavePolicy]:
        query = select(LeavePolicy).order_by(LeavePolicy.name)
        if active_only:
            query = query.where(LeavePolicy.is_active.is_(True))
        return (await db.execute(query)).scalars().all()
