"""BalanceProvisioningJob — create the period's missing balances.

Invoked by an external trigger (cron via ``scripts/provision_balances.py``
or the HR endpoint). Only absent (employee, policy, year) rows are
created, so re-running the job for the same year is a no-op.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import EmploymentStatus
from hrms.common.transaction import UnitOfWork
from hrms.core_hr.models import Employee
from hrms.leave.ledger import BalanceLedger
from hrms.leave.models import LeaveBalance, LeavePolicy
from hrms.leave.schemas import ProvisioningResult

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BalanceProvisioningJob:

    def __init__(self, uow: UnitOfWork) -> None:
        self.uow = uow

    async def run(
        self, year: Optional[int] = None, *, carry_forward: bool = True,
    ) -> ProvisioningResult:
        year = year or date.today().year
        try:
            result = await self.uow.run(lambda db: self._provision(db, year, carry_forward))
        except IntegrityError:
            # A concurrent run inserted some of the same keys; the retry skips them.
            logger.warning("Provisioning for %d raced another run, retrying once", year)
            result = await self.uow.run(lambda db: self._provision(db, year, carry_forward))
        logger.info(
            "Leave balances provisioned for %d: %d created, %d already present",
            result.year, result.created, result.skipped,
        )
        return result

    @staticmethod
    async def _provision(
        db: AsyncSession, year: int, carry_forward: bool,
    ) -> ProvisioningResult:
        employee_ids = (await db.execute(
            select(Employee.id).where(
                Employee.is_active.is_(True),
                Employee.employment_status == EmploymentStatus.active,
            )
        )).scalars().all()
        policies = (await db.execute(
            select(LeavePolicy).where(LeavePolicy.is_active.is_(True))
        )).scalars().all()

        existing = set((await db.execute(
            select(LeaveBalance.employee_id, LeaveBalance.policy_id)
            .where(LeaveBalance.year == year)
        )).tuples().all())

        prior: dict[tuple[uuid.UUID, uuid.UUID], Decimal] = {}
        if carry_forward:
            rows = (await db.execute(
                select(LeaveBalance.employee_id, LeaveBalance.policy_id, LeaveBalance.remaining_days)
                .where(LeaveBalance.year == year - 1)
            )).tuples().all()
            prior = {(e, p): remaining for e, p, remaining in rows}

        created = skipped = 0
        for employee_id in employee_ids:
            for policy in policies:
                key = (employee_id, policy.id)
                if key in existing:
                    skipped += 1
                    continue

                cf = ZERO
                if carry_forward and policy.carry_forward:
                    cf = min(prior.get(key, ZERO), policy.max_carry_forward or ZERO)

                db.add(BalanceLedger.build(
                    employee_id, policy, year, policy.days_allowed, cf,
                ))
                created += 1

        await db.flush()
        return ProvisioningResult(year=year, created=created, skipped=skipped)
