"""BalanceProvisioningJob — idempotent period rollover."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import EmploymentStatus, LeaveType
from hrms.leave.ledger import BalanceLedger
from hrms.leave.models import LeaveBalance
from hrms.leave.provisioning import BalanceProvisioningJob
from tests.conftest import NEXT_YEAR, _seed_balance, _seed_employee, _seed_policy


async def _balances(db: AsyncSession, year: int) -> list[LeaveBalance]:
    result = await db.execute(
        select(LeaveBalance)
        .where(LeaveBalance.year == year)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class TestProvisioning:

    async def test_creates_missing_rows_once(self, db: AsyncSession, uow):
        await _seed_employee(db)
        await _seed_employee(db)
        await _seed_policy(db, name="Annual Leave")
        await _seed_policy(db, name="Sick Leave", leave_type=LeaveType.sick, carry_forward=False)

        job = BalanceProvisioningJob(uow)
        first = await job.run(NEXT_YEAR)
        assert (first.created, first.skipped) == (4, 0)

        second = await job.run(NEXT_YEAR)
        assert (second.created, second.skipped) == (0, 4)
        assert len(await _balances(db, NEXT_YEAR)) == 4

    async def test_fills_gaps_only(self, db: AsyncSession, uow):
        emp = await _seed_employee(db)
        policy = await _seed_policy(db)
        existing = await _seed_balance(db, emp, policy, allocated=Decimal("12"))
        newcomer = await _seed_employee(db, first_name="Newcomer")

        result = await BalanceProvisioningJob(uow).run(NEXT_YEAR)

        assert (result.created, result.skipped) == (1, 1)
        kept = await BalanceLedger.get(db, emp.id, policy.id, NEXT_YEAR)
        assert kept.id == existing.id
        assert kept.allocated_days == Decimal("12")
        fresh = await BalanceLedger.get(db, newcomer.id, policy.id, NEXT_YEAR)
        assert fresh.allocated_days == policy.days_allowed
        assert fresh.remaining_days == policy.days_allowed

    async def test_carry_forward_capped_by_policy(self, db: AsyncSession, uow):
        saver = await _seed_employee(db, first_name="Saver")
        spender = await _seed_employee(db, first_name="Spender")
        annual = await _seed_policy(db, max_carry_forward=Decimal("5"))
        sick = await _seed_policy(
            db, name="Sick Leave", leave_type=LeaveType.sick, carry_forward=False,
        )
        await _seed_balance(db, saver, annual, year=NEXT_YEAR - 1, used=Decimal("2"))
        await _seed_balance(db, spender, annual, year=NEXT_YEAR - 1, used=Decimal("17"))
        await _seed_balance(db, saver, sick, year=NEXT_YEAR - 1)

        await BalanceProvisioningJob(uow).run(NEXT_YEAR)

        saved = await BalanceLedger.get(db, saver.id, annual.id, NEXT_YEAR)
        assert saved.carry_forward_days == Decimal("5")
        assert saved.remaining_days == Decimal("25")
        spent = await BalanceLedger.get(db, spender.id, annual.id, NEXT_YEAR)
        assert spent.carry_forward_days == Decimal("3")
        no_cf = await BalanceLedger.get(db, saver.id, sick.id, NEXT_YEAR)
        assert no_cf.carry_forward_days == Decimal("0")

    async def test_carry_forward_can_be_disabled(self, db: AsyncSession, uow):
        emp = await _seed_employee(db)
        policy = await _seed_policy(db)
        await _seed_balance(db, emp, policy, year=NEXT_YEAR - 1)

        await BalanceProvisioningJob(uow).run(NEXT_YEAR, carry_forward=False)

        balance = await BalanceLedger.get(db, emp.id, policy.id, NEXT_YEAR)
        assert balance.carry_forward_days == Decimal("0")
        assert balance.remaining_days == Decimal("20")

    async def test_skips_inactive_employees_and_policies(self, db: AsyncSession, uow):
        await _seed_employee(db, is_active=False)
        await _seed_employee(db, employment_status=EmploymentStatus.relieved)
        active = await _seed_employee(db)
        await _seed_policy(db, name="Retired", is_active=False)
        policy = await _seed_policy(db)

        result = await BalanceProvisioningJob(uow).run(NEXT_YEAR)

        assert result.created == 1
        rows = await _balances(db, NEXT_YEAR)
        assert [(b.employee_id, b.policy_id) for b in rows] == [(active.id, policy.id)]


class TestProvisionScript:

    def test_defaults(self):
        from scripts.provision_balances import parse_args

        args = parse_args([])
        assert args.year is None
        assert args.no_carry_forward is False

    def test_year_and_fresh_allocations(self):
        from scripts.provision_balances import parse_args

        args = parse_args(["--year", str(NEXT_YEAR), "--no-carry-forward"])
        assert args.year == NEXT_YEAR
        assert args.no_carry_forward is True
