"""BulkOperationRunner — batch balance provisioning and batch approval.

The two batch operations deliberately fail differently:

* ``create_balances`` validates the whole batch first, reports every
  violation in one ``BulkValidationError``, and then writes all rows in a
  single transaction (all-or-nothing).
* ``approve_requests`` runs each id through ``ApprovalCoordinator`` in its
  own transaction and records per-item failures (best effort).
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Sequence

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.permissions import Actor
from hrms.common.audit import AuditSink
from hrms.common.constants import EmploymentStatus
from hrms.common.exceptions import AppException
from hrms.common.transaction import UnitOfWork
from hrms.core_hr.models import Employee
from hrms.leave.coordinator import ApprovalCoordinator
from hrms.leave.exceptions import BalancesAlreadyExist, BulkValidationError
from hrms.leave.ledger import BalanceLedger
from hrms.leave.lifecycle import LeaveEvent
from hrms.leave.models import LeaveBalance
from hrms.leave.policies import PolicyCatalog, carry_forward_violation
from hrms.leave.schemas import (
    BulkApprovalError,
    BulkApprovalItem,
    BulkApprovalResult,
    BulkApprovalSummary,
    BulkBalanceCreate,
    BulkBalanceResult,
    LeaveBalanceOut,
    LeaveRequestOut,
)

logger = logging.getLogger(__name__)


def _violation(index: int, item: Any, code: str, message: str) -> dict[str, Any]:
    return {
        "index": index,
        "employee_id": str(item.employee_id),
        "policy_id": str(item.policy_id),
        "code": code,
        "message": message,
    }


class BulkOperationRunner:

    def __init__(
        self,
        uow: UnitOfWork,
        coordinator: ApprovalCoordinator,
        audit: AuditSink,
    ) -> None:
        self.uow = uow
        self.coordinator = coordinator
        self.audit = audit

    # ── Bulk balance provisioning (all-or-nothing) ──────────────────

    async def _validate_batch(
        self, db: AsyncSession, batch: BulkBalanceCreate,
    ) -> list[LeaveBalance]:
        """Collect every violation in *batch*; return the rows it would replace."""
        items = batch.balances
        employee_ids = {i.employee_id for i in items}
        active_employees = set((await db.execute(
            select(Employee.id).where(
                Employee.id.in_(employee_ids),
                Employee.is_active.is_(True),
                Employee.employment_status == EmploymentStatus.active,
            )
        )).scalars().all())
        policies = await PolicyCatalog.get_many(
            db, {i.policy_id for i in items}, active_only=True,
        )

        violations: list[dict[str, Any]] = []
        seen: set[tuple[uuid.UUID, uuid.UUID]] = set()
        for index, item in enumerate(items):
            if item.employee_id not in active_employees:
                violations.append(_violation(
                    index, item, "INVALID_EMPLOYEES",
                    f"Employee '{item.employee_id}' is unknown or inactive.",
                ))
            policy = policies.get(item.policy_id)
            if policy is None:
                violations.append(_violation(
                    index, item, "INVALID_POLICIES",
                    f"Leave policy '{item.policy_id}' is unknown or inactive.",
                ))
            else:
                error = carry_forward_violation(policy, item.carry_forward_days)
                if error is not None:
                    violations.append(_violation(index, item, error.code, error.detail))
            key = (item.employee_id, item.policy_id)
            if key in seen:
                violations.append(_violation(
                    index, item, "DUPLICATE_ENTRY",
                    "The batch lists this employee and policy more than once.",
                ))
            seen.add(key)

        existing = (await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.year == batch.year,
                or_(*(
                    and_(
                        LeaveBalance.employee_id == employee_id,
                        LeaveBalance.policy_id == policy_id,
                    )
                    for employee_id, policy_id in seen
                )),
            )
        )).scalars().all()

        if batch.overwrite_existing:
            for balance in existing:
                if await BalanceLedger.committed_days(db, balance) > 0:
                    violations.append({
                        "index": None,
                        "employee_id": str(balance.employee_id),
                        "policy_id": str(balance.policy_id),
                        "code": "BALANCE_HAS_ACTIVE_REQUESTS",
                        "message": (
                            f"Existing balance '{balance.id}' has pending or "
                            f"approved requests and cannot be replaced."
                        ),
                    })

        if violations:
            raise BulkValidationError(violations)
        if existing and not batch.overwrite_existing:
            raise BalancesAlreadyExist([
                {
                    "balance_id": str(b.id),
                    "employee_id": str(b.employee_id),
                    "policy_id": str(b.policy_id),
                    "year": b.year,
                }
                for b in existing
            ])
        return list(existing)

    async def create_balances(
        self, batch: BulkBalanceCreate, actor: Actor,
    ) -> BulkBalanceResult:
        async def _run(db: AsyncSession) -> tuple[list[LeaveBalance], int]:
            replaced = await self._validate_batch(db, batch)
            if replaced:
                await db.execute(
                    delete(LeaveBalance).where(
                        LeaveBalance.id.in_([b.id for b in replaced])
                    )
                )

            created = []
            for item in batch.balances:
                created.append(await BalanceLedger.create(
                    db,
                    item.employee_id,
                    item.policy_id,
                    batch.year,
                    item.allocated_days,
                    item.carry_forward_days,
                ))
            return created, len(replaced)

        created, replaced = await self.uow.run(_run)
        logger.info(
            "Bulk provisioned %d balance(s) for %d (%d replaced)",
            len(created), batch.year, replaced,
        )
        out = [LeaveBalanceOut.model_validate(b) for b in created]
        for balance in out:
            await self.audit.record(
                action="bulk_create", entity_type="leave_balance",
                entity_id=balance.id, actor_id=actor.employee_id,
                new_values=balance.model_dump(mode="json"),
            )
        return BulkBalanceResult(year=batch.year, count=len(out), balances=out)

    # ── Bulk approval (best effort per item) ────────────────────────

    async def approve_requests(
        self, request_ids: Sequence[uuid.UUID], actor: Actor,
    ) -> BulkApprovalResult:
        approved: list[BulkApprovalItem] = []
        errors: list[BulkApprovalError] = []

        for request_id in request_ids:
            try:
                request = await self.coordinator.transition(
                    request_id, LeaveEvent.approve, actor,
                )
            except AppException as exc:
                logger.info("Bulk approve skipped %s: %s", request_id, exc.code)
                errors.append(BulkApprovalError(
                    request_id=request_id, code=exc.code, message=exc.detail,
                ))
                continue
            approved.append(BulkApprovalItem(
                request_id=request.id,
                status=request.status,
                data=LeaveRequestOut.model_validate(request),
            ))

        logger.info(
            "Bulk approval by %s: %d approved, %d failed",
            actor.employee_id, len(approved), len(errors),
        )
        return BulkApprovalResult(
            approved=approved,
            errors=errors,
            summary=BulkApprovalSummary(
                total=len(request_ids),
                successful=len(approved),
                failed=len(errors),
            ),
        )
