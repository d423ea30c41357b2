"""ApprovalCoordinator — one atomic unit per request transition.

Each call locks the request row, checks the transition, checks the
actor's authority, applies the status change and its balance effect,
and commits both together. If any step fails, the unit rolls back and
the request keeps its previous status.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.permissions import Actor, Authorizer
from hrms.common.audit import AuditSink
from hrms.common.transaction import UnitOfWork
from hrms.core_hr.models import Employee
from hrms.leave.exceptions import BalanceNotFound, RequestNotFound
from hrms.leave.ledger import BalanceLedger
from hrms.leave.lifecycle import BalanceEffect, LeaveEvent, RequestLifecycle
from hrms.leave.models import LeaveRequest
from hrms.leave.schemas import LeaveRequestOut

logger = logging.getLogger(__name__)


def snapshot(request: LeaveRequest) -> dict[str, Any]:
    return LeaveRequestOut.model_validate(request).model_dump(mode="json")


async def lock_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
    result = await db.execute(
        select(LeaveRequest)
        .where(LeaveRequest.id == request_id)
        .with_for_update()
    )
    request = result.scalars().first()
    if request is None:
        raise RequestNotFound(request_id)
    return request


class ApprovalCoordinator:

    def __init__(
        self,
        uow: UnitOfWork,
        authorizer: Authorizer,
        audit: AuditSink,
    ) -> None:
        self.uow = uow
        self.authorizer = authorizer
        self.audit = audit

    async def transition(
        self,
        request_id: uuid.UUID,
        event: LeaveEvent,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> LeaveRequest:
        async def _apply(db: AsyncSession) -> tuple[LeaveRequest, dict[str, Any]]:
            request = await lock_request(db, request_id)
            before = snapshot(request)

            RequestLifecycle.resolve(request.status, event)

            employee = await db.get(Employee, request.employee_id)
            if event is LeaveEvent.cancel:
                self.authorizer.ensure_can_act_for(actor, employee)
            else:
                self.authorizer.ensure_can_review(actor, employee)

            effect = RequestLifecycle.apply(
                request, event, actor_id=actor.employee_id, reason=reason,
            )

            if effect is not BalanceEffect.none:
                # Lock order is request, then balance, for every transition.
                year = request.start_date.year
                balance = await BalanceLedger.get(
                    db, request.employee_id, request.policy_id, year, for_update=True,
                )
                if balance is None:
                    raise BalanceNotFound(f"{request.employee_id}/{request.policy_id}/{year}")
                if effect is BalanceEffect.reserve:
                    await BalanceLedger.reserve_usage(db, balance, request.days)
                else:
                    await BalanceLedger.release_usage(db, balance, request.days)

            await db.flush()
            return request, before

        request, before = await self.uow.run(_apply)
        logger.info(
            "Leave request %s: %s by %s -> %s",
            request.id, event.value, actor.employee_id, request.status.value,
        )
        await self.audit.record(
            action=event.value,
            entity_type="leave_request",
            entity_id=request.id,
            actor_id=actor.employee_id,
            old_values=before,
            new_values=snapshot(request),
        )
        return request
