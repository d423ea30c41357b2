"""Caller identity and the leave authorization capability.

The leave engine never inspects roles directly. It asks an ``Authorizer``
whether an actor may act for, or review on behalf of, a given employee.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from hrms.common.constants import PRIVILEGED_ROLES, UserRole
from hrms.common.exceptions import ForbiddenException
from hrms.core_hr.models import Employee


@dataclass(frozen=True)
class Actor:
    """An authenticated caller."""

    employee_id: uuid.UUID
    role: UserRole

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


class Authorizer:
    """Resolve "can act as employee X" / "can review employee Y" decisions."""

    def can_act_for(self, actor: Actor, employee: Employee) -> bool:
        if actor.is_privileged or actor.employee_id == employee.id:
            return True
        return self._manages(actor, employee)

    def can_review(self, actor: Actor, employee: Employee) -> bool:
        if actor.is_privileged:
            return True
        return self._manages(actor, employee)

    def ensure_can_act_for(self, actor: Actor, employee: Employee) -> None:
        if not self.can_act_for(actor, employee):
            raise ForbiddenException(
                detail="You can only manage leave for yourself or your direct reports.",
            )

    def ensure_can_review(self, actor: Actor, employee: Employee) -> None:
        if not self.can_review(actor, employee):
            raise ForbiddenException(
                detail="Only the reporting manager or HR can review this leave request.",
            )

    @staticmethod
    def _manages(actor: Actor, employee: Employee) -> bool:
        return (
            actor.role == UserRole.manager
            and employee.reporting_manager_id == actor.employee_id
        )
