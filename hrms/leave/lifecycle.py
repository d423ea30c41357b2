"""RequestLifecycle — the leave request state machine.

    PENDING  --approve-->  APPROVED   (reserve usage)
    PENDING  --reject--->  REJECTED
    PENDING  --cancel--->  CANCELLED
    APPROVED --cancel--->  CANCELLED  (release usage)

REJECTED and CANCELLED are terminal. Anything not in ``TRANSITIONS``
raises ``InvalidStatusTransition``.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from hrms.common.constants import DEFAULT_CANCELLATION_REASON, LeaveStatus
from hrms.leave.exceptions import InvalidStatusTransition, RejectionReasonRequired
from hrms.leave.models import LeaveRequest


class LeaveEvent(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    cancel = "cancel"


class BalanceEffect(str, enum.Enum):
    none = "none"
    reserve = "reserve"
    release = "release"


@dataclass(frozen=True)
class Transition:
    target: LeaveStatus
    effect: BalanceEffect


TRANSITIONS: dict[tuple[LeaveStatus, LeaveEvent], Transition] = {
    (LeaveStatus.pending, LeaveEvent.approve): Transition(LeaveStatus.approved, BalanceEffect.reserve),
    (LeaveStatus.pending, LeaveEvent.reject): Transition(LeaveStatus.rejected, BalanceEffect.none),
    (LeaveStatus.pending, LeaveEvent.cancel): Transition(LeaveStatus.cancelled, BalanceEffect.none),
    (LeaveStatus.approved, LeaveEvent.cancel): Transition(LeaveStatus.cancelled, BalanceEffect.release),
}


class RequestLifecycle:

    @staticmethod
    def resolve(status: LeaveStatus, event: LeaveEvent) -> Transition:
        transition = TRANSITIONS.get((status, event))
        if transition is None:
            raise InvalidStatusTransition(status.value, event.value)
        return transition

    @staticmethod
    def ensure_editable(request: LeaveRequest) -> None:
        if request.status != LeaveStatus.pending:
            raise InvalidStatusTransition(request.status.value, "edit")

    @staticmethod
    def apply(
        request: LeaveRequest,
        event: LeaveEvent,
        *,
        actor_id: Optional[uuid.UUID],
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BalanceEffect:
        """Move *request* to its next status, stamp it, and return the balance effect."""
        transition = RequestLifecycle.resolve(request.status, event)
        now = now or datetime.now(timezone.utc)
        reason = reason.strip() if reason else None

        if event is LeaveEvent.approve:
            request.approved_at = now
            request.approved_by = actor_id
        elif event is LeaveEvent.reject:
            if not reason:
                raise RejectionReasonRequired()
            request.rejected_at = now
            request.rejected_by = actor_id
            request.rejection_reason = reason
        else:
            request.cancelled_at = now
            request.cancellation_reason = reason or DEFAULT_CANCELLATION_REASON

        request.status = transition.target
        return transition.effect
