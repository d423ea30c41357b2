"""Leave request state machine — transition table, stamping, edit guard.

Pure tests: requests are built in memory and never flushed.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from hrms.common.constants import DEFAULT_CANCELLATION_REASON, LeaveStatus
from hrms.leave.exceptions import InvalidStatusTransition, RejectionReasonRequired
from hrms.leave.lifecycle import (
    TRANSITIONS,
    BalanceEffect,
    LeaveEvent,
    RequestLifecycle,
)
from hrms.leave.models import LeaveRequest


def _request(status: LeaveStatus = LeaveStatus.pending) -> LeaveRequest:
    return LeaveRequest(
        id=uuid.uuid4(),
        employee_id=uuid.uuid4(),
        policy_id=uuid.uuid4(),
        start_date=date(2030, 1, 10),
        end_date=date(2030, 1, 14),
        days=Decimal("5"),
        status=status,
    )


class TestTransitionTable:

    @pytest.mark.parametrize(
        "status, event, target, effect",
        [
            (LeaveStatus.pending, LeaveEvent.approve, LeaveStatus.approved, BalanceEffect.reserve),
            (LeaveStatus.pending, LeaveEvent.reject, LeaveStatus.rejected, BalanceEffect.none),
            (LeaveStatus.pending, LeaveEvent.cancel, LeaveStatus.cancelled, BalanceEffect.none),
            (LeaveStatus.approved, LeaveEvent.cancel, LeaveStatus.cancelled, BalanceEffect.release),
        ],
    )
    def test_allowed_transitions(self, status, event, target, effect):
        transition = RequestLifecycle.resolve(status, event)
        assert transition.target == target
        assert transition.effect == effect

    def test_table_has_exactly_four_edges(self):
        assert len(TRANSITIONS) == 4

    @pytest.mark.parametrize(
        "status, event",
        [
            (LeaveStatus.approved, LeaveEvent.approve),
            (LeaveStatus.approved, LeaveEvent.reject),
            (LeaveStatus.rejected, LeaveEvent.approve),
            (LeaveStatus.rejected, LeaveEvent.reject),
            (LeaveStatus.rejected, LeaveEvent.cancel),
            (LeaveStatus.cancelled, LeaveEvent.approve),
            (LeaveStatus.cancelled, LeaveEvent.reject),
            (LeaveStatus.cancelled, LeaveEvent.cancel),
        ],
    )
    def test_everything_else_is_invalid(self, status, event):
        with pytest.raises(InvalidStatusTransition) as exc_info:
            RequestLifecycle.resolve(status, event)
        assert exc_info.value.code == "INVALID_STATUS"
        assert exc_info.value.status_code == 422


class TestApply:

    def test_approve_stamps_approver(self):
        request = _request()
        actor_id = uuid.uuid4()
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)

        effect = RequestLifecycle.apply(
            request, LeaveEvent.approve, actor_id=actor_id, now=now,
        )

        assert effect is BalanceEffect.reserve
        assert request.status == LeaveStatus.approved
        assert request.approved_by == actor_id
        assert request.approved_at == now

    def test_reject_requires_reason(self):
        request = _request()
        with pytest.raises(RejectionReasonRequired):
            RequestLifecycle.apply(
                request, LeaveEvent.reject, actor_id=uuid.uuid4(), reason="   ",
            )
        assert request.status == LeaveStatus.pending

    def test_reject_records_reason(self):
        request = _request()
        actor_id = uuid.uuid4()

        effect = RequestLifecycle.apply(
            request, LeaveEvent.reject, actor_id=actor_id, reason=" Team offsite ",
        )

        assert effect is BalanceEffect.none
        assert request.status == LeaveStatus.rejected
        assert request.rejected_by == actor_id
        assert request.rejection_reason == "Team offsite"
        assert request.rejected_at is not None

    def test_cancel_defaults_reason(self):
        request = _request(LeaveStatus.approved)

        effect = RequestLifecycle.apply(request, LeaveEvent.cancel, actor_id=None)

        assert effect is BalanceEffect.release
        assert request.status == LeaveStatus.cancelled
        assert request.cancellation_reason == DEFAULT_CANCELLATION_REASON
        assert request.cancelled_at is not None

    def test_invalid_event_leaves_request_untouched(self):
        request = _request(LeaveStatus.rejected)
        with pytest.raises(InvalidStatusTransition):
            RequestLifecycle.apply(request, LeaveEvent.approve, actor_id=uuid.uuid4())
        assert request.status == LeaveStatus.rejected
        assert request.approved_at is None


class TestEditGuard:

    def test_pending_is_editable(self):
        RequestLifecycle.ensure_editable(_request())

    @pytest.mark.parametrize(
        "status",
        [LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled],
    )
    def test_other_statuses_are_not(self, status):
        with pytest.raises(InvalidStatusTransition):
            RequestLifecycle.ensure_editable(_request(status))
