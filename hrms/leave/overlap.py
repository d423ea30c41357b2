"""OverlapDetector — inclusive date-interval conflicts between leave requests."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import ACTIVE_LEAVE_STATUSES
from hrms.leave.models import LeaveRequest


def intervals_overlap(
    a_start: date, a_end: date, b_start: date, b_end: date,
) -> bool:
    """True when the two inclusive intervals share at least one day."""
    return a_start <= b_end and a_end >= b_start


class OverlapDetector:

    @staticmethod
    async def has_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        *,
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Check the employee's pending and approved requests, across all policies."""
        query = select(func.count()).select_from(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        if exclude_request_id is not None:
            query = query.where(LeaveRequest.id != exclude_request_id)
        count = (await db.execute(query)).scalar_one()
        return count > 0
