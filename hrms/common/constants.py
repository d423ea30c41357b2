"""Closed enumerations and constants shared across the leave engine."""

from __future__ import annotations

import enum


# ── Employee ────────────────────────────────────────────────────────

class EmploymentStatus(str, enum.Enum):
    active = "active"
    notice_period = "notice_period"
    relieved = "relieved"
    absconding = "absconding"


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# Roles that may act on any employee's leave without a reporting link.
PRIVILEGED_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.hr_admin, UserRole.system_admin}
)


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    annual = "annual"
    sick = "sick"
    maternity = "maternity"
    paternity = "paternity"
    emergency = "emergency"
    unpaid = "unpaid"
    sabbatical = "sabbatical"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# Statuses that hold a claim on the employee's calendar and balance.
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
)


# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
DEFAULT_CANCELLATION_REASON = "Request cancelled by user"
