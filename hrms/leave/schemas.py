"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request → request bodies (write)
  - *Out / *Result               → response bodies (read)
  - *Filters                     → query-string filter objects
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hrms.common.constants import LeaveStatus, LeaveType
from hrms.common.filters import Criterion, Eq, Overlaps
from hrms.config import settings


# ═════════════════════════════════════════════════════════════════════
# Leave Policy
# ═════════════════════════════════════════════════════════════════════


class LeavePolicyCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    leave_type: LeaveType
    description: Optional[str] = Field(None, max_length=1000)
    days_allowed: Decimal = Field(..., ge=0, le=365)
    carry_forward: bool = False
    max_carry_forward: Optional[Decimal] = Field(None, ge=0, le=365)
    is_active: bool = True


class LeavePolicyUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    leave_type: Optional[LeaveType] = None
    description: Optional[str] = Field(None, max_length=1000)
    days_allowed: Optional[Decimal] = Field(None, ge=0, le=365)
    carry_forward: Optional[bool] = None
    max_carry_forward: Optional[Decimal] = Field(None, ge=0, le=365)
    is_active: Optional[bool] = None

    @field_validator("name", "leave_type", "days_allowed", "carry_forward", "is_active")
    @classmethod
    def _not_null(cls, v):
        # Omitted fields are kept; these columns are NOT NULL.
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v


class LeavePolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    leave_type: LeaveType
    description: Optional[str] = None
    days_allowed: Decimal
    carry_forward: bool
    max_carry_forward: Optional[Decimal] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceCreate(BaseModel):
    employee_id: uuid.UUID
    policy_id: uuid.UUID
    year: int = Field(..., ge=2000, le=2100)
    allocated_days: Decimal = Field(..., ge=0, le=999)
    carry_forward_days: Decimal = Field(Decimal("0"), ge=0, le=999)
    adjustment_days: Decimal = Field(Decimal("0"), ge=-999, le=999)
    adjustment_reason: Optional[str] = Field(None, max_length=500)


class LeaveBalanceUpdate(BaseModel):
    """Administrative correction of a balance's components."""

    allocated_days: Optional[Decimal] = Field(None, ge=0, le=999)
    carry_forward_days: Optional[Decimal] = Field(None, ge=0, le=999)
    adjustment_days: Optional[Decimal] = Field(None, ge=-999, le=999)
    adjustment_reason: Optional[str] = Field(None, max_length=500)
    used_days: Optional[Decimal] = Field(None, ge=0, le=999)


class BalanceAdjustment(BaseModel):
    adjustment_days: Decimal = Field(..., ge=-999, le=999)
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("adjustment_days")
    @classmethod
    def _non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("adjustment_days must be non-zero")
        return v


class LeaveBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    policy_id: uuid.UUID
    year: int
    allocated_days: Decimal
    carry_forward_days: Decimal
    adjustment_days: Decimal
    adjustment_reason: Optional[str] = None
    used_days: Decimal
    remaining_days: Decimal
    version: int
    created_at: datetime
    updated_at: datetime


class LeaveBalanceFilters(BaseModel):
    employee_id: Optional[uuid.UUID] = None
    policy_id: Optional[uuid.UUID] = None
    year: Optional[int] = None

    def to_criteria(self) -> list[Criterion]:
        return [
            Eq("employee_id", self.employee_id),
            Eq("policy_id", self.policy_id),
            Eq("year", self.year),
        ]


class BalanceTypeSummary(BaseModel):
    leave_type: LeaveType
    balances: list[LeaveBalanceOut]


class BalanceSummaryOut(BaseModel):
    employee_id: uuid.UUID
    year: int
    total_allocated: Decimal
    total_carry_forward: Decimal
    total_adjustment: Decimal
    total_used: Decimal
    total_remaining: Decimal
    by_leave_type: list[BalanceTypeSummary]


# ── Bulk provisioning ───────────────────────────────────────────────

class BulkBalanceItem(BaseModel):
    employee_id: uuid.UUID
    policy_id: uuid.UUID
    allocated_days: Decimal = Field(..., ge=0, le=999)
    carry_forward_days: Decimal = Field(Decimal("0"), ge=0, le=999)


class BulkBalanceCreate(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    balances: list[BulkBalanceItem] = Field(
        ..., min_length=1, max_length=settings.BULK_BALANCE_MAX_ITEMS,
    )
    overwrite_existing: bool = False


class BulkBalanceResult(BaseModel):
    year: int
    count: int
    balances: list[LeaveBalanceOut]


class ProvisioningRequest(BaseModel):
    year: Optional[int] = Field(None, ge=2000, le=2100)
    carry_forward: bool = True


class ProvisioningResult(BaseModel):
    year: int
    created: int
    skipped: int


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for filing a leave request.

    ``employee_id`` defaults to the caller when omitted.
    """

    employee_id: Optional[uuid.UUID] = None
    policy_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def _validate_range(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class LeaveRequestUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=1000)


class ReviewAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


class LeaveReviewRequest(BaseModel):
    action: ReviewAction
    rejection_reason: Optional[str] = Field(None, max_length=1000)


class LeaveCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class LeaveRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    policy_id: uuid.UUID
    start_date: date
    end_date: date
    days: Decimal
    status: LeaveStatus
    reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    applied_at: datetime
    approved_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    version: int


class LeaveRequestFilters(BaseModel):
    employee_id: Optional[uuid.UUID] = None
    policy_id: Optional[uuid.UUID] = None
    status: Optional[LeaveStatus] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    def to_criteria(self) -> list[Criterion]:
        return [
            Eq("employee_id", self.employee_id),
            Eq("policy_id", self.policy_id),
            Eq("status", self.status),
            Overlaps("start_date", "end_date", self.from_date, self.to_date),
        ]


# ── Bulk approval ───────────────────────────────────────────────────

class BulkApproveRequest(BaseModel):
    request_ids: list[uuid.UUID] = Field(
        ..., min_length=1, max_length=settings.BULK_APPROVAL_MAX_ITEMS,
    )


class BulkApprovalItem(BaseModel):
    request_id: uuid.UUID
    status: LeaveStatus
    data: LeaveRequestOut


class BulkApprovalError(BaseModel):
    request_id: uuid.UUID
    code: str
    message: str


class BulkApprovalSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BulkApprovalResult(BaseModel):
    approved: list[BulkApprovalItem]
    errors: list[BulkApprovalError]
    summary: BulkApprovalSummary


# ═════════════════════════════════════════════════════════════════════
# Reporting
# ═════════════════════════════════════════════════════════════════════


class StatusBreakdown(BaseModel):
    status: LeaveStatus
    count: int
    days: Decimal


class PolicyUsageStats(BaseModel):
    policy_id: uuid.UUID
    name: str
    leave_type: LeaveType
    year: int
    employees_with_balance: int
    total_requests: int
    by_status: list[StatusBreakdown]
    days_used: Decimal = Field(..., description="Approved days starting in the year")


class TypeUtilization(BaseModel):
    leave_type: LeaveType
    balances: int
    allocated: Decimal
    used: Decimal
    remaining: Decimal
    utilization_rate: Decimal = Field(..., description="used / allocated, as a percentage")


class BalanceStatsOverview(BaseModel):
    year: int
    total_balances: int
    total_allocated: Decimal
    total_carry_forward: Decimal
    total_adjustment: Decimal
    total_used: Decimal
    total_remaining: Decimal
    utilization_rate: Decimal
    by_leave_type: list[TypeUtilization]


class LeaveRequestSummaryOut(BaseModel):
    employee_id: uuid.UUID
    year: int
    balances: list[LeaveBalanceOut]
    total_requests: int
    by_status: list[StatusBreakdown]
    days_taken: Decimal
    recent: list[LeaveRequestOut]


class CalendarEntry(BaseModel):
    id: uuid.UUID
    policy_id: uuid.UUID
    policy_name: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: Decimal
    status: LeaveStatus
    reason: Optional[str] = None


class LeaveCalendarOut(BaseModel):
    employee_id: uuid.UUID
    year: int
    month: Optional[int] = None
    from_date: date
    to_date: date
    entries: list[CalendarEntry]
