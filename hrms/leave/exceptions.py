"""Typed leave-domain errors.

Each error carries a stable ``code``. The HTTP status is picked by the
category base class; handlers in ``hrms.common.exceptions`` render them.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Optional

from hrms.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)


# ── Referential (404) ───────────────────────────────────────────────

class EmployeeNotFound(NotFoundException):
    def __init__(self, employee_id: uuid.UUID) -> None:
        super().__init__("Active Employee", employee_id, code="EMPLOYEE_NOT_FOUND")


class PolicyNotFound(NotFoundException):
    def __init__(self, policy_id: uuid.UUID) -> None:
        super().__init__("Leave Policy", policy_id, code="POLICY_NOT_FOUND")


class BalanceNotFound(NotFoundException):
    def __init__(self, ref: Any) -> None:
        super().__init__("Leave Balance", ref, code="BALANCE_NOT_FOUND")


class RequestNotFound(NotFoundException):
    def __init__(self, request_id: uuid.UUID) -> None:
        super().__init__("Leave Request", request_id, code="REQUEST_NOT_FOUND")


# ── Invariant violations (422) ──────────────────────────────────────

class LeaveRuleViolation(ValidationException):
    """A request that would break a ledger or lifecycle invariant."""

    code = "LEAVE_RULE_VIOLATION"
    field = "non_field_errors"

    def __init__(self, detail: str, *, field: Optional[str] = None) -> None:
        super().__init__(
            {field or self.field: [detail]},
            code=self.code,
            detail=detail,
        )


class CarryForwardNotAllowed(LeaveRuleViolation):
    code = "CARRY_FORWARD_NOT_ALLOWED"
    field = "carry_forward_days"

    def __init__(self, policy_name: str) -> None:
        super().__init__(f"Policy '{policy_name}' does not allow carry-forward.")


class CarryForwardExceedsLimit(LeaveRuleViolation):
    code = "CARRY_FORWARD_EXCEEDS_LIMIT"
    field = "carry_forward_days"

    def __init__(self, requested: Decimal, limit: Decimal) -> None:
        super().__init__(
            f"Carry-forward of {requested} days exceeds the policy limit of {limit}."
        )


class AdjustmentReasonRequired(LeaveRuleViolation):
    code = "ADJUSTMENT_REASON_REQUIRED"
    field = "adjustment_reason"

    def __init__(self) -> None:
        super().__init__("A non-zero adjustment requires a reason.")


class NegativeBalanceNotAllowed(LeaveRuleViolation):
    code = "NEGATIVE_BALANCE_NOT_ALLOWED"
    field = "adjustment_days"

    def __init__(self, remaining: Decimal, delta: Decimal) -> None:
        super().__init__(
            f"Adjusting {remaining} remaining days by {delta} would make the balance negative."
        )


class InsufficientBalance(LeaveRuleViolation):
    code = "INSUFFICIENT_BALANCE"
    field = "days"

    def __init__(self, available: Decimal, requested: Decimal) -> None:
        super().__init__(
            f"Insufficient leave balance: {available} days available, {requested} requested."
        )


class InsufficientBalanceForUpdate(LeaveRuleViolation):
    code = "INSUFFICIENT_BALANCE_FOR_UPDATE"
    field = "allocated_days"

    def __init__(self, new_total: Decimal, committed: Decimal) -> None:
        super().__init__(
            f"New entitlement of {new_total} days is below the {committed} days "
            f"already used or held by pending and approved requests."
        )


class UsedDaysBelowApproved(LeaveRuleViolation):
    code = "USED_BELOW_APPROVED_DAYS"
    field = "used_days"

    def __init__(self, used: Decimal, approved: Decimal) -> None:
        super().__init__(
            f"Used days of {used} would be below the {approved} days held by "
            f"approved requests on this balance."
        )


class BalanceInvariantViolation(LeaveRuleViolation):
    code = "BALANCE_INVARIANT_VIOLATION"

    def __init__(self, balance_id: uuid.UUID, problem: str) -> None:
        super().__init__(f"Balance {balance_id} is inconsistent: {problem}.")


class OverlappingRequest(LeaveRuleViolation):
    code = "OVERLAPPING_REQUEST"
    field = "start_date"

    def __init__(self) -> None:
        super().__init__(
            "The requested dates overlap an existing pending or approved leave request."
        )


class InvalidStartDate(LeaveRuleViolation):
    code = "INVALID_START_DATE"
    field = "start_date"

    def __init__(self) -> None:
        super().__init__("Leave cannot start in the past.")


class InvalidStatusTransition(LeaveRuleViolation):
    code = "INVALID_STATUS"
    field = "status"

    def __init__(self, current: str, event: str) -> None:
        super().__init__(f"Cannot {event} a leave request that is {current}.")


class RejectionReasonRequired(LeaveRuleViolation):
    code = "REJECTION_REASON_REQUIRED"
    field = "rejection_reason"

    def __init__(self) -> None:
        super().__init__("A rejection reason is required.")


class InvalidCarryForwardConfig(LeaveRuleViolation):
    code = "INVALID_CARRY_FORWARD_CONFIG"
    field = "max_carry_forward"


class BulkValidationError(ValidationException):
    """Every violation found in a bulk provisioning batch, reported together."""

    def __init__(self, violations: list[dict[str, Any]]) -> None:
        super().__init__(
            {"balances": [v["message"] for v in violations]},
            code="BULK_VALIDATION_ERRORS",
            detail=f"{len(violations)} item(s) in the batch failed validation.",
        )
        self.errors = violations
        self.violations = violations


# ── Conflicts (409) ─────────────────────────────────────────────────

class DuplicateBalance(ConflictError):
    def __init__(self, employee_id: uuid.UUID, policy_id: uuid.UUID, year: int) -> None:
        super().__init__(
            f"A balance for employee '{employee_id}', policy '{policy_id}' "
            f"and year {year} already exists.",
            code="BALANCE_ALREADY_EXISTS",
        )


class BalancesAlreadyExist(ConflictError):
    def __init__(self, conflicts: list[dict[str, Any]]) -> None:
        super().__init__(
            f"{len(conflicts)} balance(s) already exist. Set overwrite_existing to replace them.",
            code="BALANCES_ALREADY_EXIST",
            errors=conflicts,
        )


class PolicyNameExists(ConflictError):
    def __init__(self, name: str) -> None:
        super().__init__(
            f"A leave policy named '{name}' already exists.",
            code="POLICY_NAME_EXISTS",
        )


class PolicyHasActiveRequests(ConflictError):
    def __init__(self, policy_id: uuid.UUID) -> None:
        super().__init__(
            f"Leave policy '{policy_id}' has pending or approved requests.",
            code="POLICY_HAS_ACTIVE_REQUESTS",
        )


class BalanceHasActiveRequests(ConflictError):
    def __init__(self, balance_id: uuid.UUID) -> None:
        super().__init__(
            f"Leave balance '{balance_id}' has pending or approved requests.",
            code="BALANCE_HAS_ACTIVE_REQUESTS",
        )
