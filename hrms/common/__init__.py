"""Common module — shared utilities for the HRMS leave engine."""

from hrms.common.audit import AuditSink, AuditTrail, create_audit_entry
from hrms.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PRIVILEGED_ROLES,
    EmploymentStatus,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from hrms.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    TransientDatabaseError,
    ValidationException,
    register_exception_handlers,
)
from hrms.common.filters import Eq, In, Overlaps, Range, apply_criteria, apply_sorting
from hrms.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)
from hrms.common.transaction import UnitOfWork

__all__ = [
    # Audit
    "AuditSink",
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ACTIVE_LEAVE_STATUSES",
    "EmploymentStatus",
    "LeaveStatus",
    "LeaveType",
    "UserRole",
    "PRIVILEGED_ROLES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "TransientDatabaseError",
    "ValidationException",
    "register_exception_handlers",
    # Filters
    "Eq",
    "In",
    "Overlaps",
    "Range",
    "apply_criteria",
    "apply_sorting",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
    # Transactions
    "UnitOfWork",
]
