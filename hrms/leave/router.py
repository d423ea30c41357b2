"""Leave router — policies, balances (incl. bulk + provisioning), requests.

All endpoints require authentication. Balance and policy administration
is limited to HR; reviewing requests to managers and above.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_actor, require_role
from hrms.auth.permissions import Actor
from hrms.common.constants import UserRole
from hrms.common.pagination import PaginatedResponse, PaginationParams
from hrms.common.rate_limit import BULK_RATE_LIMIT, limiter
from hrms.database import get_db
from hrms.dependencies import (
    get_balance_service,
    get_bulk_runner,
    get_coordinator,
    get_policy_service,
    get_provisioning_job,
    get_request_service,
)
from hrms.leave.bulk import BulkOperationRunner
from hrms.leave.coordinator import ApprovalCoordinator
from hrms.leave.lifecycle import LeaveEvent
from hrms.leave.policies import PolicyCatalog
from hrms.leave.provisioning import BalanceProvisioningJob
from hrms.leave.schemas import (
    BalanceAdjustment,
    BalanceStatsOverview,
    BalanceSummaryOut,
    BulkApprovalResult,
    BulkApproveRequest,
    BulkBalanceCreate,
    BulkBalanceResult,
    LeaveBalanceCreate,
    LeaveBalanceFilters,
    LeaveBalanceOut,
    LeaveBalanceUpdate,
    LeaveCalendarOut,
    LeaveCancelRequest,
    LeavePolicyCreate,
    LeavePolicyOut,
    LeavePolicyUpdate,
    LeaveRequestCreate,
    LeaveRequestFilters,
    LeaveRequestOut,
    LeaveRequestSummaryOut,
    LeaveRequestUpdate,
    LeaveReviewRequest,
    PolicyUsageStats,
    ProvisioningRequest,
    ProvisioningResult,
    ReviewAction,
)
from hrms.leave.service import (
    BalanceService,
    LeaveRequestService,
    PolicyService,
)

policies_router = APIRouter()
balances_router = APIRouter()
requests_router = APIRouter()

_hr_only = require_role(UserRole.hr_admin)
_reviewers = require_role(UserRole.manager)


# ═════════════════════════════════════════════════════════════════════
# Policies
# ═════════════════════════════════════════════════════════════════════


@policies_router.get("", response_model=list[LeavePolicyOut])
async def list_policies(
    include_inactive: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await PolicyCatalog.list(db, active_only=not include_inactive)


@policies_router.get("/{policy_id}", response_model=LeavePolicyOut)
async def get_policy(
    policy_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await PolicyCatalog.get(db, policy_id)


@policies_router.get("/{policy_id}/usage-stats", response_model=PolicyUsageStats)
async def policy_usage_stats(
    policy_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    actor: Actor = Depends(_reviewers),
    db: AsyncSession = Depends(get_db),
):
    return await PolicyService.usage_stats(db, policy_id, year or date.today().year)


@policies_router.post("", response_model=LeavePolicyOut, status_code=201)
async def create_policy(
    body: LeavePolicyCreate,
    actor: Actor = Depends(_hr_only),
    service: PolicyService = Depends(get_policy_service),
):
    return await service.create(body, actor)


@policies_router.patch("/{policy_id}", response_model=LeavePolicyOut)
async def update_policy(
    policy_id: uuid.UUID,
    body: LeavePolicyUpdate,
    actor: Actor = Depends(_hr_only),
    service: PolicyService = Depends(get_policy_service),
):
    return await service.update(policy_id, body, actor)


@policies_router.delete("/{policy_id}", response_model=LeavePolicyOut)
async def deactivate_policy(
    policy_id: uuid.UUID,
    actor: Actor = Depends(_hr_only),
    service: PolicyService = Depends(get_policy_service),
):
    """Soft-delete: the policy is deactivated, never removed."""
    return await service.deactivate(policy_id, actor)


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


@balances_router.get("", response_model=PaginatedResponse[LeaveBalanceOut])
async def list_balances(
    employee_id: Optional[uuid.UUID] = Query(None),
    policy_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    filters = LeaveBalanceFilters(employee_id=employee_id, policy_id=policy_id, year=year)
    return await BalanceService.list(db, filters, pagination, actor)


@balances_router.get("/summary", response_model=BalanceSummaryOut)
async def balance_summary(
    year: int = Query(..., ge=2000, le=2100),
    employee_id: Optional[uuid.UUID] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Totals by leave type for one employee (default: the caller)."""
    return await BalanceService.summary(db, employee_id or actor.employee_id, year, actor)


@balances_router.get("/stats/overview", response_model=BalanceStatsOverview)
async def balance_stats_overview(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    actor: Actor = Depends(_reviewers),
    db: AsyncSession = Depends(get_db),
):
    """Organisation-wide for HR; a manager sees themselves and direct reports."""
    return await BalanceService.stats_overview(db, year or date.today().year, actor)


@balances_router.post("/bulk", response_model=BulkBalanceResult, status_code=201)
@limiter.limit(BULK_RATE_LIMIT)
async def bulk_create_balances(
    request: Request,
    body: BulkBalanceCreate,
    actor: Actor = Depends(_hr_only),
    runner: BulkOperationRunner = Depends(get_bulk_runner),
):
    return await runner.create_balances(body, actor)


@balances_router.post("/provision", response_model=ProvisioningResult)
@limiter.limit(BULK_RATE_LIMIT)
async def provision_balances(
    request: Request,
    body: ProvisioningRequest,
    actor: Actor = Depends(_hr_only),
    job: BalanceProvisioningJob = Depends(get_provisioning_job),
):
    return await job.run(body.year, carry_forward=body.carry_forward)


@balances_router.get("/{balance_id}", response_model=LeaveBalanceOut)
async def get_balance(
    balance_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await BalanceService.get(db, balance_id, actor)


@balances_router.post("", response_model=LeaveBalanceOut, status_code=201)
async def create_balance(
    body: LeaveBalanceCreate,
    actor: Actor = Depends(_hr_only),
    service: BalanceService = Depends(get_balance_service),
):
    return await service.create(body, actor)


@balances_router.patch("/{balance_id}", response_model=LeaveBalanceOut)
async def update_balance(
    balance_id: uuid.UUID,
    body: LeaveBalanceUpdate,
    actor: Actor = Depends(_hr_only),
    service: BalanceService = Depends(get_balance_service),
):
    return await service.update(balance_id, body, actor)


@balances_router.post("/{balance_id}/adjust", response_model=LeaveBalanceOut)
async def adjust_balance(
    balance_id: uuid.UUID,
    body: BalanceAdjustment,
    actor: Actor = Depends(_hr_only),
    service: BalanceService = Depends(get_balance_service),
):
    return await service.adjust(balance_id, body.adjustment_days, body.reason, actor)


@balances_router.delete("/{balance_id}", status_code=204)
async def delete_balance(
    balance_id: uuid.UUID,
    actor: Actor = Depends(_hr_only),
    service: BalanceService = Depends(get_balance_service),
):
    await service.delete(balance_id, actor)
    return Response(status_code=204)


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


@requests_router.get("", response_model=PaginatedResponse[LeaveRequestOut])
async def list_requests(
    filters: LeaveRequestFilters = Depends(),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveRequestService.list(db, filters, pagination, actor)


@requests_router.post("/bulk-approve", response_model=BulkApprovalResult)
@limiter.limit(BULK_RATE_LIMIT)
async def bulk_approve_requests(
    request: Request,
    body: BulkApproveRequest,
    actor: Actor = Depends(_reviewers),
    runner: BulkOperationRunner = Depends(get_bulk_runner),
):
    """Approve each id independently; failures are reported, not raised."""
    return await runner.approve_requests(body.request_ids, actor)


@requests_router.get("/summary/{employee_id}", response_model=LeaveRequestSummaryOut)
async def request_summary(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveRequestService.summary(
        db, employee_id, year or date.today().year, actor,
    )


@requests_router.get("/calendar/{employee_id}", response_model=LeaveCalendarOut)
async def request_calendar(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveRequestService.calendar(
        db, employee_id, year or date.today().year, month, actor,
    )


@requests_router.get("/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveRequestService.get(db, request_id, actor)


@requests_router.post("", response_model=LeaveRequestOut, status_code=201)
async def create_request(
    body: LeaveRequestCreate,
    actor: Actor = Depends(get_current_actor),
    service: LeaveRequestService = Depends(get_request_service),
):
    return await service.create(body, actor)


@requests_router.patch("/{request_id}", response_model=LeaveRequestOut)
async def update_request(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    actor: Actor = Depends(get_current_actor),
    service: LeaveRequestService = Depends(get_request_service),
):
    return await service.update(request_id, body, actor)


@requests_router.post("/{request_id}/review", response_model=LeaveRequestOut)
async def review_request(
    request_id: uuid.UUID,
    body: LeaveReviewRequest,
    actor: Actor = Depends(_reviewers),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    event = LeaveEvent.approve if body.action is ReviewAction.approve else LeaveEvent.reject
    return await coordinator.transition(
        request_id, event, actor, reason=body.rejection_reason,
    )


@requests_router.post("/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_request(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    actor: Actor = Depends(get_current_actor),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    return await coordinator.transition(
        request_id, LeaveEvent.cancel, actor, reason=body.reason,
    )
