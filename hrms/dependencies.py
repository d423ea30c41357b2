"""Shared FastAPI dependencies — transaction boundary, audit sink, leave services.

Tests swap ``get_unit_of_work`` and ``get_audit_sink`` through
``app.dependency_overrides``; everything else is built from those two.
"""

from fastapi import Depends

from hrms.auth.permissions import Authorizer
from hrms.common.audit import AuditSink
from hrms.common.transaction import UnitOfWork
from hrms.database import async_session_factory
from hrms.leave.bulk import BulkOperationRunner
from hrms.leave.coordinator import ApprovalCoordinator
from hrms.leave.provisioning import BalanceProvisioningJob
from hrms.leave.service import BalanceService, LeaveRequestService, PolicyService


def get_unit_of_work() -> UnitOfWork:
    return UnitOfWork(async_session_factory)


def get_audit_sink() -> AuditSink:
    return AuditSink(async_session_factory)


def get_authorizer() -> Authorizer:
    return Authorizer()


def get_policy_service(
    uow: UnitOfWork = Depends(get_unit_of_work),
    audit: AuditSink = Depends(get_audit_sink),
) -> PolicyService:
    return PolicyService(uow, audit)


def get_balance_service(
    uow: UnitOfWork = Depends(get_unit_of_work),
    audit: AuditSink = Depends(get_audit_sink),
) -> BalanceService:
    return BalanceService(uow, audit)


def get_request_service(
    uow: UnitOfWork = Depends(get_unit_of_work),
    authorizer: Authorizer = Depends(get_authorizer),
    audit: AuditSink = Depends(get_audit_sink),
) -> LeaveRequestService:
    return LeaveRequestService(uow, authorizer, audit)


def get_coordinator(
    uow: UnitOfWork = Depends(get_unit_of_work),
    authorizer: Authorizer = Depends(get_authorizer),
    audit: AuditSink = Depends(get_audit_sink),
) -> ApprovalCoordinator:
    return ApprovalCoordinator(uow, authorizer, audit)


def get_bulk_runner(
    uow: UnitOfWork = Depends(get_unit_of_work),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
    audit: AuditSink = Depends(get_audit_sink),
) -> BulkOperationRunner:
    return BulkOperationRunner(uow, coordinator, audit)


def get_provisioning_job(
    uow: UnitOfWork = Depends(get_unit_of_work),
) -> BalanceProvisioningJob:
    return BalanceProvisioningJob(uow)
