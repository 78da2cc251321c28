"""
ADMIN: payment escrow, report resolution and the audit trail.
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional
import logging

from core.state_machine import PaymentStatus, ReportStatus
from dependencies import Services, get_services, get_transaction_runner
from errors import parse_positive_int
from models import (
    AuditLogResponse,
    PaymentResponse,
    ReportResponse,
    ReportStatusUpdate,
    to_response,
    to_response_list,
)
from permissions import Role, require_roles

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/api/admin", tags=["Admin"])

admin_only = require_roles(Role.ADMIN)


# ============================================
# PAYMENTS
# ============================================

@admin_router.get("/payments")
async def list_payments(
    status: Optional[PaymentStatus] = None,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
):
    payments = await services.payments.list_payments(status.value if status else None)
    return to_response_list(PaymentResponse, payments)


@admin_router.post("/payments/{payment_id}/confirm")
async def confirm_payment(
    payment_id: str,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """PENDING -> APPROVED (funds held, seller not yet credited)."""
    pid = parse_positive_int(payment_id)
    payment = await runner.run(
        lambda session: services.payments.confirm_payment(pid, current_user["user_id"], session=session)
    )
    return to_response(PaymentResponse, payment)


@admin_router.post("/payments/{payment_id}/release")
async def release_payment(
    payment_id: str,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """APPROVED -> RELEASED, crediting the seller's wallet in the same transaction."""
    pid = parse_positive_int(payment_id)
    payment = await runner.run(
        lambda session: services.payments.release_payment(pid, current_user["user_id"], session=session)
    )
    return to_response(PaymentResponse, payment)


# ============================================
# REPORTS
# ============================================

@admin_router.get("/reports")
async def list_reports(
    status: Optional[ReportStatus] = None,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
):
    reports = await services.reports.list_reports(status.value if status else None)
    return to_response_list(ReportResponse, reports)


@admin_router.patch("/reports/{report_id}/status")
async def update_report_status(
    report_id: str,
    body: ReportStatusUpdate,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    rid = parse_positive_int(report_id)
    report = await runner.run(
        lambda session: services.reports.update_status(
            rid, current_user["user_id"], ReportStatus(body.status), session=session
        )
    )
    return to_response(ReportResponse, report)


@admin_router.post("/reports/{report_id}/remove-target")
async def remove_report_target(
    report_id: str,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """Delete the reported content and resolve every open report on it."""
    rid = parse_positive_int(report_id)
    report = await runner.run(
        lambda session: services.reports.remove_target(rid, current_user["user_id"], session=session)
    )
    return to_response(ReportResponse, report)


# ============================================
# AUDIT TRAIL
# ============================================

@admin_router.get("/audit-logs")
async def get_audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = Query(default=None, gt=0),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
):
    logs = await services.audit.get_audit_logs(entity_type=entity_type, entity_id=entity_id, limit=limit)
    return to_response_list(AuditLogResponse, logs)
