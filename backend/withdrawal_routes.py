"""
Seller payouts from the wallet.
"""
from fastapi import APIRouter, Depends, status as http_status
from typing import Optional
import logging

from core.state_machine import WithdrawalStatus
from dependencies import Services, get_services, get_transaction_runner
from errors import parse_positive_int
from models import WithdrawalCreate, WithdrawalResponse, to_response, to_response_list
from permissions import Role, require_roles

logger = logging.getLogger(__name__)

withdrawal_router = APIRouter(prefix="/api/withdrawals", tags=["Withdrawals"])

student_only = require_roles(Role.STUDENT)
admin_only = require_roles(Role.ADMIN)


@withdrawal_router.post("", status_code=http_status.HTTP_201_CREATED)
async def request_withdrawal(
    body: WithdrawalCreate,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """Debit the wallet and open a PENDING withdrawal in one transaction."""
    withdrawal = await runner.run(
        lambda session: services.payments.request_withdrawal(
            current_user["user_id"], body.amount_cents, session=session
        )
    )
    return to_response(WithdrawalResponse, withdrawal)


@withdrawal_router.get("/mine")
async def list_my_withdrawals(
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
):
    withdrawals = await services.payments.list_withdrawals(seller_id=current_user["user_id"])
    return to_response_list(WithdrawalResponse, withdrawals)


@withdrawal_router.get("")
async def list_withdrawals(
    status: Optional[WithdrawalStatus] = None,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
):
    withdrawals = await services.payments.list_withdrawals(status=status.value if status else None)
    return to_response_list(WithdrawalResponse, withdrawals)


@withdrawal_router.post("/{withdrawal_id}/approve")
async def approve_withdrawal(
    withdrawal_id: str,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    wid = parse_positive_int(withdrawal_id)
    withdrawal = await runner.run(
        lambda session: services.payments.approve_withdrawal(wid, current_user["user_id"], session=session)
    )
    return to_response(WithdrawalResponse, withdrawal)


@withdrawal_router.post("/{withdrawal_id}/reject")
async def reject_withdrawal(
    withdrawal_id: str,
    current_user: dict = Depends(admin_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """PENDING -> REJECTED, refunding the held amount to the seller."""
    wid = parse_positive_int(withdrawal_id)
    withdrawal = await runner.run(
        lambda session: services.payments.reject_withdrawal(wid, current_user["user_id"], session=session)
    )
    return to_response(WithdrawalResponse, withdrawal)
