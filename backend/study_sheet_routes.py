"""
Study sheet marketplace: listing, ownership and purchase.
"""
from fastapi import APIRouter, Depends, status
from typing import Optional
import logging

from dependencies import Services, get_services, get_transaction_runner
from errors import parse_positive_int
from models import (
    PurchaseResult,
    StudySheetCreate,
    StudySheetResponse,
    StudySheetUpdate,
    to_response,
    to_response_list,
)
from auth import get_current_user
from permissions import Role, require_roles

logger = logging.getLogger(__name__)

study_sheet_router = APIRouter(prefix="/api/study-sheets", tags=["Study Sheets"])

student_only = require_roles(Role.STUDENT)


@study_sheet_router.post("", status_code=status.HTTP_201_CREATED)
async def create_study_sheet(
    body: StudySheetCreate,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    data = body.model_dump(by_alias=True)
    sheet = await runner.run(
        lambda session: services.marketplace.create_study_sheet(current_user["user_id"], data, session=session)
    )
    return to_response(StudySheetResponse, sheet)


@study_sheet_router.get("")
async def list_study_sheets(
    course_code: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Approved sheets, newest first, optionally for one course code."""
    sheets = await services.marketplace.list_study_sheets(course_code=course_code)
    return to_response_list(StudySheetResponse, sheets)


@study_sheet_router.get("/mine")
async def list_my_study_sheets(
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
):
    sheets = await services.marketplace.list_owned_study_sheets(current_user["user_id"])
    return to_response_list(StudySheetResponse, sheets)


@study_sheet_router.get("/purchased")
async def list_purchased_study_sheets(
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
):
    sheets = await services.marketplace.list_purchased_study_sheets(current_user["user_id"])
    return to_response_list(StudySheetResponse, sheets)


@study_sheet_router.patch("/{sheet_id}")
async def update_study_sheet(
    sheet_id: str,
    body: StudySheetUpdate,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    sid = parse_positive_int(sheet_id)
    changes = body.model_dump(by_alias=True, exclude_none=True)
    sheet = await runner.run(
        lambda session: services.marketplace.update_study_sheet(
            sid, current_user["user_id"], changes, session=session
        )
    )
    return to_response(StudySheetResponse, sheet)


@study_sheet_router.delete("/{sheet_id}")
async def delete_study_sheet(
    sheet_id: str,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    sid = parse_positive_int(sheet_id)
    deleted = await runner.run(
        lambda session: services.marketplace.delete_study_sheet(sid, current_user["user_id"], session=session)
    )
    return to_response(StudySheetResponse, deleted)


@study_sheet_router.post("/{sheet_id}/purchase", status_code=status.HTTP_201_CREATED)
async def purchase_study_sheet(
    sheet_id: str,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """
    Buy an approved study sheet.

    Creates the Purchase and its PENDING Payment in one transaction and
    returns {id: <payment id>, reference_code, amount}.
    """
    sid = parse_positive_int(sheet_id)
    reference_code = await services.marketplace.generate_reference_code()
    result = await runner.run(
        lambda session: services.marketplace.purchase_study_sheet(
            sid, current_user["user_id"], reference_code, session=session
        )
    )
    return to_response(PurchaseResult, result)
