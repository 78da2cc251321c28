"""
STAFF / ADMIN moderation queues and decisions.

Every decision runs through the transactional executor so the status change,
its decision record and its audit entry commit together.
"""
from fastapi import APIRouter, Depends
from typing import Optional
import logging

from core.state_machine import LeaseStatus, ReviewStatus, StudySheetStatus
from dependencies import Services, get_services, get_transaction_runner
from errors import parse_positive_int
from models import (
    LeaseListingResponse,
    RejectRequest,
    RemoveRequest,
    ReviewResponse,
    StudySheetResponse,
    TeacherReviewResponse,
    to_response,
    to_response_list,
)
from permissions import MODERATOR_ROLES, require_roles

logger = logging.getLogger(__name__)

moderation_router = APIRouter(prefix="/api/moderation", tags=["Moderation"])

moderators = require_roles(*MODERATOR_ROLES)


def _value(status) -> Optional[str]:
    return status.value if status is not None else None


# ============================================
# STUDY SHEETS
# ============================================

@moderation_router.get("/study-sheets")
async def list_study_sheets_for_moderation(
    status: Optional[StudySheetStatus] = None,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
):
    sheets = await services.moderation.list_by_status("study_sheets", _value(status))
    return to_response_list(StudySheetResponse, sheets)


@moderation_router.post("/study-sheets/{sheet_id}/approve")
async def approve_study_sheet(
    sheet_id: str,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    sid = parse_positive_int(sheet_id)
    sheet = await runner.run(
        lambda session: services.moderation.moderate_study_sheet(
            sid, current_user["user_id"], StudySheetStatus.APPROVED, session=session
        )
    )
    return to_response(StudySheetResponse, sheet)


@moderation_router.post("/study-sheets/{sheet_id}/reject")
async def reject_study_sheet(
    sheet_id: str,
    body: RejectRequest,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    sid = parse_positive_int(sheet_id)
    sheet = await runner.run(
        lambda session: services.moderation.moderate_study_sheet(
            sid, current_user["user_id"], StudySheetStatus.REJECTED, reason=body.reason, session=session
        )
    )
    return to_response(StudySheetResponse, sheet)


# ============================================
# LEASE LISTINGS
# ============================================

@moderation_router.get("/lease-listings")
async def list_lease_listings_for_moderation(
    status: Optional[LeaseStatus] = None,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
):
    listings = await services.moderation.list_by_status("lease_listings", _value(status))
    return to_response_list(LeaseListingResponse, listings)


@moderation_router.post("/lease-listings/{listing_id}/approve")
async def approve_lease_listing(
    listing_id: str,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    lid = parse_positive_int(listing_id)
    listing = await runner.run(
        lambda session: services.moderation.moderate_lease_listing(
            lid, current_user["user_id"], LeaseStatus.APPROVED, session=session
        )
    )
    return to_response(LeaseListingResponse, listing)


@moderation_router.post("/lease-listings/{listing_id}/reject")
async def reject_lease_listing(
    listing_id: str,
    body: RejectRequest,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    lid = parse_positive_int(listing_id)
    listing = await runner.run(
        lambda session: services.moderation.moderate_lease_listing(
            lid, current_user["user_id"], LeaseStatus.REJECTED, reason=body.reason, session=session
        )
    )
    return to_response(LeaseListingResponse, listing)


# ============================================
# REVIEWS
# ============================================

@moderation_router.get("/reviews")
async def list_reviews_for_moderation(
    status: Optional[ReviewStatus] = None,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
):
    reviews = await services.moderation.list_by_status("reviews", _value(status))
    return to_response_list(ReviewResponse, reviews)


@moderation_router.post("/reviews/{review_id}/approve")
async def approve_review(
    review_id: str,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    rid = parse_positive_int(review_id)
    review = await runner.run(
        lambda session: services.moderation.approve_review(rid, current_user["user_id"], session=session)
    )
    return to_response(ReviewResponse, review)


@moderation_router.post("/reviews/{review_id}/remove")
async def remove_review(
    review_id: str,
    body: RemoveRequest,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    rid = parse_positive_int(review_id)
    review = await runner.run(
        lambda session: services.moderation.remove_review(
            rid, current_user["user_id"], reason=body.reason, session=session
        )
    )
    return to_response(ReviewResponse, review)


# ============================================
# TEACHER REVIEWS
# ============================================

@moderation_router.get("/teacher-reviews")
async def list_teacher_reviews_for_moderation(
    status: Optional[ReviewStatus] = None,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
):
    reviews = await services.moderation.list_by_status("teacher_reviews", _value(status))
    return to_response_list(TeacherReviewResponse, reviews)


@moderation_router.post("/teacher-reviews/{review_id}/approve")
async def approve_teacher_review(
    review_id: str,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """Approve and link the review to its canonical Teacher and CourseTeacher row."""
    rid = parse_positive_int(review_id)
    review = await runner.run(
        lambda session: services.moderation.approve_teacher_review(rid, current_user["user_id"], session=session)
    )
    return to_response(TeacherReviewResponse, review)


@moderation_router.post("/teacher-reviews/{review_id}/remove")
async def remove_teacher_review(
    review_id: str,
    body: RemoveRequest,
    current_user: dict = Depends(moderators),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    rid = parse_positive_int(review_id)
    review = await runner.run(
        lambda session: services.moderation.remove_teacher_review(
            rid, current_user["user_id"], reason=body.reason, session=session
        )
    )
    return to_response(TeacherReviewResponse, review)
