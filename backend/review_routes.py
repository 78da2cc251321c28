"""
Course reviews (/api/reviews) and teacher reviews (/api/teacher-reviews).

Both share owner edit/delete, report and upvote endpoints; only creation
differs.
"""
from fastapi import APIRouter, Depends, status
import logging

from core.state_machine import ReportTargetType
from dependencies import Services, get_services, get_transaction_runner
from errors import parse_positive_int
from models import (
    ReportCreate,
    ReviewCreate,
    ReviewResponse,
    ReviewUpdate,
    ReviewVoteResponse,
    TeacherReviewCreate,
    TeacherReviewResponse,
    TeacherReviewVoteResponse,
    to_response,
)
from permissions import Role, require_roles

logger = logging.getLogger(__name__)

student_only = require_roles(Role.STUDENT)

review_router = APIRouter(prefix="/api/reviews", tags=["Reviews"])
teacher_review_router = APIRouter(prefix="/api/teacher-reviews", tags=["Teacher Reviews"])


@review_router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    body: ReviewCreate,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    review = await runner.run(
        lambda session: services.reviews.create_review(
            current_user["user_id"], body.course_id, body.rating, body.text, session=session
        )
    )
    return to_response(ReviewResponse, review)


@teacher_review_router.post("", status_code=status.HTTP_201_CREATED)
async def create_teacher_review(
    body: TeacherReviewCreate,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    review = await runner.run(
        lambda session: services.reviews.create_teacher_review(
            current_user["user_id"], body.course_id, body.teacher_name,
            body.rating, body.text, session=session
        )
    )
    return to_response(TeacherReviewResponse, review)


def _register_shared_routes(router: APIRouter, target_type: ReportTargetType, response_model, vote_model):
    """Owner edit/delete, report and upvote endpoints for one review kind."""

    @router.patch("/{review_id}")
    async def update_review(
        review_id: str,
        body: ReviewUpdate,
        current_user: dict = Depends(student_only),
        services: Services = Depends(get_services),
        runner=Depends(get_transaction_runner),
    ):
        rid = parse_positive_int(review_id)
        review = await runner.run(
            lambda session: services.reviews.update_review(
                target_type, rid, current_user["user_id"], body.rating, body.text, session=session
            )
        )
        return to_response(response_model, review)

    @router.delete("/{review_id}")
    async def delete_review(
        review_id: str,
        current_user: dict = Depends(student_only),
        services: Services = Depends(get_services),
        runner=Depends(get_transaction_runner),
    ):
        rid = parse_positive_int(review_id)
        deleted = await runner.run(
            lambda session: services.reviews.delete_review(
                target_type, rid, current_user["user_id"], session=session
            )
        )
        return to_response(response_model, deleted)

    @router.post("/{review_id}/report")
    async def report_review(
        review_id: str,
        body: ReportCreate,
        current_user: dict = Depends(student_only),
        services: Services = Depends(get_services),
        runner=Depends(get_transaction_runner),
    ):
        rid = parse_positive_int(review_id)
        review = await runner.run(
            lambda session: services.reports.file_report(
                current_user["user_id"], target_type, rid, body.reason, session=session
            )
        )
        return to_response(response_model, review)

    @router.post("/{review_id}/upvote", status_code=status.HTTP_201_CREATED)
    async def upvote_review(
        review_id: str,
        current_user: dict = Depends(student_only),
        services: Services = Depends(get_services),
        runner=Depends(get_transaction_runner),
    ):
        rid = parse_positive_int(review_id)
        vote = await runner.run(
            lambda session: services.reviews.upvote(target_type, rid, current_user["user_id"], session=session)
        )
        return to_response(vote_model, vote)

    @router.delete("/{review_id}/upvote")
    async def remove_upvote(
        review_id: str,
        current_user: dict = Depends(student_only),
        services: Services = Depends(get_services),
    ):
        rid = parse_positive_int(review_id)
        await services.reviews.remove_upvote(target_type, rid, current_user["user_id"])
        return {"success": True}


_register_shared_routes(review_router, ReportTargetType.REVIEW, ReviewResponse, ReviewVoteResponse)
_register_shared_routes(
    teacher_review_router, ReportTargetType.TEACHER_REVIEW, TeacherReviewResponse, TeacherReviewVoteResponse
)
