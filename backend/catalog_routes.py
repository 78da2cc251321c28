"""
Courses, teachers and the public review lists per course.
"""
from fastapi import APIRouter, Depends, status
import logging

from auth import get_current_user
from dependencies import Services, get_services, get_transaction_runner
from errors import parse_positive_int
from models import (
    CourseCreate,
    CourseResponse,
    CourseTeacherCreate,
    ReviewResponse,
    TeacherResponse,
    TeacherReviewResponse,
    to_response,
    to_response_list,
)
from permissions import Role, require_roles

logger = logging.getLogger(__name__)

catalog_router = APIRouter(prefix="/api/courses", tags=["Catalog"])


@catalog_router.get("")
async def list_courses(services: Services = Depends(get_services)):
    return to_response_list(CourseResponse, await services.catalog.list_courses())


@catalog_router.post("", status_code=status.HTTP_201_CREATED)
async def create_course(
    body: CourseCreate,
    current_user: dict = Depends(require_roles(Role.STUDENT)),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    course = await runner.run(
        lambda session: services.catalog.create_course(body.code, body.name, session=session)
    )
    return to_response(CourseResponse, course)


@catalog_router.get("/{course_id}/teachers")
async def list_course_teachers(course_id: str, services: Services = Depends(get_services)):
    teachers = await services.catalog.list_course_teachers(parse_positive_int(course_id))
    return to_response_list(TeacherResponse, teachers)


@catalog_router.post("/{course_id}/teachers", status_code=status.HTTP_201_CREATED)
async def add_course_teacher(
    course_id: str,
    body: CourseTeacherCreate,
    current_user: dict = Depends(require_roles(Role.ADMIN)),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    cid = parse_positive_int(course_id)
    teacher = await runner.run(
        lambda session: services.catalog.add_teacher_to_course(cid, body.teacher_name, session=session)
    )
    return to_response(TeacherResponse, teacher)


@catalog_router.get("/{course_id}/reviews")
async def list_course_reviews(
    course_id: str,
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    reviews = await services.reviews.list_course_reviews(parse_positive_int(course_id))
    return to_response_list(ReviewResponse, reviews)


@catalog_router.get("/{course_id}/teacher-reviews")
async def list_course_teacher_reviews(
    course_id: str,
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    reviews = await services.reviews.list_course_teacher_reviews(parse_positive_int(course_id))
    return to_response_list(TeacherReviewResponse, reviews)


@catalog_router.get("/{course_id}/teachers/{teacher_id}/reviews")
async def list_teacher_reviews_for_teacher(
    course_id: str,
    teacher_id: str,
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    reviews = await services.reviews.list_course_teacher_reviews(
        parse_positive_int(course_id), teacher_id=parse_positive_int(teacher_id)
    )
    return to_response_list(TeacherReviewResponse, reviews)
