"""
Course reviews and teacher reviews: student-facing writes.

Owner edits keep the status and append a history snapshot of the previous
rating/text in the same session. Owner deletes cascade votes and history and
resolve any PENDING reports on the review.
"""
from datetime import datetime
from typing import Any, Dict, List
import logging

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from core.catalog_service import CatalogService, normalize_teacher_name
from core.invariants import is_positive_int
from core.report_service import REPORT_TARGETS, ReportTarget
from core.sequence import SequenceGenerator
from core.state_machine import ReportStatus, ReportTargetType, ReviewStatus
from errors import DuplicateError, ForbiddenError, InternalServerError, NotFoundError

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [ReviewStatus.VISIBLE.value, ReviewStatus.UNDER_REVIEW.value]


class ReviewService:
    def __init__(self, db, sequences: SequenceGenerator, catalog: CatalogService):
        self.db = db
        self.sequences = sequences
        self.catalog = catalog

    def _kind(self, target_type: ReportTargetType) -> ReportTarget:
        return REPORT_TARGETS[target_type.value]

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_review(
        self, student_id: int, course_id: int, rating: int, text: str, session=None
    ) -> Dict[str, Any]:
        await self.catalog.get_course(course_id, session=session)

        if await self.db.reviews.find_one(
            {"studentId": student_id, "courseId": course_id}, {"_id": 1}, session=session
        ):
            raise DuplicateError("You have already reviewed this course")

        now = datetime.utcnow()
        review = {
            "id": await self.sequences.next_id("reviews", session=session),
            "studentId": student_id,
            "courseId": course_id,
            "rating": rating,
            "text": text,
            "status": ReviewStatus.VISIBLE.value,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            await self.db.reviews.insert_one(review, session=session)
        except DuplicateKeyError:
            raise DuplicateError("You have already reviewed this course")
        return review

    async def create_teacher_review(
        self,
        student_id: int,
        course_id: int,
        teacher_name: str,
        rating: int,
        text: str,
        session=None,
    ) -> Dict[str, Any]:
        await self.catalog.get_course(course_id, session=session)

        normalized_name = normalize_teacher_name(teacher_name)
        duplicate = await self.db.teacher_reviews.find_one(
            {
                "studentId": student_id,
                "courseId": course_id,
                "normalizedName": normalized_name,
                "status": {"$in": ACTIVE_STATUSES},
            },
            {"_id": 1},
            session=session
        )
        if duplicate:
            raise DuplicateError("You already reviewed this teacher")

        now = datetime.utcnow()
        review = {
            "id": await self.sequences.next_id("teacher_reviews", session=session),
            "studentId": student_id,
            "courseId": course_id,
            "teacherId": None,
            "teacherName": teacher_name.strip(),
            "normalizedName": normalized_name,
            "rating": rating,
            "text": text,
            "status": ReviewStatus.VISIBLE.value,
            "reviewedById": None,
            "reviewedAt": None,
            "decisionReason": None,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            await self.db.teacher_reviews.insert_one(review, session=session)
        except DuplicateKeyError:
            raise DuplicateError("You already reviewed this teacher")
        return review

    # =========================================================================
    # READ
    # =========================================================================

    async def list_course_reviews(self, course_id: int) -> List[Dict[str, Any]]:
        await self.catalog.get_course(course_id)
        cursor = self.db.reviews.find(
            {"courseId": course_id, "status": ReviewStatus.VISIBLE.value}
        ).sort("createdAt", -1)
        return await cursor.to_list(length=None)

    async def list_course_teacher_reviews(self, course_id: int, teacher_id: int = None) -> List[Dict[str, Any]]:
        await self.catalog.get_course(course_id)
        query: Dict[str, Any] = {"courseId": course_id, "status": ReviewStatus.VISIBLE.value}
        if teacher_id is not None:
            query["teacherId"] = teacher_id
        cursor = self.db.teacher_reviews.find(query).sort("createdAt", -1)
        return await cursor.to_list(length=None)

    # =========================================================================
    # OWNER EDIT / DELETE
    # =========================================================================

    async def _load_owned(self, kind: ReportTarget, review_id: int, student_id: int, session=None):
        review = await self.db[kind.collection].find_one({"id": review_id}, session=session)
        if not review:
            raise NotFoundError(f"{kind.label} not found")
        if review.get("studentId") != student_id:
            raise ForbiddenError("Forbidden")
        return review

    async def update_review(
        self,
        target_type: ReportTargetType,
        review_id: int,
        student_id: int,
        rating: int,
        text: str,
        session=None,
    ) -> Dict[str, Any]:
        kind = self._kind(target_type)
        review = await self._load_owned(kind, review_id, student_id, session=session)

        if not is_positive_int(review.get("rating")) or not isinstance(review.get("text"), str):
            logger.error(f"[REVIEW] {kind.label} {review_id} has malformed rating/text")
            raise InternalServerError("Internal Server Error")

        now = datetime.utcnow()
        await self.db[kind.history].insert_one(
            {
                "id": await self.sequences.next_id(kind.history, session=session),
                kind.foreign_key: review_id,
                "oldRating": review["rating"],
                "oldText": review["text"],
                "createdAt": now,
            },
            session=session
        )

        updated = await self.db[kind.collection].find_one_and_update(
            {"id": review_id},
            {"$set": {"rating": rating, "text": text, "updatedAt": now}},
            return_document=ReturnDocument.AFTER,
            session=session
        )
        if updated is None:
            raise NotFoundError(f"{kind.label} not found")
        return updated

    async def delete_review(
        self, target_type: ReportTargetType, review_id: int, student_id: int, session=None
    ) -> Dict[str, Any]:
        kind = self._kind(target_type)
        await self._load_owned(kind, review_id, student_id, session=session)

        now = datetime.utcnow()
        await self.db[kind.votes].delete_many({kind.foreign_key: review_id}, session=session)
        await self.db[kind.history].delete_many({kind.foreign_key: review_id}, session=session)
        await self.db.reports.update_many(
            {"targetType": target_type.value, "targetId": review_id, "status": ReportStatus.PENDING.value},
            {"$set": {"status": ReportStatus.RESOLVED.value, "updatedAt": now}},
            session=session
        )

        deleted = await self.db[kind.collection].find_one_and_delete({"id": review_id}, session=session)
        if deleted is None:
            raise NotFoundError(f"{kind.label} not found")

        logger.info(f"[REVIEW] {kind.label} {review_id} deleted by owner user:{student_id}")
        return deleted

    # =========================================================================
    # VOTES
    # =========================================================================

    async def upvote(
        self, target_type: ReportTargetType, review_id: int, voter_id: int, session=None
    ) -> Dict[str, Any]:
        kind = self._kind(target_type)
        if not await self.db[kind.collection].find_one({"id": review_id}, {"_id": 1}, session=session):
            raise NotFoundError(f"{kind.label} not found")

        key = {kind.foreign_key: review_id, "voterId": voter_id}
        if await self.db[kind.votes].find_one(key, {"_id": 1}, session=session):
            raise DuplicateError("Already upvoted")

        vote = {
            "id": await self.sequences.next_id(kind.votes, session=session),
            **key,
            "createdAt": datetime.utcnow(),
        }
        try:
            await self.db[kind.votes].insert_one(vote, session=session)
        except DuplicateKeyError:
            raise DuplicateError("Already upvoted")
        return vote

    async def remove_upvote(
        self, target_type: ReportTargetType, review_id: int, voter_id: int, session=None
    ) -> None:
        kind = self._kind(target_type)
        await self.db[kind.votes].delete_one(
            {kind.foreign_key: review_id, "voterId": voter_id}, session=session
        )
