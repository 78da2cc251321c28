"""
MODERATION WORKFLOWS

Study sheets and lease listings:
1. Load entity (404 if absent)
2. Compare-and-swap PENDING -> APPROVED | REJECTED
3. Upsert the latest-decision record keyed by entity id
4. Append the audit entry
All four steps run in the caller's session; a reader never sees a new status
without its decision record and audit entry.

Reviews and teacher reviews:
- approve: VISIBLE | UNDER_REVIEW -> VISIBLE (teacher reviews also link the
  canonical Teacher and CourseTeacher row)
- remove:  VISIBLE | UNDER_REVIEW -> REMOVED
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from audit_service import AuditService
from core.catalog_service import CatalogService
from core.invariants import is_cents, is_positive_int
from core.sequence import SequenceGenerator
from core.state_machine import (
    LEASE_LISTING_MACHINE,
    REVIEW_MACHINE,
    STUDY_SHEET_MACHINE,
    TEACHER_REVIEW_MACHINE,
    ReviewStatus,
    StudySheetStatus,
    LeaseStatus,
)
from core.workflow import compare_and_swap, record_latest_decision
from errors import InternalServerError, NotFoundError

logger = logging.getLogger(__name__)


class ModerationService:
    def __init__(
        self,
        db,
        sequences: SequenceGenerator,
        audit: AuditService,
        catalog: CatalogService,
    ):
        self.db = db
        self.sequences = sequences
        self.audit = audit
        self.catalog = catalog

    # =========================================================================
    # QUEUES
    # =========================================================================

    async def list_by_status(self, collection_name: str, status: Optional[str]) -> List[Dict[str, Any]]:
        query = {"status": status} if status else {}
        cursor = self.db[collection_name].find(query).sort("id", 1)
        return await cursor.to_list(length=None)

    # =========================================================================
    # STUDY SHEETS / LEASE LISTINGS
    # =========================================================================

    async def moderate_study_sheet(
        self,
        sheet_id: int,
        actor_id: int,
        decision: StudySheetStatus,
        reason: Optional[str] = None,
        session=None,
    ) -> Dict[str, Any]:
        now = datetime.utcnow()
        sheet = await self.db.study_sheets.find_one({"id": sheet_id}, session=session)
        if not sheet:
            raise NotFoundError("Study sheet not found")

        updated = await compare_and_swap(
            STUDY_SHEET_MACHINE, self.db.study_sheets, sheet, decision,
            "Study sheet is not pending moderation", session=session, now=now
        )

        await record_latest_decision(
            self.db, self.sequences, "study_sheet_approvals", "studySheetId",
            sheet_id, actor_id, decision.value, reason, session=session, now=now
        )

        price = sheet.get("priceCents")
        await self.audit.log_action(
            actor_id, f"STUDY_SHEET_{decision.value}", "STUDY_SHEET", sheet_id,
            amount=price if is_cents(price) else None, session=session, now=now
        )

        logger.info(f"[MODERATION] Study sheet {sheet_id} {decision.value} by user:{actor_id}")
        return updated

    async def moderate_lease_listing(
        self,
        listing_id: int,
        actor_id: int,
        decision: LeaseStatus,
        reason: Optional[str] = None,
        session=None,
    ) -> Dict[str, Any]:
        now = datetime.utcnow()
        listing = await self.db.lease_listings.find_one({"id": listing_id}, session=session)
        if not listing:
            raise NotFoundError("Lease listing not found")

        updated = await compare_and_swap(
            LEASE_LISTING_MACHINE, self.db.lease_listings, listing, decision,
            "Lease listing is not pending moderation", session=session, now=now
        )

        await record_latest_decision(
            self.db, self.sequences, "lease_approvals", "leaseListingId",
            listing_id, actor_id, decision.value, reason, session=session, now=now
        )

        await self.audit.log_action(
            actor_id, f"LEASE_LISTING_{decision.value}", "LEASE_LISTING", listing_id,
            session=session, now=now
        )

        logger.info(f"[MODERATION] Lease listing {listing_id} {decision.value} by user:{actor_id}")
        return updated

    # =========================================================================
    # REVIEWS
    # =========================================================================

    async def approve_review(self, review_id: int, actor_id: int, session=None) -> Dict[str, Any]:
        now = datetime.utcnow()
        review = await self.db.reviews.find_one({"id": review_id}, session=session)
        if not review:
            raise NotFoundError("Review not found")

        updated = await compare_and_swap(
            REVIEW_MACHINE, self.db.reviews, review, ReviewStatus.VISIBLE,
            "Review has been removed", session=session, now=now
        )
        await self.audit.log_action(actor_id, "REVIEW_APPROVED", "REVIEW", review_id, session=session, now=now)
        return updated

    async def remove_review(
        self, review_id: int, actor_id: int, reason: Optional[str] = None, session=None
    ) -> Dict[str, Any]:
        now = datetime.utcnow()
        review = await self.db.reviews.find_one({"id": review_id}, session=session)
        if not review:
            raise NotFoundError("Review not found")

        updated = await compare_and_swap(
            REVIEW_MACHINE, self.db.reviews, review, ReviewStatus.REMOVED,
            "Review has already been removed", session=session, now=now
        )
        await self.audit.log_action(actor_id, "REVIEW_REMOVED", "REVIEW", review_id, session=session, now=now)
        logger.info(f"[MODERATION] Review {review_id} removed by user:{actor_id} reason={reason!r}")
        return updated

    async def approve_teacher_review(self, review_id: int, actor_id: int, session=None) -> Dict[str, Any]:
        now = datetime.utcnow()
        review = await self.db.teacher_reviews.find_one({"id": review_id}, session=session)
        if not review:
            raise NotFoundError("Teacher review not found")

        if not isinstance(review.get("teacherName"), str) or not is_positive_int(review.get("courseId")):
            logger.error(f"[MODERATION] Teacher review {review_id} is malformed")
            raise InternalServerError("Internal Server Error")

        teacher = await self.catalog.find_or_create_teacher(review["teacherName"], session=session)
        if not is_positive_int(teacher.get("id")):
            raise InternalServerError("Internal Server Error")
        await self.catalog.link_course_teacher(review["courseId"], teacher["id"], session=session)

        updated = await compare_and_swap(
            TEACHER_REVIEW_MACHINE, self.db.teacher_reviews, review, ReviewStatus.VISIBLE,
            "Teacher review has been removed",
            extra_set={
                "teacherId": teacher["id"],
                "reviewedById": actor_id,
                "reviewedAt": now,
                "decisionReason": None,
            },
            session=session, now=now
        )
        await self.audit.log_action(
            actor_id, "TEACHER_REVIEW_APPROVED", "TEACHER_REVIEW", review_id, session=session, now=now
        )
        logger.info(f"[MODERATION] Teacher review {review_id} approved, teacher:{teacher['id']}")
        return updated

    async def remove_teacher_review(
        self, review_id: int, actor_id: int, reason: Optional[str] = None, session=None
    ) -> Dict[str, Any]:
        now = datetime.utcnow()
        review = await self.db.teacher_reviews.find_one({"id": review_id}, session=session)
        if not review:
            raise NotFoundError("Teacher review not found")

        updated = await compare_and_swap(
            TEACHER_REVIEW_MACHINE, self.db.teacher_reviews, review, ReviewStatus.REMOVED,
            "Teacher review has already been removed",
            extra_set={
                "reviewedById": actor_id,
                "reviewedAt": now,
                "decisionReason": reason,
            },
            session=session, now=now
        )
        await self.audit.log_action(
            actor_id, "TEACHER_REVIEW_REMOVED", "TEACHER_REVIEW", review_id, session=session, now=now
        )
        return updated
