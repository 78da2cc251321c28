"""
Unique indexes backing the duplicate-race handling in the workflows.

Run once at startup; create_index is idempotent.
"""
import logging

from pymongo import ASCENDING

logger = logging.getLogger(__name__)

ENTITY_COLLECTIONS = [
    "users", "courses", "teachers", "course_teachers",
    "study_sheets", "study_sheet_approvals", "purchases", "payments",
    "lease_listings", "lease_approvals", "interest_requests",
    "reviews", "review_history", "review_votes",
    "teacher_reviews", "teacher_review_history", "teacher_review_votes",
    "reports", "withdrawal_requests", "audit_logs",
]

UNIQUE_INDEXES = [
    ("users", [("email", ASCENDING)]),
    ("courses", [("code", ASCENDING)]),
    ("teachers", [("name", ASCENDING)]),
    ("course_teachers", [("courseId", ASCENDING), ("teacherId", ASCENDING)]),
    ("purchases", [("studySheetId", ASCENDING), ("buyerId", ASCENDING)]),
    ("payments", [("referenceCode", ASCENDING)]),
    ("payments", [("purchaseId", ASCENDING)]),
    ("interest_requests", [("leaseListingId", ASCENDING), ("studentId", ASCENDING)]),
    ("reviews", [("studentId", ASCENDING), ("courseId", ASCENDING)]),
    ("review_votes", [("reviewId", ASCENDING), ("voterId", ASCENDING)]),
    ("teacher_review_votes", [("teacherReviewId", ASCENDING), ("voterId", ASCENDING)]),
    ("study_sheet_approvals", [("studySheetId", ASCENDING)]),
    ("lease_approvals", [("leaseListingId", ASCENDING)]),
]


async def ensure_indexes(db) -> None:
    for name in ENTITY_COLLECTIONS:
        await db[name].create_index([("id", ASCENDING)], unique=True)

    for name, keys in UNIQUE_INDEXES:
        await db[name].create_index(keys, unique=True)

    # One open report per reporter and target; closed reports may repeat
    await db.reports.create_index(
        [("reporterId", ASCENDING), ("targetType", ASCENDING), ("targetId", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": "PENDING"},
    )

    logger.info(f"[INDEXES] Ensured indexes on {len(ENTITY_COLLECTIONS)} collections")
