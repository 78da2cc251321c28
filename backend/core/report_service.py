"""
REPORT WORKFLOWS

Filing (student):
- One PENDING report per (reporter, target); a second is DuplicateReportError,
  including the insert race caught from the partial unique index
- A VISIBLE target moves to UNDER_REVIEW; one already under review stays put
- Removed targets cannot be reported

Resolution (admin):
- status: PENDING -> RESOLVED | REJECTED
- remove-target: delete the target's votes and history, resolve every other
  PENDING report on the same target, delete the target, then resolve this
  report. A target already deleted by an earlier resolution is a 404.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from pymongo.errors import DuplicateKeyError

from audit_service import AuditService
from core.sequence import SequenceGenerator
from core.state_machine import (
    REPORT_MACHINE,
    REVIEW_MACHINE,
    TEACHER_REVIEW_MACHINE,
    ReportStatus,
    ReportTargetType,
    ReviewStatus,
)
from core.workflow import compare_and_swap
from errors import BadRequestError, DuplicateReportError, InvalidStateError, NotFoundError

logger = logging.getLogger(__name__)


class ReportTarget:
    """Where a report target and its dependent rows live."""

    def __init__(self, collection: str, votes: str, history: str, foreign_key: str, label: str, machine):
        self.collection = collection
        self.votes = votes
        self.history = history
        self.foreign_key = foreign_key
        self.label = label
        self.machine = machine


REPORT_TARGETS = {
    ReportTargetType.REVIEW.value: ReportTarget(
        "reviews", "review_votes", "review_history", "reviewId", "Review", REVIEW_MACHINE
    ),
    ReportTargetType.TEACHER_REVIEW.value: ReportTarget(
        "teacher_reviews", "teacher_review_votes", "teacher_review_history",
        "teacherReviewId", "Teacher review", TEACHER_REVIEW_MACHINE
    ),
}


class ReportService:
    def __init__(self, db, sequences: SequenceGenerator, audit: AuditService):
        self.db = db
        self.sequences = sequences
        self.audit = audit

    def _target(self, target_type: str) -> ReportTarget:
        target = REPORT_TARGETS.get(target_type)
        if target is None:
            logger.warning(f"[REPORT] Unknown target type {target_type!r}")
            raise BadRequestError("Validation failed")
        return target

    async def list_reports(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"status": status} if status else {}
        return await self.db.reports.find(query).sort("id", -1).to_list(length=None)

    # =========================================================================
    # FILING
    # =========================================================================

    async def file_report(
        self,
        reporter_id: int,
        target_type: ReportTargetType,
        target_id: int,
        reason: str,
        session=None,
    ) -> Dict[str, Any]:
        """File a report and flag the target. Returns the (possibly updated) target."""
        now = datetime.utcnow()
        target = self._target(target_type.value)
        collection = self.db[target.collection]

        doc = await collection.find_one({"id": target_id}, session=session)
        if not doc:
            raise NotFoundError(f"{target.label} not found")
        if doc.get("status") == ReviewStatus.REMOVED.value:
            raise InvalidStateError(f"{target.label} has been removed")

        open_query = {
            "reporterId": reporter_id,
            "targetType": target_type.value,
            "targetId": target_id,
            "status": ReportStatus.PENDING.value,
        }
        if await self.db.reports.find_one(open_query, {"_id": 1}, session=session):
            raise DuplicateReportError()

        report_id = await self.sequences.next_id("reports", session=session)
        try:
            await self.db.reports.insert_one(
                {
                    "id": report_id,
                    **open_query,
                    "reason": reason,
                    "createdAt": now,
                    "updatedAt": now,
                },
                session=session
            )
        except DuplicateKeyError:
            raise DuplicateReportError()

        if doc.get("status") == ReviewStatus.VISIBLE.value:
            flagged = await target.machine.transition(
                collection, doc, ReviewStatus.UNDER_REVIEW, session=session, now=now
            )
            if flagged is None:
                # Moved concurrently; report what is stored now
                flagged = await collection.find_one({"id": target_id}, session=session)
                if not flagged:
                    raise NotFoundError(f"{target.label} not found")
                if flagged.get("status") == ReviewStatus.REMOVED.value:
                    raise InvalidStateError(f"{target.label} has been removed")
            doc = flagged

        logger.info(f"[REPORT] Report {report_id} on {target_type.value}:{target_id} by user:{reporter_id}")
        return doc

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    async def _load_report(self, report_id: int, session=None) -> Dict[str, Any]:
        report = await self.db.reports.find_one({"id": report_id}, session=session)
        if not report:
            raise NotFoundError("Report not found")
        return report

    async def update_status(
        self, report_id: int, actor_id: int, status: ReportStatus, session=None
    ) -> Dict[str, Any]:
        now = datetime.utcnow()
        report = await self._load_report(report_id, session=session)

        updated = await compare_and_swap(
            REPORT_MACHINE, self.db.reports, report, status,
            "Report is not pending", session=session, now=now
        )
        await self.audit.log_action(
            actor_id, f"REPORT_{status.value}", "REPORT", report_id, session=session, now=now
        )

        logger.info(f"[REPORT] Report {report_id} {status.value} by user:{actor_id}")
        return updated

    async def remove_target(self, report_id: int, actor_id: int, session=None) -> Dict[str, Any]:
        now = datetime.utcnow()
        report = await self._load_report(report_id, session=session)
        target = self._target(report.get("targetType"))
        target_id = report.get("targetId")
        collection = self.db[target.collection]

        if report.get("status") != ReportStatus.PENDING.value:
            if await collection.find_one({"id": target_id}, {"_id": 1}, session=session) is None:
                raise NotFoundError("Reported target not found")
            raise InvalidStateError("Report is not pending")

        await self.db[target.votes].delete_many({target.foreign_key: target_id}, session=session)
        await self.db[target.history].delete_many({target.foreign_key: target_id}, session=session)

        await self.db.reports.update_many(
            {
                "targetType": report["targetType"],
                "targetId": target_id,
                "status": ReportStatus.PENDING.value,
                "id": {"$ne": report_id},
            },
            {"$set": {"status": ReportStatus.RESOLVED.value, "updatedAt": now}},
            session=session
        )

        deleted = await collection.find_one_and_delete({"id": target_id}, session=session)
        if deleted is None:
            raise NotFoundError("Reported target not found")

        updated = await compare_and_swap(
            REPORT_MACHINE, self.db.reports, report, ReportStatus.RESOLVED,
            "Report is not pending", session=session, now=now
        )

        await self.audit.log_action(
            actor_id, "REPORT_TARGET_REMOVED", "REPORT", report_id, session=session, now=now
        )

        logger.info(
            f"[REPORT] Report {report_id}: {report['targetType']}:{target_id} removed by user:{actor_id}"
        )
        return updated
