"""
Moderation tests: decisions, decision records and audit entries.
"""
import pytest

from core.state_machine import LeaseStatus, StudySheetStatus
from errors import InvalidStateError
from tests.conftest import auth_headers, insert_lease_listing, insert_study_sheet


class TestStudySheetModeration:
    """PENDING -> APPROVED | REJECTED"""

    async def test_approve_writes_decision_and_audit(self, services, runner, db):
        await insert_study_sheet(db, status="PENDING", price_cents=450)

        sheet = await runner.run(
            lambda s: services.moderation.moderate_study_sheet(1, 5, StudySheetStatus.APPROVED, session=s)
        )

        assert sheet["status"] == "APPROVED"
        approval = await db.study_sheet_approvals.find_one({"studySheetId": 1})
        assert approval["decision"] == "APPROVED"
        assert approval["reviewerId"] == 5
        assert approval["reason"] is None

        log = await db.audit_logs.find_one({"action": "STUDY_SHEET_APPROVED"})
        assert log["entityType"] == "STUDY_SHEET"
        assert log["amount"] == 450

    async def test_second_decision_is_refused(self, services, runner, db):
        await insert_study_sheet(db, status="PENDING")
        await runner.run(
            lambda s: services.moderation.moderate_study_sheet(1, 5, StudySheetStatus.APPROVED, session=s)
        )

        with pytest.raises(InvalidStateError) as exc_info:
            await runner.run(
                lambda s: services.moderation.moderate_study_sheet(
                    1, 6, StudySheetStatus.REJECTED, reason="late", session=s
                )
            )

        assert exc_info.value.detail == "Study sheet is not pending moderation"
        assert await db.study_sheet_approvals.count_documents({}) == 1
        assert (await db.study_sheet_approvals.find_one({}))["reviewerId"] == 5

    async def test_decision_record_is_upserted(self, services, runner, db):
        await insert_study_sheet(db, status="PENDING")
        await db.study_sheet_approvals.insert_one(
            {"id": 1, "studySheetId": 1, "reviewerId": 3, "decision": "REJECTED", "reason": "old"}
        )

        await runner.run(
            lambda s: services.moderation.moderate_study_sheet(
                1, 5, StudySheetStatus.REJECTED, reason="blurry scan", session=s
            )
        )

        records = await db.study_sheet_approvals.find({"studySheetId": 1}).to_list(length=None)
        assert len(records) == 1
        assert records[0]["id"] == 1
        assert records[0]["reviewerId"] == 5
        assert records[0]["reason"] == "blurry scan"

    async def test_reject_requires_reason(self, client, db):
        await insert_study_sheet(db, status="PENDING")

        response = await client.post(
            "/api/moderation/study-sheets/1/reject", json={}, headers=auth_headers(5, "STAFF")
        )

        assert response.status_code == 400
        assert (await db.study_sheets.find_one({"id": 1}))["status"] == "PENDING"

    async def test_queue_filtered_by_status(self, client, db):
        await insert_study_sheet(db, sheet_id=1, status="PENDING")
        await insert_study_sheet(db, sheet_id=2, status="APPROVED")

        response = await client.get("/api/moderation/study-sheets?status=PENDING", headers=auth_headers(9, "ADMIN"))

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [1]

    async def test_students_cannot_moderate(self, client, db):
        await insert_study_sheet(db, status="PENDING")
        response = await client.post("/api/moderation/study-sheets/1/approve", headers=auth_headers(2))
        assert response.status_code == 403


class TestLeaseListings:
    """Lease moderation, interest and transfer"""

    async def test_reject_records_reason(self, services, runner, db):
        await insert_lease_listing(db)

        listing = await runner.run(
            lambda s: services.moderation.moderate_lease_listing(
                1, 5, LeaseStatus.REJECTED, reason="missing dates", session=s
            )
        )

        assert listing["status"] == "REJECTED"
        approval = await db.lease_approvals.find_one({"leaseListingId": 1})
        assert approval["reason"] == "missing dates"

    async def test_interest_and_transfer(self, client, db):
        await insert_lease_listing(db, owner_id=1)
        staff = auth_headers(5, "STAFF")

        early = await client.post("/api/lease-listings/1/interest", headers=auth_headers(2))
        assert early.status_code == 400
        assert early.json()["message"] == "Lease listing is not available"

        await client.post("/api/moderation/lease-listings/1/approve", headers=staff)

        interest = await client.post("/api/lease-listings/1/interest", headers=auth_headers(2))
        assert interest.status_code == 201, f"Interest failed: {interest.text}"
        assert interest.json()["leaseListingId"] == 1

        repeat = await client.post("/api/lease-listings/1/interest", headers=auth_headers(2))
        assert repeat.status_code == 400

        stranger = await client.post("/api/lease-listings/1/transfer", headers=auth_headers(3))
        assert stranger.status_code == 403

        transferred = await client.post("/api/lease-listings/1/transfer", headers=auth_headers(1))
        assert transferred.status_code == 200, f"Transfer failed: {transferred.text}"
        assert transferred.json()["status"] == "TRANSFERRED"

        edit = await client.patch("/api/lease-listings/1", json={"title": "New"}, headers=auth_headers(1))
        assert edit.status_code == 400
        assert edit.json()["message"] == "Lease listing has been transferred"

    async def test_admin_transfers_any_listing(self, client, db):
        await insert_lease_listing(db, owner_id=1, status="APPROVED")

        response = await client.post("/api/lease-listings/1/transfer", headers=auth_headers(9, "ADMIN"))

        assert response.status_code == 200
        log = await db.audit_logs.find_one({"action": "LEASE_TRANSFERRED"})
        assert log["actorId"] == 9

    async def test_pending_listing_cannot_be_transferred(self, client, db):
        await insert_lease_listing(db, owner_id=1)

        response = await client.post("/api/lease-listings/1/transfer", headers=auth_headers(1))

        assert response.status_code == 400
        assert response.json()["message"] == "Only approved lease listings can be transferred"

    async def test_create_and_list(self, client, db):
        body = {
            "title": "Studio",
            "location": "East Campus",
            "rentCents": 500000,
            "depositCents": 1000000,
            "startDate": "2026-02-01",
            "endDate": "2026-07-31",
        }
        created = await client.post("/api/lease-listings", json=body, headers=auth_headers(1))
        assert created.status_code == 201, f"Create failed: {created.text}"
        assert created.json()["status"] == "PENDING"

        public = await client.get("/api/lease-listings", headers=auth_headers(2))
        assert public.json() == []

        mine = await client.get("/api/lease-listings/mine", headers=auth_headers(1))
        assert [l["title"] for l in mine.json()] == ["Studio"]

        deleted = await client.delete("/api/lease-listings/1", headers=auth_headers(1))
        assert deleted.status_code == 200
        assert await db.lease_listings.count_documents({}) == 0
