"""
Study sheet purchase tests.
"""
import re

from tests.conftest import auth_headers, insert_course, insert_study_sheet, insert_user

REFERENCE_CODE = re.compile(r"^REF-[0-9A-Z]+-[0-9A-Z]{6}$")


class TestPurchase:
    """POST /api/study-sheets/{id}/purchase"""

    async def test_purchase_creates_purchase_and_pending_payment(self, client, db):
        await insert_user(db, 1)
        await insert_user(db, 2)
        await insert_course(db)
        await insert_study_sheet(db, owner_id=1, price_cents=750)

        response = await client.post("/api/study-sheets/1/purchase", headers=auth_headers(2))

        assert response.status_code == 201, f"Purchase failed: {response.text}"
        data = response.json()
        assert data["amount"] == 750
        assert REFERENCE_CODE.match(data["reference_code"]), data["reference_code"]

        payment = await db.payments.find_one({"id": data["id"]})
        assert payment["status"] == "PENDING"
        assert payment["buyerId"] == 2
        assert payment["sellerId"] == 1
        assert payment["referenceCode"] == data["reference_code"]

        purchase = await db.purchases.find_one({"id": payment["purchaseId"]})
        assert purchase["studySheetId"] == 1
        assert purchase["buyerId"] == 2

        purchased = await client.get("/api/study-sheets/purchased", headers=auth_headers(2))
        assert [s["id"] for s in purchased.json()] == [1]

    async def test_duplicate_purchase_is_refused(self, client, db):
        await insert_study_sheet(db, owner_id=1)
        headers = auth_headers(2)

        first = await client.post("/api/study-sheets/1/purchase", headers=headers)
        assert first.status_code == 201

        second = await client.post("/api/study-sheets/1/purchase", headers=headers)
        assert second.status_code == 400
        assert second.json()["message"] == "Already purchased"

        assert await db.purchases.count_documents({}) == 1
        assert await db.payments.count_documents({}) == 1

    async def test_pending_sheet_is_not_for_sale(self, client, db):
        await insert_study_sheet(db, owner_id=1, status="PENDING")

        response = await client.post("/api/study-sheets/1/purchase", headers=auth_headers(2))

        assert response.status_code == 400
        assert response.json()["message"] == "Study sheet is not available for purchase"

    async def test_owner_cannot_buy_own_sheet(self, client, db):
        await insert_study_sheet(db, owner_id=1)

        response = await client.post("/api/study-sheets/1/purchase", headers=auth_headers(1))

        assert response.status_code == 400
        assert await db.payments.count_documents({}) == 0

    async def test_unknown_sheet(self, client):
        response = await client.post("/api/study-sheets/77/purchase", headers=auth_headers(2))
        assert response.status_code == 404
        assert response.json()["message"] == "Study sheet not found"

    async def test_staff_cannot_purchase(self, client, db):
        await insert_study_sheet(db, owner_id=1)
        response = await client.post("/api/study-sheets/1/purchase", headers=auth_headers(5, "STAFF"))
        assert response.status_code == 403


class TestStudySheetLifecycle:
    """Create, moderate, list and delete"""

    async def test_create_is_pending_and_hidden_until_approved(self, client, db):
        await insert_user(db, 1)
        body = {
            "title": "Final review",
            "fileUrl": "https://files.example.com/final.pdf",
            "priceCents": 300,
            "courseCode": "MATH200",
        }

        created = await client.post("/api/study-sheets", json=body, headers=auth_headers(1))
        assert created.status_code == 201, f"Create failed: {created.text}"
        sheet = created.json()
        assert sheet["status"] == "PENDING"
        assert sheet["courseCode"] == "MATH200"
        assert await db.courses.find_one({"code": "MATH200"}) is not None

        listing = await client.get("/api/study-sheets", headers=auth_headers(2))
        assert listing.json() == []

        approved = await client.post(
            f"/api/moderation/study-sheets/{sheet['id']}/approve", headers=auth_headers(5, "STAFF")
        )
        assert approved.status_code == 200, f"Approve failed: {approved.text}"

        filtered = await client.get("/api/study-sheets?course_code=MATH200", headers=auth_headers(2))
        assert [s["id"] for s in filtered.json()] == [sheet["id"]]
        other = await client.get("/api/study-sheets?course_code=CS101", headers=auth_headers(2))
        assert other.json() == []

    async def test_cannot_delete_purchased_sheet(self, client, db):
        await insert_study_sheet(db, owner_id=1)
        await client.post("/api/study-sheets/1/purchase", headers=auth_headers(2))

        response = await client.delete("/api/study-sheets/1", headers=auth_headers(1))

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete study sheet with existing purchases"

    async def test_only_owner_can_edit(self, client, db):
        await insert_study_sheet(db, owner_id=1)

        response = await client.patch("/api/study-sheets/1", json={"title": "Mine now"}, headers=auth_headers(2))

        assert response.status_code == 403

    async def test_boolean_price_is_rejected(self, client, db):
        await insert_study_sheet(db, owner_id=1, price_cents=300)

        response = await client.patch("/api/study-sheets/1", json={"priceCents": True}, headers=auth_headers(1))

        assert response.status_code == 400, f"Accepted boolean price: {response.text}"
        assert response.json()["message"].startswith("priceCents")
        assert (await db.study_sheets.find_one({"id": 1}))["priceCents"] == 300
