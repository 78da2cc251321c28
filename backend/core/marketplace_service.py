"""
Study sheet and lease listing lifecycle outside moderation.

Purchases create a Purchase and its PENDING Payment together; the
(studySheetId, buyerId) pair is unique so a buyer holds at most one of each
per sheet.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import secrets
import string
import time

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from audit_service import AuditService
from core.catalog_service import CatalogService
from core.invariants import require_cents, require_positive_id
from core.sequence import SequenceGenerator
from core.state_machine import (
    LEASE_LISTING_MACHINE,
    LeaseStatus,
    PaymentStatus,
    StudySheetStatus,
)
from core.workflow import compare_and_swap
from errors import (
    BadRequestError,
    DuplicateError,
    ForbiddenError,
    InternalServerError,
    InvalidStateError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
REFERENCE_CODE_ATTEMPTS = 5


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def make_reference_code() -> str:
    """REF-<millis in base36>-<6 random base36 chars>"""
    stamp = _to_base36(int(time.time() * 1000))
    rand = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"REF-{stamp}-{rand}"


def _set_provided(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


class MarketplaceService:
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
    # STUDY SHEETS
    # =========================================================================

    async def create_study_sheet(self, owner_id: int, data: Dict[str, Any], session=None) -> Dict[str, Any]:
        course = await self.catalog.find_or_create_course(data["courseCode"], session=session)
        now = datetime.utcnow()
        sheet = {
            "id": await self.sequences.next_id("study_sheets", session=session),
            "title": data["title"],
            "description": data.get("description"),
            "fileUrl": data["fileUrl"],
            "priceCents": data["priceCents"],
            "status": StudySheetStatus.PENDING.value,
            "ownerId": owner_id,
            "courseId": course["id"],
            "courseCode": course["code"],
            "createdAt": now,
            "updatedAt": now,
        }
        await self.db.study_sheets.insert_one(sheet, session=session)
        logger.info(f"[MARKETPLACE] Study sheet {sheet['id']} created by user:{owner_id}")
        return sheet

    async def list_study_sheets(self, course_code: Optional[str] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"status": StudySheetStatus.APPROVED.value}
        if course_code:
            query["courseCode"] = course_code
        return await self.db.study_sheets.find(query).sort("createdAt", -1).to_list(length=None)

    async def list_owned_study_sheets(self, owner_id: int) -> List[Dict[str, Any]]:
        return await self.db.study_sheets.find({"ownerId": owner_id}).sort("createdAt", -1).to_list(length=None)

    async def list_purchased_study_sheets(self, buyer_id: int) -> List[Dict[str, Any]]:
        purchases = await self.db.purchases.find({"buyerId": buyer_id}).sort("createdAt", -1).to_list(length=None)
        sheet_ids = [p["studySheetId"] for p in purchases]
        if not sheet_ids:
            return []
        sheets = await self.db.study_sheets.find({"id": {"$in": sheet_ids}}).to_list(length=None)
        by_id = {sheet["id"]: sheet for sheet in sheets}
        # Purchase order; sheets deleted since purchase are skipped
        return [by_id[sheet_id] for sheet_id in sheet_ids if sheet_id in by_id]

    async def _load_owned_sheet(self, sheet_id: int, owner_id: int, session=None) -> Dict[str, Any]:
        sheet = await self.db.study_sheets.find_one({"id": sheet_id}, session=session)
        if not sheet:
            raise NotFoundError("Study sheet not found")
        if sheet.get("ownerId") != owner_id:
            raise ForbiddenError("Forbidden")
        return sheet

    async def update_study_sheet(
        self, sheet_id: int, owner_id: int, changes: Dict[str, Any], session=None
    ) -> Dict[str, Any]:
        await self._load_owned_sheet(sheet_id, owner_id, session=session)

        now = datetime.utcnow()
        updated = await self.db.study_sheets.find_one_and_update(
            {"id": sheet_id},
            {"$set": {**_set_provided(changes), "updatedAt": now}},
            return_document=ReturnDocument.AFTER,
            session=session
        )
        if updated is None:
            raise NotFoundError("Study sheet not found")

        price = require_cents(updated, "priceCents", "StudySheet")
        await self.audit.log_action(
            owner_id, "STUDY_SHEET_UPDATED", "STUDY_SHEET", sheet_id,
            amount=price, session=session, now=now
        )
        return updated

    async def delete_study_sheet(self, sheet_id: int, owner_id: int, session=None) -> Dict[str, Any]:
        await self._load_owned_sheet(sheet_id, owner_id, session=session)

        if await self.db.purchases.find_one({"studySheetId": sheet_id}, {"_id": 1}, session=session):
            raise BadRequestError("Cannot delete study sheet with existing purchases")

        await self.db.study_sheet_approvals.delete_many({"studySheetId": sheet_id}, session=session)

        deleted = await self.db.study_sheets.find_one_and_delete({"id": sheet_id}, session=session)
        if deleted is None:
            raise NotFoundError("Study sheet not found")

        await self.audit.log_action(owner_id, "STUDY_SHEET_DELETED", "STUDY_SHEET", sheet_id, session=session)
        logger.info(f"[MARKETPLACE] Study sheet {sheet_id} deleted by user:{owner_id}")
        return deleted

    # =========================================================================
    # PURCHASES
    # =========================================================================

    async def generate_reference_code(self) -> str:
        for _ in range(REFERENCE_CODE_ATTEMPTS):
            candidate = make_reference_code()
            if not await self.db.payments.find_one({"referenceCode": candidate}, {"_id": 1}):
                return candidate
        logger.error("[PAYMENT] Could not generate a unique reference code")
        raise InternalServerError("Internal Server Error")

    async def purchase_study_sheet(
        self, sheet_id: int, buyer_id: int, reference_code: str, session=None
    ) -> Dict[str, Any]:
        """Create Purchase + PENDING Payment. Returns {id, reference_code, amount}."""
        sheet = await self.db.study_sheets.find_one({"id": sheet_id}, session=session)
        if not sheet:
            raise NotFoundError("Study sheet not found")
        if sheet.get("status") != StudySheetStatus.APPROVED.value:
            raise BadRequestError("Study sheet is not available for purchase")

        price = require_cents(sheet, "priceCents", "StudySheet")
        seller_id = require_positive_id(sheet, "ownerId", "StudySheet")
        if seller_id == buyer_id:
            raise BadRequestError("You cannot purchase your own study sheet")

        if await self.db.purchases.find_one(
            {"studySheetId": sheet_id, "buyerId": buyer_id}, {"_id": 1}, session=session
        ):
            raise DuplicateError("Already purchased")

        purchase_id = await self.sequences.next_id("purchases", session=session)
        payment_id = await self.sequences.next_id("payments", session=session)
        now = datetime.utcnow()

        try:
            await self.db.purchases.insert_one(
                {
                    "id": purchase_id,
                    "buyerId": buyer_id,
                    "studySheetId": sheet_id,
                    "amountCents": price,
                    "createdAt": now,
                    "updatedAt": now,
                },
                session=session
            )
        except DuplicateKeyError:
            raise DuplicateError("Already purchased")

        try:
            await self.db.payments.insert_one(
                {
                    "id": payment_id,
                    "purchaseId": purchase_id,
                    "referenceCode": reference_code,
                    "amount": price,
                    "status": PaymentStatus.PENDING.value,
                    "buyerId": buyer_id,
                    "sellerId": seller_id,
                    "studySheetId": sheet_id,
                    "createdAt": now,
                    "updatedAt": now,
                },
                session=session
            )
        except DuplicateKeyError:
            raise InternalServerError("Failed to generate unique payment reference")

        logger.info(
            f"[PAYMENT] Purchase {purchase_id} / payment {payment_id} ({reference_code}) "
            f"for sheet {sheet_id} by user:{buyer_id}"
        )
        return {"id": payment_id, "reference_code": reference_code, "amount": price}

    # =========================================================================
    # LEASE LISTINGS
    # =========================================================================

    async def create_lease_listing(self, owner_id: int, data: Dict[str, Any], session=None) -> Dict[str, Any]:
        now = datetime.utcnow()
        listing = {
            "id": await self.sequences.next_id("lease_listings", session=session),
            "title": data["title"],
            "description": data.get("description"),
            "lineId": data.get("lineId"),
            "location": data["location"],
            "rentCents": data["rentCents"],
            "depositCents": data["depositCents"],
            "startDate": data["startDate"],
            "endDate": data["endDate"],
            "status": LeaseStatus.PENDING.value,
            "ownerId": owner_id,
            "createdAt": now,
            "updatedAt": now,
        }
        await self.db.lease_listings.insert_one(listing, session=session)
        logger.info(f"[MARKETPLACE] Lease listing {listing['id']} created by user:{owner_id}")
        return listing

    async def list_lease_listings(self) -> List[Dict[str, Any]]:
        return await self.db.lease_listings.find(
            {"status": LeaseStatus.APPROVED.value}
        ).sort("createdAt", -1).to_list(length=None)

    async def list_owned_lease_listings(self, owner_id: int) -> List[Dict[str, Any]]:
        return await self.db.lease_listings.find({"ownerId": owner_id}).sort("createdAt", -1).to_list(length=None)

    async def _load_listing(self, listing_id: int, session=None) -> Dict[str, Any]:
        listing = await self.db.lease_listings.find_one({"id": listing_id}, session=session)
        if not listing:
            raise NotFoundError("Lease listing not found")
        return listing

    async def update_lease_listing(
        self, listing_id: int, owner_id: int, changes: Dict[str, Any], session=None
    ) -> Dict[str, Any]:
        listing = await self._load_listing(listing_id, session=session)
        if listing.get("ownerId") != owner_id:
            raise ForbiddenError("Forbidden")
        if listing.get("status") == LeaseStatus.TRANSFERRED.value:
            raise InvalidStateError("Lease listing has been transferred")

        updated = await self.db.lease_listings.find_one_and_update(
            {"id": listing_id, "status": {"$ne": LeaseStatus.TRANSFERRED.value}},
            {"$set": {**_set_provided(changes), "updatedAt": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=session
        )
        if updated is None:
            raise NotFoundError("Lease listing not found")
        return updated

    async def delete_lease_listing(self, listing_id: int, owner_id: int, session=None) -> Dict[str, Any]:
        listing = await self._load_listing(listing_id, session=session)
        if listing.get("ownerId") != owner_id:
            raise ForbiddenError("Forbidden")

        await self.db.interest_requests.delete_many({"leaseListingId": listing_id}, session=session)
        await self.db.lease_approvals.delete_many({"leaseListingId": listing_id}, session=session)

        deleted = await self.db.lease_listings.find_one_and_delete({"id": listing_id}, session=session)
        if deleted is None:
            raise NotFoundError("Lease listing not found")
        return deleted

    async def submit_interest(self, listing_id: int, student_id: int, session=None) -> Dict[str, Any]:
        listing = await self._load_listing(listing_id, session=session)
        if listing.get("status") != LeaseStatus.APPROVED.value:
            raise BadRequestError("Lease listing is not available")

        key = {"leaseListingId": listing_id, "studentId": student_id}
        if await self.db.interest_requests.find_one(key, {"_id": 1}, session=session):
            raise DuplicateError("Interest already submitted")

        interest = {
            "id": await self.sequences.next_id("interest_requests", session=session),
            **key,
            "createdAt": datetime.utcnow(),
        }
        try:
            await self.db.interest_requests.insert_one(interest, session=session)
        except DuplicateKeyError:
            raise DuplicateError("Interest already submitted")
        return interest

    async def transfer_lease_listing(
        self, listing_id: int, actor_id: int, actor_is_admin: bool, session=None
    ) -> Dict[str, Any]:
        """APPROVED -> TRANSFERRED, by the owner or an admin."""
        now = datetime.utcnow()
        listing = await self._load_listing(listing_id, session=session)
        if not actor_is_admin and listing.get("ownerId") != actor_id:
            raise ForbiddenError("Forbidden")

        updated = await compare_and_swap(
            LEASE_LISTING_MACHINE, self.db.lease_listings, listing, LeaseStatus.TRANSFERRED,
            "Only approved lease listings can be transferred", session=session, now=now
        )

        await self.audit.log_action(
            actor_id, "LEASE_TRANSFERRED", "LEASE_LISTING", listing_id, session=session, now=now
        )
        logger.info(f"[MARKETPLACE] Lease listing {listing_id} transferred by user:{actor_id}")
        return updated
