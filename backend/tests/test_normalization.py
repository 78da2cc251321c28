"""
Strict normalization of stored documents into response shapes.
"""
from datetime import datetime

import pytest

from errors import InternalServerError
from models import (
    PaymentResponse,
    PurchaseResult,
    StudySheetResponse,
    UserResponse,
    WithdrawalResponse,
    normalize,
    to_response,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


def payment_doc(**overrides):
    doc = {
        "id": 7,
        "purchaseId": 3,
        "referenceCode": "REF-ABC-123456",
        "amount": 1500,
        "status": "PENDING",
        "buyerId": 2,
        "sellerId": 1,
        "studySheetId": 4,
        "createdAt": NOW,
    }
    doc.update(overrides)
    return doc


class TestStrictFields:
    """Required fields must be present with exact types"""

    def test_valid_payment(self):
        payment = normalize(PaymentResponse, payment_doc())
        assert payment is not None
        assert payment.amount == 1500
        assert payment.approved_at is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"id": True},
            {"id": 0},
            {"amount": "1500"},
            {"amount": 15.5},
            {"amount": -1},
            {"status": "REFUNDED"},
            {"createdAt": "2026-03-01"},
            {"sellerId": None},
        ],
    )
    def test_malformed_payment_is_rejected(self, overrides):
        assert normalize(PaymentResponse, payment_doc(**overrides)) is None, overrides

    def test_missing_required_field(self):
        doc = payment_doc()
        del doc["referenceCode"]
        assert normalize(PaymentResponse, doc) is None

    def test_non_dict_is_rejected(self):
        assert normalize(PaymentResponse, None) is None
        assert normalize(PaymentResponse, ["id", 7]) is None


class TestLenientOptionalFields:
    """Malformed optional values read as null"""

    def test_optional_references_fall_back_to_null(self):
        payment = normalize(
            PaymentResponse,
            payment_doc(status="APPROVED", approvedById="admin", approvedAt="yesterday"),
        )
        assert payment is not None
        assert payment.approved_by_id is None
        assert payment.approved_at is None

    def test_optional_strings_fall_back_to_null(self):
        sheet = normalize(
            StudySheetResponse,
            {
                "id": 1,
                "title": "Notes",
                "description": 42,
                "fileUrl": "https://files.example.com/a.pdf",
                "priceCents": 0,
                "status": "APPROVED",
                "createdAt": NOW,
                "updatedAt": NOW,
                "ownerId": 1,
                "courseId": 1,
                "courseCode": "CS101",
            },
        )
        assert sheet is not None
        assert sheet.description is None

    def test_withdrawal_reviewer_bool_is_null(self):
        withdrawal = normalize(
            WithdrawalResponse,
            {
                "id": 1,
                "sellerId": 1,
                "amount": 100,
                "status": "APPROVED",
                "reviewedById": True,
                "reviewedAt": NOW,
                "createdAt": NOW,
                "updatedAt": NOW,
            },
        )
        assert withdrawal.reviewed_by_id is None
        assert withdrawal.reviewed_at == NOW


class TestRendering:
    """Camel-case JSON output and the 500 path"""

    def test_user_rendering_hides_password_hash(self):
        body = to_response(
            UserResponse,
            {
                "id": 1,
                "email": "a@example.com",
                "name": "A",
                "role": "STUDENT",
                "walletBalance": 0,
                "passwordHash": "$2b$12$...",
                "createdAt": NOW,
                "updatedAt": NOW,
            },
        )
        assert "passwordHash" not in body
        assert body["walletBalance"] == 0
        assert body["avatarUrl"] is None

    def test_purchase_result_keeps_snake_case_key(self):
        body = to_response(PurchaseResult, {"id": 3, "reference_code": "REF-X-ABCDEF", "amount": 500})
        assert body == {"id": 3, "reference_code": "REF-X-ABCDEF", "amount": 500}

    def test_malformed_document_raises_500(self):
        with pytest.raises(InternalServerError):
            to_response(PaymentResponse, payment_doc(amount="lots"))
