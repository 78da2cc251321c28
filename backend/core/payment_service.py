"""
PAYMENT & WALLET WORKFLOWS

Escrow lifecycle for study-sheet payments and the seller payout path:

    Payment:    PENDING --confirm--> APPROVED --release--> RELEASED
    Withdrawal: PENDING --approve--> APPROVED
                PENDING --reject---> REJECTED (amount refunded)

RULES:
1. walletBalance changes only here, always in the same session as the
   payment/withdrawal transition that justifies it
2. Every status change is a compare-and-swap on the expected current status
3. Amounts and seller references on loaded documents are checked before any
   write; a corrupt document aborts with 500
4. A withdrawal debits the wallet at request time with a balance-gated $inc,
   so two concurrent requests cannot both spend the same funds
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from audit_service import AuditService
from core.invariants import require_cents, require_positive_id
from core.sequence import SequenceGenerator
from core.state_machine import (
    PAYMENT_MACHINE,
    WITHDRAWAL_MACHINE,
    PaymentStatus,
    WithdrawalStatus,
)
from core.workflow import compare_and_swap
from errors import BadRequestError, InvalidStateError, NotFoundError

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(self, db, sequences: SequenceGenerator, audit: AuditService):
        self.db = db
        self.sequences = sequences
        self.audit = audit

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    async def list_payments(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"status": status} if status else {}
        return await self.db.payments.find(query).sort("id", -1).to_list(length=None)

    async def _load_payment(self, payment_id: int, session=None) -> Dict[str, Any]:
        payment = await self.db.payments.find_one({"id": payment_id}, session=session)
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    async def confirm_payment(self, payment_id: int, actor_id: int, session=None) -> Dict[str, Any]:
        """PENDING -> APPROVED. Funds are held; no wallet effect."""
        now = datetime.utcnow()
        payment = await self._load_payment(payment_id, session=session)

        if payment.get("status") != PaymentStatus.PENDING.value:
            raise InvalidStateError("Payment is not pending")

        amount = require_cents(payment, "amount", "Payment")

        updated = await compare_and_swap(
            PAYMENT_MACHINE, self.db.payments, payment, PaymentStatus.APPROVED,
            "Payment is not pending",
            extra_set={"approvedAt": now, "approvedById": actor_id},
            session=session, now=now
        )

        await self.audit.log_action(
            actor_id, "PAYMENT_CONFIRMED", "PAYMENT", payment_id,
            amount=amount, session=session, now=now
        )

        logger.info(f"[PAYMENT] Payment {payment_id} confirmed by user:{actor_id} amount={amount}")
        return updated

    async def release_payment(self, payment_id: int, actor_id: int, session=None) -> Dict[str, Any]:
        """APPROVED -> RELEASED, crediting the seller's wallet."""
        now = datetime.utcnow()
        payment = await self._load_payment(payment_id, session=session)

        if payment.get("status") != PaymentStatus.APPROVED.value:
            raise InvalidStateError("Payment must be approved before release")

        amount = require_cents(payment, "amount", "Payment")
        seller_id = require_positive_id(payment, "sellerId", "Payment")

        seller = await self.db.users.find_one({"id": seller_id}, {"_id": 1}, session=session)
        if not seller:
            raise NotFoundError("Seller not found")

        updated = await compare_and_swap(
            PAYMENT_MACHINE, self.db.payments, payment, PaymentStatus.RELEASED,
            "Payment cannot be released",
            extra_set={"releasedAt": now, "releasedById": actor_id},
            session=session, now=now
        )

        await self.db.users.update_one(
            {"id": seller_id},
            {"$inc": {"walletBalance": amount}, "$set": {"updatedAt": now}},
            session=session
        )

        await self.audit.log_action(
            actor_id, "PAYMENT_RELEASED", "PAYMENT", payment_id,
            amount=amount, session=session, now=now
        )

        logger.info(
            f"[PAYMENT] Payment {payment_id} released by user:{actor_id}: "
            f"{amount} cents to seller:{seller_id}"
        )
        return updated

    # =========================================================================
    # WALLET
    # =========================================================================

    async def get_wallet(self, user_id: int) -> Dict[str, Any]:
        user = await self.db.users.find_one({"id": user_id}, {"walletBalance": 1})
        if not user:
            raise NotFoundError("User not found")
        return user

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    async def list_withdrawals(
        self, status: Optional[str] = None, seller_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        if seller_id is not None:
            query["sellerId"] = seller_id
        return await self.db.withdrawal_requests.find(query).sort("id", -1).to_list(length=None)

    async def request_withdrawal(self, seller_id: int, amount: int, session=None) -> Dict[str, Any]:
        now = datetime.utcnow()
        if amount <= 0:
            raise BadRequestError("Amount must be positive")

        user = await self.db.users.find_one({"id": seller_id}, session=session)
        if not user:
            raise NotFoundError("User not found")

        balance = require_cents(user, "walletBalance", "User")
        if amount > balance:
            raise BadRequestError("Insufficient wallet balance")

        # Balance-gated debit: matches nothing if a concurrent request spent the funds
        result = await self.db.users.update_one(
            {"id": seller_id, "walletBalance": {"$gte": amount}},
            {"$inc": {"walletBalance": -amount}, "$set": {"updatedAt": now}},
            session=session
        )
        if result.modified_count != 1:
            raise BadRequestError("Insufficient wallet balance")

        withdrawal_id = await self.sequences.next_id("withdrawal_requests", session=session)
        withdrawal = {
            "id": withdrawal_id,
            "sellerId": seller_id,
            "amount": amount,
            "status": WithdrawalStatus.PENDING.value,
            "reviewedById": None,
            "reviewedAt": None,
            "createdAt": now,
            "updatedAt": now,
        }
        await self.db.withdrawal_requests.insert_one(withdrawal, session=session)

        await self.audit.log_action(
            seller_id, "WITHDRAWAL_REQUESTED", "WITHDRAWAL", withdrawal_id,
            amount=amount, session=session, now=now
        )

        logger.info(f"[WITHDRAWAL] Request {withdrawal_id} by seller:{seller_id} amount={amount}")
        return withdrawal

    async def _load_withdrawal(self, withdrawal_id: int, session=None) -> Dict[str, Any]:
        withdrawal = await self.db.withdrawal_requests.find_one({"id": withdrawal_id}, session=session)
        if not withdrawal:
            raise NotFoundError("Withdrawal request not found")
        return withdrawal

    async def approve_withdrawal(self, withdrawal_id: int, actor_id: int, session=None) -> Dict[str, Any]:
        """PENDING -> APPROVED. Funds were debited at request time."""
        now = datetime.utcnow()
        withdrawal = await self._load_withdrawal(withdrawal_id, session=session)
        amount = require_cents(withdrawal, "amount", "Withdrawal")

        updated = await compare_and_swap(
            WITHDRAWAL_MACHINE, self.db.withdrawal_requests, withdrawal, WithdrawalStatus.APPROVED,
            "Withdrawal cannot be approved",
            extra_set={"reviewedById": actor_id, "reviewedAt": now},
            session=session, now=now
        )

        await self.audit.log_action(
            actor_id, "WITHDRAWAL_APPROVED", "WITHDRAWAL", withdrawal_id,
            amount=amount, session=session, now=now
        )

        logger.info(f"[WITHDRAWAL] Request {withdrawal_id} approved by user:{actor_id}")
        return updated

    async def reject_withdrawal(self, withdrawal_id: int, actor_id: int, session=None) -> Dict[str, Any]:
        """PENDING -> REJECTED, refunding the held amount."""
        now = datetime.utcnow()
        withdrawal = await self._load_withdrawal(withdrawal_id, session=session)
        amount = require_cents(withdrawal, "amount", "Withdrawal")
        seller_id = require_positive_id(withdrawal, "sellerId", "Withdrawal")

        updated = await compare_and_swap(
            WITHDRAWAL_MACHINE, self.db.withdrawal_requests, withdrawal, WithdrawalStatus.REJECTED,
            "Withdrawal cannot be rejected",
            extra_set={"reviewedById": actor_id, "reviewedAt": now},
            session=session, now=now
        )

        refund = await self.db.users.update_one(
            {"id": seller_id},
            {"$inc": {"walletBalance": amount}, "$set": {"updatedAt": now}},
            session=session
        )
        if refund.matched_count != 1:
            raise NotFoundError("Seller not found")

        await self.audit.log_action(
            actor_id, "WITHDRAWAL_REJECTED", "WITHDRAWAL", withdrawal_id,
            amount=amount, session=session, now=now
        )

        logger.info(f"[WITHDRAWAL] Request {withdrawal_id} rejected, {amount} cents refunded to seller:{seller_id}")
        return updated
