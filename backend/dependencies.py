"""
FastAPI dependencies shared by the routers.

Tests override get_database, get_transaction_runner and get_cooldown_store;
everything else is derived from them.
"""
from fastapi import Depends

from audit_service import AuditService
from core.catalog_service import CatalogService
from core.marketplace_service import MarketplaceService
from core.moderation_service import ModerationService
from core.payment_service import PaymentService
from core.rate_limit import InMemoryCooldownStore
from core.report_service import ReportService
from core.review_service import ReviewService
from core.sequence import SequenceGenerator
from database import get_database, get_transaction_runner

# Process-local; swap for a shared store when running several instances
_cooldown_store = InMemoryCooldownStore()


def get_cooldown_store():
    return _cooldown_store


class Services:
    """Per-request wiring of the workflow services around one database handle."""

    def __init__(self, db):
        self.db = db
        self.sequences = SequenceGenerator(db)
        self.audit = AuditService(db, self.sequences)
        self.catalog = CatalogService(db, self.sequences)
        self.moderation = ModerationService(db, self.sequences, self.audit, self.catalog)
        self.payments = PaymentService(db, self.sequences, self.audit)
        self.reports = ReportService(db, self.sequences, self.audit)
        self.reviews = ReviewService(db, self.sequences, self.catalog)
        self.marketplace = MarketplaceService(db, self.sequences, self.audit, self.catalog)


def get_services(db=Depends(get_database)) -> Services:
    return Services(db)


__all__ = [
    "Services",
    "get_services",
    "get_database",
    "get_transaction_runner",
    "get_cooldown_store",
]
