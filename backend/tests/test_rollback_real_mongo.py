"""
Rollback against a real replica set.

mongomock has no sessions, so atomicity is only checked when MONGO_TEST_URL
points at a replica set. Without it the module is skipped.

Local run (single-node replica set; transactions need one):
    docker run -d --name mongo-rs -p 27017:27017 mongo:7 --replSet rs0
    docker exec mongo-rs mongosh --quiet --eval "rs.initiate()"
    MONGO_TEST_URL="mongodb://localhost:27017/?replicaSet=rs0&directConnection=true" pytest backend/tests/test_rollback_real_mongo.py

In CI, start the same image as a service container with --replSet rs0,
run rs.initiate() once it accepts connections, then export MONGO_TEST_URL
before the pytest step. Each test creates and drops its own database.
"""
import os
import uuid

import pytest
from motor.motor_asyncio import AsyncIOMotorClient

from audit_service import AuditService
from core.payment_service import PaymentService
from core.sequence import SequenceGenerator
from core.transactions import TransactionRunner
from errors import InternalServerError
from tests.conftest import insert_payment, insert_user

MONGO_TEST_URL = os.environ.get("MONGO_TEST_URL")

pytestmark = pytest.mark.skipif(not MONGO_TEST_URL, reason="MONGO_TEST_URL not set")


class FailingAuditService(AuditService):
    async def log_action(self, *args, **kwargs):
        raise RuntimeError("audit store unavailable")


@pytest.fixture
async def real_db():
    client = AsyncIOMotorClient(MONGO_TEST_URL)
    name = f"unispot_rollback_{uuid.uuid4().hex[:8]}"
    db = client[name]
    # Collections must exist before use inside a transaction on older servers
    for collection in ("users", "payments", "audit_logs", "counters"):
        await db.create_collection(collection)
    yield client, db
    await client.drop_database(name)
    client.close()


class TestReleaseRollback:
    """A failed audit write undoes the release and the wallet credit"""

    async def test_release_rolls_back_when_audit_fails(self, real_db):
        client, db = real_db
        await insert_user(db, 1, wallet_balance=100)
        await insert_payment(db, status="APPROVED", amount=900)

        sequences = SequenceGenerator(db)
        payments = PaymentService(db, sequences, FailingAuditService(db, sequences))

        with pytest.raises(InternalServerError):
            await TransactionRunner(client).run(lambda s: payments.release_payment(1, 9, session=s))

        assert (await db.payments.find_one({"id": 1}))["status"] == "APPROVED"
        assert (await db.users.find_one({"id": 1}))["walletBalance"] == 100
        assert await db.audit_logs.count_documents({}) == 0

    async def test_release_commits_when_audit_succeeds(self, real_db):
        client, db = real_db
        await insert_user(db, 1, wallet_balance=100)
        await insert_payment(db, status="APPROVED", amount=900)

        sequences = SequenceGenerator(db)
        payments = PaymentService(db, sequences, AuditService(db, sequences))

        await TransactionRunner(client).run(lambda s: payments.release_payment(1, 9, session=s))

        assert (await db.payments.find_one({"id": 1}))["status"] == "RELEASED"
        assert (await db.users.find_one({"id": 1}))["walletBalance"] == 1000
