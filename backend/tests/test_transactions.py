"""
Transactional executor tests using a recording fake client.
"""
import pytest
from fastapi import HTTPException

from core.invariants import InvariantViolationError
from core.transactions import SessionlessRunner, TransactionRunner
from errors import InternalServerError, NotFoundError


class FakeTransaction:
    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        self.session.events.append("start")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.session.events.append("abort" if exc_type else "commit")
        return False


class FakeSession:
    def __init__(self):
        self.events = []

    def start_transaction(self):
        return FakeTransaction(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.events.append("end")
        return False


class FakeClient:
    def __init__(self):
        self.session = FakeSession()

    async def start_session(self):
        return self.session


class TestTransactionRunner:
    """Commit, abort and error conversion"""

    async def test_commits_on_success(self):
        client = FakeClient()
        runner = TransactionRunner(client)

        async def workflow(session):
            assert session is client.session
            return "done"

        assert await runner.run(workflow) == "done"
        assert client.session.events == ["start", "commit", "end"]

    async def test_api_error_aborts_and_propagates(self):
        client = FakeClient()
        runner = TransactionRunner(client)

        async def workflow(session):
            raise NotFoundError("Payment not found")

        with pytest.raises(NotFoundError) as exc_info:
            await runner.run(workflow)

        assert exc_info.value.detail == "Payment not found"
        assert client.session.events == ["start", "abort", "end"]

    async def test_unexpected_error_becomes_generic_500(self):
        client = FakeClient()
        runner = TransactionRunner(client)

        async def workflow(session):
            raise RuntimeError("connection reset with secret details")

        with pytest.raises(InternalServerError) as exc_info:
            await runner.run(workflow)

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == "Internal Server Error"
        assert "abort" in client.session.events

    async def test_invariant_violation_becomes_500(self):
        runner = TransactionRunner(FakeClient())

        async def workflow(session):
            raise InvariantViolationError("INVALID_AMOUNT", "Payment amount must be a non-negative integer")

        with pytest.raises(InternalServerError):
            await runner.run(workflow)


class TestSessionlessRunner:
    """Same error contract without a session"""

    async def test_passes_none_session(self):
        seen = []

        async def workflow(session):
            seen.append(session)
            return 42

        assert await SessionlessRunner().run(workflow) == 42
        assert seen == [None]

    async def test_http_exceptions_pass_through(self):
        async def workflow(session):
            raise HTTPException(status_code=403, detail="Forbidden")

        with pytest.raises(HTTPException) as exc_info:
            await SessionlessRunner().run(workflow)
        assert exc_info.value.status_code == 403

    async def test_other_errors_become_500(self):
        async def workflow(session):
            raise KeyError("sellerId")

        with pytest.raises(InternalServerError):
            await SessionlessRunner().run(workflow)
