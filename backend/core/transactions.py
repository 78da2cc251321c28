"""
TRANSACTIONAL EXECUTOR

Atomicity boundary for every multi-document workflow:
1. One session per workflow invocation, always ended
2. Commit on normal return, abort on any exception
3. API errors re-raised unchanged after rollback
4. Unexpected failures converted to a generic 500 (details logged, never returned)

No retry on transient write conflicts: the caller retries the whole request.
"""

from typing import Any, Awaitable, Callable, TypeVar
import logging

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorClient

from errors import InternalServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Workflow signature: async def fn(session) -> T
Workflow = Callable[[Any], Awaitable[T]]


class TransactionRunner:
    """
    Runs a workflow inside a MongoDB multi-document transaction.

    Requires a replica set (or sharded cluster) deployment.
    """

    def __init__(self, client: AsyncIOMotorClient):
        self.client = client

    async def run(self, fn: Workflow) -> T:
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    # Exiting this block commits; an exception aborts.
                    return await fn(session)
        except HTTPException as e:
            logger.info(f"[TRANSACTION] Rolled back: {e.status_code} {e.detail}")
            raise
        except Exception as e:
            logger.error(f"[TRANSACTION ERROR] {type(e).__name__}: {str(e)}")
            raise InternalServerError("Internal Server Error")


class SessionlessRunner:
    """
    Runs a workflow without a session.

    For standalone mongod development instances and the in-memory test
    database; provides the same error conversion but no rollback.
    """

    async def run(self, fn: Workflow) -> T:
        try:
            return await fn(None)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"[TRANSACTION ERROR] {type(e).__name__}: {str(e)}")
            raise InternalServerError("Internal Server Error")
