"""
ATOMIC SEQUENCE GENERATOR

Application-assigned integer ids (the entity `id` field, never `_id`):
1. findOneAndUpdate with upsert + $inc, returning the document AFTER update
2. Counter created at 1 on first use
3. Bound to the caller's session so an aborted transaction also rolls back
   the increment (gaps are acceptable, reuse is not)
"""

from typing import Optional
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

logger = logging.getLogger(__name__)


class SequenceGenerator:
    """
    Monotonic per-name id source backed by the `counters` collection.

    Counter documents look like {"_id": <sequence name>, "value": <last id>}.
    Concurrency safety comes from the server-side atomic $inc; there is no
    read-then-write anywhere in this class.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.counters

    async def next_id(self, sequence_name: str, session=None) -> int:
        """Increment and return the counter for `sequence_name`."""
        result = await self.collection.find_one_and_update(
            {"_id": sequence_name},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session
        )

        value = result["value"] if result else 1
        logger.debug(f"[SEQUENCE] {sequence_name} -> {value}")
        return value

    async def current_value(self, sequence_name: str, session=None) -> Optional[int]:
        """Last issued value, or None if the sequence was never used."""
        doc = await self.collection.find_one({"_id": sequence_name}, session=session)
        return doc["value"] if doc else None
