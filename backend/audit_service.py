from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

from core.sequence import SequenceGenerator

logger = logging.getLogger(__name__)


class AuditService:
    """Service for append-only audit logging"""

    def __init__(self, db: AsyncIOMotorDatabase, sequences: SequenceGenerator = None):
        self.db = db
        self.collection = db.audit_logs
        self.sequences = sequences or SequenceGenerator(db)

    async def log_action(
        self,
        actor_id: int,
        action: str,
        entity_type: str,
        entity_id: int,
        amount: Optional[int] = None,
        session=None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Append one audit entry (INSERT ONLY).

        Runs inside the caller's session; a failure here aborts the
        surrounding workflow so a state change is never committed without
        its audit record.
        """
        audit_id = await self.sequences.next_id("audit_logs", session=session)
        audit_entry = {
            "id": audit_id,
            "actorId": actor_id,
            "action": action,
            "entityType": entity_type,
            "entityId": entity_id,
            "createdAt": now or datetime.utcnow()
        }
        if amount is not None:
            audit_entry["amount"] = amount

        await self.collection.insert_one(audit_entry, session=session)
        logger.info(f"[AUDIT] {action} on {entity_type}:{entity_id} by user:{actor_id}")
        return audit_entry

    async def get_audit_logs(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Retrieve audit logs, newest first (READ ONLY)"""
        query = {}

        if entity_type:
            query["entityType"] = entity_type
        if entity_id is not None:
            query["entityId"] = entity_id

        cursor = self.collection.find(query).sort("id", -1).limit(limit)
        return await cursor.to_list(length=limit)
