"""
Shared building blocks for transactional workflows.

compare_and_swap maps the state machine's outcomes onto API errors:
an unregistered edge or a stale precondition both leave the document
untouched and surface as InvalidStateError.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from core.state_machine import InvalidTransitionError, StateMachine
from errors import InvalidStateError


async def compare_and_swap(
    machine: StateMachine,
    collection,
    doc: Dict[str, Any],
    to_state,
    message: str,
    extra_set: Optional[Dict[str, Any]] = None,
    session=None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    try:
        updated = await machine.transition(
            collection, doc, to_state, extra_set=extra_set, session=session, now=now
        )
    except InvalidTransitionError:
        raise InvalidStateError(message)

    if updated is None:
        raise InvalidStateError(message)
    return updated


async def record_latest_decision(
    db,
    sequences,
    collection_name: str,
    key_field: str,
    entity_id: int,
    reviewer_id: int,
    decision: str,
    reason: Optional[str],
    session=None,
    now: Optional[datetime] = None,
) -> None:
    """
    Upsert the single decision record kept per moderated entity.

    The id is drawn only when the record is first created; later decisions
    overwrite reviewer/decision/reason in place.
    """
    now = now or datetime.utcnow()
    collection = db[collection_name]

    existing = await collection.find_one({key_field: entity_id}, session=session)
    on_insert = {"createdAt": now}
    if existing is None:
        on_insert["id"] = await sequences.next_id(collection_name, session=session)

    await collection.update_one(
        {key_field: entity_id},
        {
            "$setOnInsert": on_insert,
            "$set": {
                "reviewerId": reviewer_id,
                "decision": decision,
                "reason": reason,
                "updatedAt": now,
            },
        },
        upsert=True,
        session=session,
    )
