"""
STORED-DOCUMENT INVARIANTS

Money is integer cents, ids are positive integers. A loaded document that
breaks either rule is corrupt; workflows refuse to act on it (500) rather
than propagate the damage into a wallet.
"""

from typing import Any, Dict
import logging

logger = logging.getLogger(__name__)


class InvariantViolationError(Exception):
    """Raised when a stored document violates a data invariant"""
    def __init__(self, violation_type: str, message: str, details: dict = None):
        self.violation_type = violation_type
        self.message = message
        self.details = details or {}
        super().__init__(message)


def is_positive_int(value: Any) -> bool:
    # bool is an int subclass; never accept it as an id or amount
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def is_cents(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def require_cents(doc: Dict[str, Any], field: str, entity: str) -> int:
    value = doc.get(field)
    if not is_cents(value):
        logger.error(f"[INVARIANT] {entity}:{doc.get('id')} has invalid {field}={value!r}")
        raise InvariantViolationError(
            violation_type="INVALID_AMOUNT",
            message=f"{entity} {field} must be a non-negative integer",
            details={"entity": entity, "id": doc.get("id"), "field": field}
        )
    return value


def require_positive_id(doc: Dict[str, Any], field: str, entity: str) -> int:
    value = doc.get(field)
    if not is_positive_int(value):
        logger.error(f"[INVARIANT] {entity}:{doc.get('id')} has invalid {field}={value!r}")
        raise InvariantViolationError(
            violation_type="INVALID_REFERENCE",
            message=f"{entity} {field} must be a positive integer",
            details={"entity": entity, "id": doc.get("id"), "field": field}
        )
    return value
