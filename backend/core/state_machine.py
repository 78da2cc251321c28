"""
ENTITY STATE MACHINES

Table-driven transition rules for every stateful entity, plus the
compare-and-swap primitive every workflow uses to move a document along
its graph:
- Status enums per entity
- Edge registration and validation
- Conditional update gated on the expected current status
- Invalid transition rejection

Usage:
    updated = await PAYMENT_MACHINE.transition(
        db.payments, payment_doc, PaymentStatus.RELEASED,
        extra_set={"releasedById": actor_id}, session=session
    )
    if updated is None:
        # a concurrent transition won; nothing was written
        ...
"""

from typing import Dict, Any, Optional, List, Set, Tuple
from datetime import datetime
from enum import Enum
import logging

from pymongo import ReturnDocument

logger = logging.getLogger(__name__)


# =============================================================================
# STATUS TYPES
# =============================================================================

class StudySheetStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class LeaseStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    TRANSFERRED = "TRANSFERRED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    RELEASED = "RELEASED"


class WithdrawalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ReviewStatus(str, Enum):
    VISIBLE = "VISIBLE"
    UNDER_REVIEW = "UNDER_REVIEW"
    REMOVED = "REMOVED"


class ReportStatus(str, Enum):
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class ReportTargetType(str, Enum):
    REVIEW = "REVIEW"
    TEACHER_REVIEW = "TEACHER_REVIEW"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StateMachineError(Exception):
    """Base exception for state machine errors."""
    pass


class InvalidTransitionError(StateMachineError):
    """Raised when attempting an invalid state transition."""
    def __init__(self, entity: str, from_state: str, to_state: str, allowed: List[str] = None):
        self.entity = entity
        self.from_state = from_state
        self.to_state = to_state
        self.allowed = allowed or []

        allowed_str = f" Allowed transitions from '{from_state}': {self.allowed}" if self.allowed else ""
        message = f"Invalid transition for {entity}: '{from_state}' -> '{to_state}'.{allowed_str}"
        super().__init__(message)


def _value(state) -> str:
    return state.value if isinstance(state, Enum) else state


# =============================================================================
# STATE MACHINE
# =============================================================================

class StateMachine:
    """
    Directed transition graph for one entity type.

    States are stored as plain strings in documents; enum members and raw
    strings are accepted interchangeably by every method.
    """

    def __init__(self, entity_name: str, status_field: str = "status"):
        self.entity_name = entity_name
        self.status_field = status_field

        # Edges as (from_state, to_state)
        self._transitions: Set[Tuple[str, str]] = set()
        self._states: Set[str] = set()

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(self, from_state, to_state) -> "StateMachine":
        """Register an edge. Returns self for chaining."""
        src, dst = _value(from_state), _value(to_state)
        key = (src, dst)

        if key in self._transitions:
            logger.warning(
                f"[STATE_MACHINE] Duplicate transition {self.entity_name}: "
                f"'{src}' -> '{dst}'"
            )

        self._transitions.add(key)
        self._states.add(src)
        self._states.add(dst)
        return self

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def get_allowed_transitions(self, from_state) -> List[str]:
        """Valid target states from a given state."""
        src = _value(from_state)
        return sorted(dst for (s, dst) in self._transitions if s == src)

    def sources_for(self, to_state) -> List[str]:
        """States from which `to_state` is reachable in one step."""
        dst = _value(to_state)
        return sorted(src for (src, d) in self._transitions if d == dst)

    def can_transition(self, from_state, to_state) -> bool:
        return (_value(from_state), _value(to_state)) in self._transitions

    def validate_transition(self, from_state, to_state) -> None:
        """Raises InvalidTransitionError if the edge is not registered."""
        if not self.can_transition(from_state, to_state):
            raise InvalidTransitionError(
                entity=self.entity_name,
                from_state=_value(from_state),
                to_state=_value(to_state),
                allowed=self.get_allowed_transitions(from_state)
            )

    def is_terminal(self, state) -> bool:
        return not self.get_allowed_transitions(state)

    # =========================================================================
    # TRANSITION EXECUTION
    # =========================================================================

    async def transition(
        self,
        collection,
        entity_doc: Dict[str, Any],
        to_state,
        extra_set: Optional[Dict[str, Any]] = None,
        session: Any = None,
        now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Compare-and-swap the status field of `entity_doc`.

        The edge is validated against the document's loaded status, then the
        update filter pins that same status so a concurrent transition makes
        this one match zero documents instead of overwriting it.

        Returns:
            The updated document, or None when the precondition was stale.

        Raises:
            InvalidTransitionError: If the edge is not registered
        """
        from_state = entity_doc.get(self.status_field)
        if from_state is None:
            raise StateMachineError(
                f"Entity missing status field: {self.status_field}"
            )

        self.validate_transition(from_state, to_state)

        now = now or datetime.utcnow()
        update_set = {self.status_field: _value(to_state), "updatedAt": now}
        if extra_set:
            update_set.update(extra_set)

        updated = await collection.find_one_and_update(
            {"id": entity_doc["id"], self.status_field: from_state},
            {"$set": update_set},
            return_document=ReturnDocument.AFTER,
            session=session
        )

        if updated is None:
            logger.warning(
                f"[STATE_MACHINE] Stale precondition {self.entity_name}:{entity_doc['id']} "
                f"'{from_state}' -> '{_value(to_state)}'"
            )
            return None

        logger.info(
            f"[STATE_MACHINE] {self.entity_name}:{entity_doc['id']} "
            f"'{from_state}' -> '{_value(to_state)}'"
        )
        return updated

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def get_states(self) -> List[str]:
        return sorted(self._states)

    def __repr__(self):
        return (
            f"StateMachine({self.entity_name}, "
            f"states={len(self._states)}, "
            f"transitions={len(self._transitions)})"
        )


# =============================================================================
# REGISTRY
# =============================================================================

class StateMachineRegistry:
    """Lookup of machines by entity name."""

    def __init__(self):
        self._machines: Dict[str, StateMachine] = {}

    def register(self, machine: StateMachine) -> StateMachine:
        self._machines[machine.entity_name] = machine
        return machine

    def get(self, name: str) -> StateMachine:
        if name not in self._machines:
            raise StateMachineError(f"State machine not found: {name}")
        return self._machines[name]

    def has(self, name: str) -> bool:
        return name in self._machines


state_machine_registry = StateMachineRegistry()


# =============================================================================
# ENTITY GRAPHS
# =============================================================================

STUDY_SHEET_MACHINE = state_machine_registry.register(
    StateMachine("STUDY_SHEET")
    .register(StudySheetStatus.PENDING, StudySheetStatus.APPROVED)
    .register(StudySheetStatus.PENDING, StudySheetStatus.REJECTED)
)

LEASE_LISTING_MACHINE = state_machine_registry.register(
    StateMachine("LEASE_LISTING")
    .register(LeaseStatus.PENDING, LeaseStatus.APPROVED)
    .register(LeaseStatus.PENDING, LeaseStatus.REJECTED)
    .register(LeaseStatus.APPROVED, LeaseStatus.TRANSFERRED)
)

PAYMENT_MACHINE = state_machine_registry.register(
    StateMachine("PAYMENT")
    .register(PaymentStatus.PENDING, PaymentStatus.APPROVED)
    .register(PaymentStatus.APPROVED, PaymentStatus.RELEASED)
)

WITHDRAWAL_MACHINE = state_machine_registry.register(
    StateMachine("WITHDRAWAL")
    .register(WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED)
    .register(WithdrawalStatus.PENDING, WithdrawalStatus.REJECTED)
)


def _review_machine(entity_name: str) -> StateMachine:
    return (
        StateMachine(entity_name)
        .register(ReviewStatus.VISIBLE, ReviewStatus.UNDER_REVIEW)
        .register(ReviewStatus.UNDER_REVIEW, ReviewStatus.VISIBLE)
        .register(ReviewStatus.VISIBLE, ReviewStatus.VISIBLE)
        .register(ReviewStatus.VISIBLE, ReviewStatus.REMOVED)
        .register(ReviewStatus.UNDER_REVIEW, ReviewStatus.REMOVED)
    )


REVIEW_MACHINE = state_machine_registry.register(_review_machine("REVIEW"))
TEACHER_REVIEW_MACHINE = state_machine_registry.register(_review_machine("TEACHER_REVIEW"))

REPORT_MACHINE = state_machine_registry.register(
    StateMachine("REPORT")
    .register(ReportStatus.PENDING, ReportStatus.RESOLVED)
    .register(ReportStatus.PENDING, ReportStatus.REJECTED)
)
