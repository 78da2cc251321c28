"""
Workflow Core Modules
"""
from .invariants import (
    InvariantViolationError,
    is_cents,
    is_positive_int,
    require_cents,
    require_positive_id
)

from .sequence import SequenceGenerator

from .state_machine import (
    StateMachine,
    StateMachineError,
    InvalidTransitionError,
    state_machine_registry
)

from .transactions import (
    TransactionRunner,
    SessionlessRunner
)

from .workflow import (
    compare_and_swap,
    record_latest_decision
)

__all__ = [
    # Invariants
    'InvariantViolationError',
    'is_cents',
    'is_positive_int',
    'require_cents',
    'require_positive_id',
    # Sequences
    'SequenceGenerator',
    # State Machines
    'StateMachine',
    'StateMachineError',
    'InvalidTransitionError',
    'state_machine_registry',
    # Transactions
    'TransactionRunner',
    'SessionlessRunner',
    # Workflow helpers
    'compare_and_swap',
    'record_latest_decision',
]
