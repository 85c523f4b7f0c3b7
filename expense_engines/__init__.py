"""
Module: expense_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    approval decision engines.  This is the canonical import surface for
    higher layers (expense_services).

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import expense_kernel.domain, expense_kernel.exceptions and
    expense_kernel.logging_config (and sibling engine modules).
    MUST NOT import expense_services, expense_config or the ORM.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``; the action timestamp
      is passed in by the caller.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    ``start_expense`` and ``apply_action`` are traced via ``@traced_engine``
    (see ``expense_engines.tracer``), emitting EXPENSE_ENGINE_TRACE log
    records with an input fingerprint and the outcome branch taken.

Usage:
    from expense_engines import apply_action, resolve_step_approvers
"""

from expense_engines.approvers import (
    APPROVER_RESOLVERS,
    find_unresolved_references,
    resolve_step_approvers,
)
from expense_engines.completion import (
    QUORUM_RULES,
    STOP_RULES,
    is_step_complete,
    required_approvals,
    stop_condition_fires,
)
from expense_engines.tracer import compute_input_fingerprint, traced_engine
from expense_engines.workflow import (
    apply_action,
    check_action_allowed,
    start_expense,
)

__all__ = [
    "APPROVER_RESOLVERS",
    "QUORUM_RULES",
    "STOP_RULES",
    "apply_action",
    "check_action_allowed",
    "compute_input_fingerprint",
    "find_unresolved_references",
    "is_step_complete",
    "required_approvals",
    "resolve_step_approvers",
    "start_expense",
    "stop_condition_fires",
    "traced_engine",
]
