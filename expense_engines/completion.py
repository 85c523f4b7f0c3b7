"""
expense_engines.completion -- Step completion and stop-condition rules.

Responsibility:
    Decide how many approvals complete a step (All / Any / Percentage) and
    whether an approver triggers a workflow-level stop condition.

Architecture position:
    Engines -- pure decision layer, zero I/O.

Invariants enforced:
    - Percentage quorum uses ceiling rounding in Decimal arithmetic:
      3 approvers at 50% need 2 approvals, 1 approver at 1% needs 1.
    - Exhaustive dispatch over ``CompletionType`` and ``StopConditionType``.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import ROUND_CEILING, Decimal

from expense_kernel.domain.expense import (
    CompletionCondition,
    CompletionType,
    StopCondition,
    StopConditionType,
    Workflow,
)


def _required_all(condition: CompletionCondition, approver_count: int) -> int:
    return approver_count


def _required_any(condition: CompletionCondition, approver_count: int) -> int:
    return 1


def _required_percentage(condition: CompletionCondition, approver_count: int) -> int:
    exact = Decimal(approver_count) * Decimal(condition.percentage) / Decimal(100)
    return int(exact.to_integral_value(rounding=ROUND_CEILING))


QUORUM_RULES: dict[CompletionType, Callable[[CompletionCondition, int], int]] = {
    CompletionType.ALL: _required_all,
    CompletionType.ANY: _required_any,
    CompletionType.PERCENTAGE: _required_percentage,
}


def required_approvals(condition: CompletionCondition, approver_count: int) -> int:
    """Number of distinct approvals that complete a step.

    Raises:
        ValueError: if the condition kind has no quorum rule.
    """
    rule = QUORUM_RULES.get(condition.kind)
    if rule is None:
        raise ValueError(f"Unhandled completion type: {condition.kind!r}")
    return rule(condition, approver_count)


def is_step_complete(
    condition: CompletionCondition,
    approved_count: int,
    approver_count: int,
) -> bool:
    """True when ``approved_count`` meets the step's quorum."""
    return approved_count >= required_approvals(condition, approver_count)


def _specific_approver_fires(condition: StopCondition, approver_id: str) -> bool:
    return condition.approver_id == approver_id


STOP_RULES: dict[StopConditionType, Callable[[StopCondition, str], bool]] = {
    StopConditionType.SPECIFIC_APPROVER: _specific_approver_fires,
}


def stop_condition_fires(workflow: Workflow, approver_id: str) -> StopCondition | None:
    """Return the first stop condition an approval by ``approver_id`` triggers."""
    for condition in workflow.stop_conditions:
        rule = STOP_RULES.get(condition.kind)
        if rule is None:
            raise ValueError(f"Unhandled stop condition type: {condition.kind!r}")
        if rule(condition, approver_id):
            return condition
    return None
