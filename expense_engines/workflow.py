"""
expense_engines.workflow -- Workflow Execution Engine.

Responsibility:
    Compute an expense's initial state from its workflow, and compute the
    next state after one approval or rejection by a current approver.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import expense_kernel.domain types, expense_kernel.exceptions,
    expense_kernel.logging_config and sibling engine modules.

State machine:
    Pending(i) for i in [0, len(steps))  --approve, quorum met-->  Pending(i+1)
    Pending(i)  --approve, quorum met at last step-->              Approved
    Pending(i)  --approve by a stop-condition approver-->          Approved
    Pending(i)  --reject-->                                        Rejected
    Approved and Rejected are terminal.

Invariants enforced:
    - Preconditions (Pending status, actor among the current approvers)
      are checked before any new value is built; a refused action leaves
      no trace in the returned data.
    - The audit entry is appended first, before the decision is evaluated,
      so every accepted action is in history whatever the outcome.
    - The approved count is recomputed from the full history on every
      call, never carried as a counter.
    - current_step_index never decreases.
    - Terminal results always have ``current_approver_ids == ()``.

Failure modes:
    - ``ExpenseNotPendingError`` / ``IneligibleApproverError`` /
      ``InvalidDecisionError`` (all ``InvalidActionError``) on refused
      actions.
    - Stale step index (workflow edited after submission): auto-approve
      with a ``DataIntegrityWarning``; raises ``DataIntegrityError``
      instead when ``strict=True``.
    - Unowned step (no resolvable approvers) at creation or on advance:
      auto-approve with a ``ConfigurationWarning``, always logged.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

from expense_engines.approvers import (
    find_unresolved_references,
    resolve_step_approvers,
)
from expense_engines.completion import is_step_complete, stop_condition_fires
from expense_engines.tracer import traced_engine
from expense_kernel.domain.expense import (
    ActionOutcome,
    ActionOutcomeCode,
    ApprovalAction,
    ConfigurationWarning,
    DataIntegrityWarning,
    Decision,
    Expense,
    ExpenseCreation,
    ExpenseDraft,
    ExpenseStatus,
    User,
    Workflow,
    WorkflowAdvisory,
    WorkflowStep,
)
from expense_kernel.exceptions import (
    DataIntegrityError,
    ExpenseNotPendingError,
    IneligibleApproverError,
    InvalidDecisionError,
)
from expense_kernel.logging_config import get_logger

logger = get_logger("engines.workflow")


# =========================================================================
# Helpers
# =========================================================================


def _unresolved_reference_warnings(
    workflow: Workflow,
    step_index: int,
    step: WorkflowStep | None,
    company_users: Sequence[User],
) -> tuple[WorkflowAdvisory, ...]:
    missing = find_unresolved_references(step, company_users)
    if not missing:
        return ()
    warning = DataIntegrityWarning(
        message="Step names approvers unknown to the user directory",
        context={
            "workflow_id": workflow.id,
            "step_index": step_index,
            "user_ids": list(missing),
        },
    )
    logger.warning(
        "unresolved_approver_reference",
        extra={
            "workflow_id": workflow.id,
            "step_index": step_index,
            "user_ids": list(missing),
        },
    )
    return (warning,)


def _unowned_step_warning(
    workflow: Workflow,
    step_index: int,
    expense_id: str,
) -> ConfigurationWarning:
    logger.warning(
        "unowned_step_auto_approved",
        extra={
            "expense_id": expense_id,
            "workflow_id": workflow.id,
            "step_index": step_index,
        },
    )
    return ConfigurationWarning(
        message=(
            "No approver could be determined for this step; the expense was "
            "auto-approved. Check the workflow configuration."
        ),
        context={
            "expense_id": expense_id,
            "workflow_id": workflow.id,
            "step_index": step_index,
        },
    )


def _finish(
    expense: Expense,
    status: ExpenseStatus,
    outcome: ActionOutcomeCode,
    warnings: tuple[WorkflowAdvisory, ...] = (),
) -> ActionOutcome:
    return ActionOutcome(
        expense=replace(expense, status=status, current_approver_ids=()),
        outcome=outcome,
        warnings=warnings,
    )


def _coerce_decision(expense: Expense, actor_id: str, decision: object) -> Decision:
    if isinstance(decision, Decision):
        return decision
    try:
        return Decision(decision)
    except ValueError:
        raise InvalidDecisionError(expense.id, actor_id, str(decision)) from None


def check_action_allowed(
    expense: Expense,
    workflow: Workflow,
    submitter: User,
    acting_user: User,
    company_users: Sequence[User],
    verify_with_resolver: bool = True,
) -> None:
    """Raise an ``InvalidActionError`` if ``acting_user`` may not act now.

    The actor must be Pending-listed in ``current_approver_ids``.  With
    ``verify_with_resolver`` the actor must also belong to the freshly
    resolved approver set of the current step (when that step exists),
    so a stored approver list is never trusted on its own.
    """
    if expense.status != ExpenseStatus.PENDING:
        raise ExpenseNotPendingError(expense.id, acting_user.id, expense.status.value)

    if acting_user.id not in expense.current_approver_ids:
        raise IneligibleApproverError(
            expense.id, acting_user.id, expense.current_step_index,
        )

    if verify_with_resolver:
        step = workflow.step_at(expense.current_step_index)
        if step is not None:
            resolved = resolve_step_approvers(step, submitter, company_users)
            if acting_user.id not in resolved:
                raise IneligibleApproverError(
                    expense.id, acting_user.id, expense.current_step_index,
                )


# =========================================================================
# Initial state
# =========================================================================


@traced_engine(
    "workflow.start_expense",
    "1.0",
    fingerprint_fields=("draft", "workflow"),
    summarize=lambda creation: creation.expense.status.value,
)
def start_expense(
    *,
    expense_id: str,
    draft: ExpenseDraft,
    workflow: Workflow,
    submitter: User,
    company_users: Sequence[User],
) -> ExpenseCreation:
    """Compute the initial state of a new expense.

    The expense starts Pending at step 0 with the step's resolved
    approvers.  When step 0 does not exist or resolves to no approvers,
    the expense is created Approved with an empty history and a
    ``ConfigurationWarning``.
    """
    first_step = workflow.step_at(0)
    approvers = resolve_step_approvers(first_step, submitter, company_users)
    warnings = _unresolved_reference_warnings(workflow, 0, first_step, company_users)

    expense = Expense(
        id=expense_id,
        user_id=submitter.id,
        amount=draft.amount,
        currency=draft.currency,
        workflow_id=workflow.id,
        status=ExpenseStatus.PENDING,
        current_step_index=0,
        current_approver_ids=approvers,
        history=(),
        expense_date=draft.expense_date,
        description=draft.description,
        category=draft.category,
        receipt_url=draft.receipt_url,
    )

    if not approvers:
        warnings = warnings + (_unowned_step_warning(workflow, 0, expense_id),)
        return ExpenseCreation(
            expense=replace(expense, status=ExpenseStatus.APPROVED),
            auto_approved=True,
            warnings=warnings,
        )

    logger.info(
        "expense_started",
        extra={
            "expense_id": expense_id,
            "workflow_id": workflow.id,
            "approver_ids": list(approvers),
        },
    )
    return ExpenseCreation(expense=expense, warnings=warnings)


# =========================================================================
# Transition
# =========================================================================


@traced_engine(
    "workflow.apply_action",
    "1.0",
    fingerprint_fields=("expense", "workflow", "acting_user", "decision"),
    summarize=lambda outcome: outcome.outcome.value,
)
def apply_action(
    *,
    expense: Expense,
    workflow: Workflow,
    submitter: User,
    acting_user: User,
    decision: Decision | str,
    company_users: Sequence[User],
    acted_at: datetime,
    comment: str = "",
    strict: bool = False,
    verify_with_resolver: bool = True,
) -> ActionOutcome:
    """Apply one approval or rejection to a pending expense.

    Args:
        expense: Current snapshot of the expense.
        workflow: The workflow referenced by ``expense.workflow_id``.
        submitter: The expense's submitter.
        acting_user: The approver submitting the decision.
        decision: ``Decision.APPROVED`` or ``Decision.REJECTED``.
        company_users: Every user of the submitter's company.
        acted_at: Timestamp recorded on the history entry.
        comment: Optional free-text comment.
        strict: Raise instead of auto-approving on a stale step index.
        verify_with_resolver: Re-check eligibility against the resolver.

    Returns:
        ActionOutcome with the new expense snapshot (same ``version``; the
        store bumps it on save), the branch taken and any advisories.

    Raises:
        InvalidActionError: precondition violated; nothing was applied.
        DataIntegrityError: stale step index while ``strict`` is set.
    """
    decision = _coerce_decision(expense, acting_user.id, decision)
    check_action_allowed(
        expense, workflow, submitter, acting_user, company_users,
        verify_with_resolver=verify_with_resolver,
    )

    # Audit entry goes in first, whatever the outcome below
    action = ApprovalAction(
        approver_id=acting_user.id,
        approver_name=acting_user.name,
        status=decision,
        comment=comment,
        timestamp=acted_at,
    )
    history = expense.history + (action,)
    updated = replace(expense, history=history)

    if decision == Decision.REJECTED:
        return _finish(updated, ExpenseStatus.REJECTED, ActionOutcomeCode.REJECTED)

    stop = stop_condition_fires(workflow, acting_user.id)
    if stop is not None:
        logger.info(
            "stop_condition_fired",
            extra={
                "expense_id": expense.id,
                "approver_id": acting_user.id,
                "stop_condition_id": stop.id,
            },
        )
        return _finish(updated, ExpenseStatus.APPROVED, ActionOutcomeCode.STOP_CONDITION)

    step_index = expense.current_step_index
    step = workflow.step_at(step_index)
    if step is None:
        reason = (
            f"current step index {step_index} is outside the workflow's "
            f"{len(workflow.steps)} step(s)"
        )
        if strict:
            logger.error(
                "stale_step_index",
                extra={"expense_id": expense.id, "workflow_id": workflow.id,
                       "step_index": step_index},
            )
            raise DataIntegrityError(expense.id, workflow.id, reason)
        logger.warning(
            "stale_step_index_auto_approved",
            extra={"expense_id": expense.id, "workflow_id": workflow.id,
                   "step_index": step_index},
        )
        warning = DataIntegrityWarning(
            message=f"Expense auto-approved: {reason}",
            context={
                "expense_id": expense.id,
                "workflow_id": workflow.id,
                "step_index": step_index,
            },
        )
        return _finish(
            updated, ExpenseStatus.APPROVED, ActionOutcomeCode.STALE_STEP_INDEX,
            (warning,),
        )

    step_approvers = resolve_step_approvers(step, submitter, company_users)
    approved_ids = {
        entry.approver_id
        for entry in history
        if entry.status == Decision.APPROVED and entry.approver_id in step_approvers
    }

    if not is_step_complete(step.completion, len(approved_ids), len(step_approvers)):
        remaining = tuple(
            uid for uid in expense.current_approver_ids if uid != acting_user.id
        )
        return ActionOutcome(
            expense=replace(updated, current_approver_ids=remaining),
            outcome=ActionOutcomeCode.STEP_PENDING,
        )

    next_index = step_index + 1
    next_step = workflow.step_at(next_index)
    if next_step is None:
        return _finish(
            updated, ExpenseStatus.APPROVED, ActionOutcomeCode.WORKFLOW_COMPLETED,
        )

    next_approvers = resolve_step_approvers(next_step, submitter, company_users)
    warnings = _unresolved_reference_warnings(
        workflow, next_index, next_step, company_users,
    )
    if not next_approvers:
        warnings = warnings + (_unowned_step_warning(workflow, next_index, expense.id),)
        return _finish(
            updated, ExpenseStatus.APPROVED, ActionOutcomeCode.NEXT_STEP_UNOWNED,
            warnings,
        )

    return ActionOutcome(
        expense=replace(
            updated,
            current_step_index=next_index,
            current_approver_ids=next_approvers,
        ),
        outcome=ActionOutcomeCode.STEP_ADVANCED,
        warnings=warnings,
    )
