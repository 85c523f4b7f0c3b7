"""
expense_engines.approvers -- Approver Resolver.

Responsibility:
    Turn a workflow step's abstract approver descriptors into the concrete
    set of user ids empowered to act at that step for a given submitter.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import expense_kernel.domain types.

Invariants enforced:
    - Self-approval exclusion: the submitter's id is never returned.
    - Deterministic order: ids are returned in first-seen order with
      duplicates dropped.
    - Exhaustive dispatch: ``APPROVER_RESOLVERS`` holds one entry per
      ``StepApproverType`` member; an unknown kind raises ``ValueError``
      instead of being skipped.

Failure modes:
    - A step with no approvers, or whose approvers all resolve to the
      submitter, yields ``()``.  That is a legal result meaning "unowned
      step"; the workflow engine decides what to do with it.
    - ``SpecificUser`` ids are returned even when the directory does not
      know them.  ``find_unresolved_references`` reports such ids.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from expense_kernel.domain.expense import (
    Role,
    StepApprover,
    StepApproverType,
    User,
    WorkflowStep,
)


def _resolve_direct_manager(
    approver: StepApprover,
    submitter: User,
    company_users: Sequence[User],
) -> str | None:
    if submitter.manager_id:
        return submitter.manager_id
    # Managerless submitters fall back to the first Admin who is not them
    for user in company_users:
        if user.role == Role.ADMIN and user.id != submitter.id:
            return user.id
    return None


def _resolve_specific_user(
    approver: StepApprover,
    submitter: User,
    company_users: Sequence[User],
) -> str | None:
    return approver.user_id or None


APPROVER_RESOLVERS: dict[
    StepApproverType,
    Callable[[StepApprover, User, Sequence[User]], str | None],
] = {
    StepApproverType.DIRECT_MANAGER: _resolve_direct_manager,
    StepApproverType.SPECIFIC_USER: _resolve_specific_user,
}


def resolve_step_approvers(
    step: WorkflowStep | None,
    submitter: User,
    company_users: Sequence[User],
) -> tuple[str, ...]:
    """Compute the concrete approver ids for ``step``.

    Args:
        step: The workflow step (None resolves to no approvers).
        submitter: The expense's submitter.
        company_users: Every user of the submitter's company.

    Returns:
        Deduplicated ids in first-seen order, never containing
        ``submitter.id``.

    Raises:
        ValueError: if a descriptor's kind has no resolver.
    """
    if step is None:
        return ()

    resolved: dict[str, None] = {}
    for approver in step.approvers:
        resolver = APPROVER_RESOLVERS.get(approver.kind)
        if resolver is None:
            raise ValueError(f"Unhandled step approver type: {approver.kind!r}")
        user_id = resolver(approver, submitter, company_users)
        if user_id:
            resolved.setdefault(user_id, None)

    resolved.pop(submitter.id, None)
    return tuple(resolved)


def find_unresolved_references(
    step: WorkflowStep | None,
    company_users: Sequence[User],
) -> tuple[str, ...]:
    """Return SpecificUser ids of ``step`` that the directory does not know."""
    if step is None:
        return ()
    known = {u.id for u in company_users}
    missing: dict[str, None] = {}
    for approver in step.approvers:
        if approver.kind == StepApproverType.SPECIFIC_USER:
            if approver.user_id not in known:
                missing.setdefault(approver.user_id, None)
    return tuple(missing)
