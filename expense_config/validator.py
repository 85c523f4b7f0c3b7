"""
Workflow validation (``expense_config.validator``).

Responsibility
--------------
Check workflow definitions before they are saved or used, separating
hard errors (the workflow cannot be executed as written) from advisories
(the workflow runs, but some expenses will be auto-approved or wait on
an unknown user).

Invariants enforced
-------------------
* ``is_valid`` is ``True`` only when ``errors`` is empty.
* Advisories are typed: ``ConfigurationWarning`` for ownership gaps,
  ``DataIntegrityWarning`` for references the directory cannot resolve.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from expense_kernel.domain.expense import (
    ConfigurationWarning,
    DataIntegrityWarning,
    StepApproverType,
    User,
    Workflow,
    WorkflowAdvisory,
)
from expense_kernel.exceptions import WorkflowConfigError


@dataclass
class WorkflowValidationResult:
    """Errors block saving; warnings should be shown to an admin."""

    errors: list[str] = field(default_factory=list)
    warnings: list[WorkflowAdvisory] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, warning: WorkflowAdvisory) -> None:
        self.warnings.append(warning)


def validate_workflow(
    workflow: Workflow,
    company_users: Sequence[User] = (),
) -> WorkflowValidationResult:
    """
    Validate one workflow against the company directory.

    When ``company_users`` is empty, reference checks are skipped.
    """
    result = WorkflowValidationResult()
    known = {u.id for u in company_users}

    if not workflow.steps:
        result.add_warning(ConfigurationWarning(
            message="Workflow has no steps; every expense will be auto-approved",
            context={"workflow_id": workflow.id},
        ))

    seen_steps: set[str] = set()
    for index, step in enumerate(workflow.steps):
        if step.id in seen_steps:
            result.add_error(f"Duplicate step id {step.id!r} at index {index}")
        seen_steps.add(step.id)

        if not step.approvers:
            result.add_warning(ConfigurationWarning(
                message=(
                    f"Step {step.name!r} has no approvers; expenses reaching "
                    "it will be auto-approved"
                ),
                context={"workflow_id": workflow.id, "step_index": index},
            ))

        for approver in step.approvers:
            if approver.kind != StepApproverType.SPECIFIC_USER:
                continue
            if not approver.user_id:
                result.add_error(
                    f"Step {step.name!r} has a SpecificUser approver without a user"
                )
            elif known and approver.user_id not in known:
                result.add_warning(DataIntegrityWarning(
                    message=f"Step {step.name!r} names unknown user {approver.user_id!r}",
                    context={
                        "workflow_id": workflow.id,
                        "step_index": index,
                        "user_id": approver.user_id,
                    },
                ))

    for condition in workflow.stop_conditions:
        if not condition.approver_id:
            result.add_error("Stop condition without an approver")
        elif known and condition.approver_id not in known:
            result.add_warning(DataIntegrityWarning(
                message=f"Stop condition names unknown user {condition.approver_id!r}",
                context={"workflow_id": workflow.id, "user_id": condition.approver_id},
            ))

    return result


def validate_company_workflows(
    company_id: str,
    workflows: Sequence[Workflow],
) -> WorkflowValidationResult:
    """Check that a company has exactly one default workflow."""
    result = WorkflowValidationResult()
    defaults = [w.id for w in workflows if w.company_id == company_id and w.is_default]
    if not defaults:
        result.add_warning(ConfigurationWarning(
            message="No default workflow; new expenses cannot be submitted",
            context={"company_id": company_id},
        ))
    elif len(defaults) > 1:
        result.add_error(
            f"Company {company_id} has {len(defaults)} default workflows: "
            + ", ".join(defaults)
        )
    return result


def ensure_valid_workflow(
    workflow: Workflow,
    company_users: Sequence[User] = (),
) -> WorkflowValidationResult:
    """Validate and raise ``WorkflowConfigError`` on the first hard error."""
    result = validate_workflow(workflow, company_users)
    if not result.is_valid:
        raise WorkflowConfigError(workflow.id, "; ".join(result.errors))
    return result
