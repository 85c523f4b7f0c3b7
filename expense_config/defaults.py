"""
Default workflow template for a newly registered company.

Step 1 routes to the submitter's direct manager.  Step 2 is left without
approvers for an admin to configure; until then it resolves to nobody
and the engine auto-approves once step 1 completes.
"""

from __future__ import annotations

from uuid import uuid4

from expense_kernel.domain.expense import (
    AllApprovers,
    DirectManager,
    Workflow,
    WorkflowStep,
)

DEFAULT_WORKFLOW_NAME = "Default Company Workflow"


def default_workflow_template(company_id: str, workflow_id: str | None = None) -> Workflow:
    """Build the default two-step workflow for ``company_id``."""
    return Workflow(
        id=workflow_id or str(uuid4()),
        name=DEFAULT_WORKFLOW_NAME,
        company_id=company_id,
        steps=(
            WorkflowStep(
                id="step1",
                name="Manager Approval",
                approvers=(DirectManager(id=str(uuid4())),),
                completion=AllApprovers(),
            ),
            WorkflowStep(
                id="step2",
                name="Finance / Senior Approval",
                approvers=(),
                completion=AllApprovers(),
            ),
        ),
        stop_conditions=(),
        is_default=True,
    )
