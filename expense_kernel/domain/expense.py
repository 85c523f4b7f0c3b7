"""
Expense approval domain types (``expense_kernel.domain.expense``).

Responsibility
--------------
Pure value objects for the expense approval workflow: users, workflow
definitions (steps, approver descriptors, completion and stop conditions),
the expense record with its audit history, and the results returned by
the workflow engine.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Status lifecycle -- ``EXPENSE_TRANSITIONS`` defines the only valid
  status edges.  Approved and Rejected have no outgoing edges.
* Closed variants -- approver descriptors, completion conditions and
  stop conditions each carry a ``kind`` drawn from a closed enum.  The
  engines dispatch on that enum through tables that are checked for
  exhaustiveness by the test suite.
* History is a tuple: an expense is never mutated, a new one is built
  with the extra action appended.
* ``PercentageOfApprovers.percentage`` lies in [1, 100].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union


# =========================================================================
# Users
# =========================================================================


class Role(str, Enum):
    """Organisational roles known to the user directory."""

    EMPLOYEE = "Employee"
    MANAGER = "Manager"
    FINANCE = "Finance"
    DIRECTOR = "Director"
    CFO = "CFO"
    ADMIN = "Admin"


@dataclass(frozen=True)
class User:
    """A directory entry. Immutable from the engine's perspective."""

    id: str
    name: str
    role: Role
    company_id: str
    manager_id: str | None = None
    email: str | None = None


# =========================================================================
# Expense Status Lifecycle
# =========================================================================


class ExpenseStatus(str, Enum):
    """Expense lifecycle states."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


EXPENSE_TRANSITIONS: dict[ExpenseStatus, frozenset[ExpenseStatus]] = {
    ExpenseStatus.PENDING: frozenset({
        ExpenseStatus.PENDING,
        ExpenseStatus.APPROVED,
        ExpenseStatus.REJECTED,
    }),
    ExpenseStatus.APPROVED: frozenset(),
    ExpenseStatus.REJECTED: frozenset(),
}

TERMINAL_EXPENSE_STATUSES: frozenset[ExpenseStatus] = frozenset({
    ExpenseStatus.APPROVED,
    ExpenseStatus.REJECTED,
})


class Decision(str, Enum):
    """What an approver may submit against a pending expense."""

    APPROVED = "Approved"
    REJECTED = "Rejected"


# =========================================================================
# Step Approvers (closed variant)
# =========================================================================


class StepApproverType(str, Enum):
    """Kinds of abstract approver descriptors a step may list."""

    DIRECT_MANAGER = "DirectManager"
    SPECIFIC_USER = "SpecificUser"


@dataclass(frozen=True)
class DirectManager:
    """The submitter's manager, or a company Admin when there is none."""

    kind: ClassVar[StepApproverType] = StepApproverType.DIRECT_MANAGER

    id: str = ""


@dataclass(frozen=True)
class SpecificUser:
    """A named user, resolved unconditionally."""

    kind: ClassVar[StepApproverType] = StepApproverType.SPECIFIC_USER

    user_id: str
    id: str = ""


StepApprover = Union[DirectManager, SpecificUser]


# =========================================================================
# Completion Conditions (closed variant)
# =========================================================================


class CompletionType(str, Enum):
    """Quorum rules deciding when a step's approvals suffice."""

    ALL = "All"
    ANY = "Any"
    PERCENTAGE = "Percentage"


@dataclass(frozen=True)
class AllApprovers:
    """Every resolved approver of the step must approve."""

    kind: ClassVar[CompletionType] = CompletionType.ALL


@dataclass(frozen=True)
class AnyApprover:
    """A single approval completes the step."""

    kind: ClassVar[CompletionType] = CompletionType.ANY


@dataclass(frozen=True)
class PercentageOfApprovers:
    """ceil(resolved approvers * percentage / 100) approvals complete the step."""

    kind: ClassVar[CompletionType] = CompletionType.PERCENTAGE

    percentage: int

    def __post_init__(self) -> None:
        if isinstance(self.percentage, bool) or not isinstance(self.percentage, int):
            raise TypeError(
                f"percentage must be an int, got {type(self.percentage).__name__}"
            )
        if not 1 <= self.percentage <= 100:
            raise ValueError(
                f"percentage must be within [1, 100], got {self.percentage}"
            )


CompletionCondition = Union[AllApprovers, AnyApprover, PercentageOfApprovers]


# =========================================================================
# Stop Conditions (closed variant)
# =========================================================================


class StopConditionType(str, Enum):
    """Kinds of workflow-level early-approval rules."""

    SPECIFIC_APPROVER = "SpecificApprover"


@dataclass(frozen=True)
class SpecificApproverStop:
    """Approval by this user approves the whole expense at any step."""

    kind: ClassVar[StopConditionType] = StopConditionType.SPECIFIC_APPROVER

    approver_id: str
    id: str = ""


StopCondition = SpecificApproverStop


# =========================================================================
# Workflow Definition
# =========================================================================


@dataclass(frozen=True)
class WorkflowStep:
    """One sequential stage of a workflow."""

    id: str
    name: str
    approvers: tuple[StepApprover, ...] = ()
    completion: CompletionCondition = field(default_factory=AllApprovers)


@dataclass(frozen=True)
class Workflow:
    """A company's approval workflow.

    ``steps`` order defines step-index progression.  ``stop_conditions``
    are evaluated independently of the current step.  At most one
    workflow per company is flagged ``is_default``; the workflow store
    enforces that, not the engine.
    """

    id: str
    name: str
    company_id: str
    steps: tuple[WorkflowStep, ...] = ()
    stop_conditions: tuple[StopCondition, ...] = ()
    is_default: bool = False

    def step_at(self, index: int) -> WorkflowStep | None:
        """Return the step at ``index`` or None when out of bounds."""
        if 0 <= index < len(self.steps):
            return self.steps[index]
        return None


# =========================================================================
# Expense and Audit History
# =========================================================================


@dataclass(frozen=True)
class ApprovalAction:
    """One entry of an expense's audit trail. Immutable."""

    approver_id: str
    approver_name: str
    status: Decision
    comment: str = ""
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ExpenseDraft:
    """Submitter-supplied fields of a new expense."""

    user_id: str
    amount: Decimal
    currency: str
    expense_date: date | None = None
    description: str = ""
    category: str = ""
    receipt_url: str | None = None


@dataclass(frozen=True)
class Expense:
    """Immutable snapshot of an expense record.

    ``current_step_index`` is meaningful only while Pending.
    ``current_approver_ids`` shrinks as approvers act and is empty once
    the expense is terminal.  ``version`` is owned by the expense store
    and is the optimistic-lock token of this snapshot.
    """

    id: str
    user_id: str
    amount: Decimal
    currency: str
    workflow_id: str
    status: ExpenseStatus = ExpenseStatus.PENDING
    current_step_index: int = 0
    current_approver_ids: tuple[str, ...] = ()
    history: tuple[ApprovalAction, ...] = ()
    expense_date: date | None = None
    description: str = ""
    category: str = ""
    receipt_url: str | None = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXPENSE_STATUSES


# =========================================================================
# Advisories
# =========================================================================


@dataclass(frozen=True)
class WorkflowAdvisory:
    """A non-fatal condition surfaced alongside an engine result."""

    code: ClassVar[str] = "WORKFLOW_ADVISORY"

    message: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DataIntegrityWarning(WorkflowAdvisory):
    """Stored data disagrees with the workflow; a fallback was applied."""

    code: ClassVar[str] = "DATA_INTEGRITY_WARNING"


@dataclass(frozen=True)
class ConfigurationWarning(WorkflowAdvisory):
    """The workflow is likely misconfigured (e.g. a step nobody owns)."""

    code: ClassVar[str] = "CONFIGURATION_WARNING"


# =========================================================================
# Engine Results
# =========================================================================


class ActionOutcomeCode(str, Enum):
    """Which branch of the transition logic produced the new state."""

    REJECTED = "rejected"
    STOP_CONDITION = "stop_condition"
    STALE_STEP_INDEX = "stale_step_index"
    STEP_PENDING = "step_pending"
    STEP_ADVANCED = "step_advanced"
    WORKFLOW_COMPLETED = "workflow_completed"
    NEXT_STEP_UNOWNED = "next_step_unowned"


@dataclass(frozen=True)
class ExpenseCreation:
    """Result of computing a new expense's initial state."""

    expense: Expense
    auto_approved: bool = False
    warnings: tuple[WorkflowAdvisory, ...] = ()


@dataclass(frozen=True)
class ActionOutcome:
    """Result of applying one approval/rejection action."""

    expense: Expense
    outcome: ActionOutcomeCode
    warnings: tuple[WorkflowAdvisory, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.expense.is_terminal
