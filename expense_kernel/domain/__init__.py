"""
Pure domain layer.

Value objects and collaborator protocols with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock itself)
- I/O

All domain objects are immutable and deterministic.
"""

from expense_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from expense_kernel.domain.collaborators import (
    ExpenseStore,
    UserDirectory,
    WorkflowStore,
)
from expense_kernel.domain.expense import (
    EXPENSE_TRANSITIONS,
    TERMINAL_EXPENSE_STATUSES,
    ActionOutcome,
    ActionOutcomeCode,
    AllApprovers,
    AnyApprover,
    ApprovalAction,
    CompletionCondition,
    CompletionType,
    ConfigurationWarning,
    DataIntegrityWarning,
    Decision,
    DirectManager,
    Expense,
    ExpenseCreation,
    ExpenseDraft,
    ExpenseStatus,
    PercentageOfApprovers,
    Role,
    SpecificApproverStop,
    SpecificUser,
    StepApprover,
    StepApproverType,
    StopCondition,
    StopConditionType,
    User,
    Workflow,
    WorkflowAdvisory,
    WorkflowStep,
)

__all__ = [
    "EXPENSE_TRANSITIONS",
    "TERMINAL_EXPENSE_STATUSES",
    "ActionOutcome",
    "ActionOutcomeCode",
    "AllApprovers",
    "AnyApprover",
    "ApprovalAction",
    "Clock",
    "CompletionCondition",
    "CompletionType",
    "ConfigurationWarning",
    "DataIntegrityWarning",
    "Decision",
    "DeterministicClock",
    "DirectManager",
    "Expense",
    "ExpenseCreation",
    "ExpenseDraft",
    "ExpenseStatus",
    "ExpenseStore",
    "PercentageOfApprovers",
    "Role",
    "SpecificApproverStop",
    "SpecificUser",
    "StepApprover",
    "StepApproverType",
    "StopCondition",
    "StopConditionType",
    "SystemClock",
    "User",
    "UserDirectory",
    "Workflow",
    "WorkflowAdvisory",
    "WorkflowStep",
    "WorkflowStore",
]
