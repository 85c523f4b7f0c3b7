"""
expense_services -- Orchestration over the pure approval engines.

Usage:
    from expense_services import ExpenseApprovalService
    from expense_services.memory import build_in_memory_collaborators
"""

from expense_services.approval_workflow import (
    ExpenseApprovalService,
    build_approval_service,
)
from expense_services.memory import (
    InMemoryCollaborators,
    InMemoryExpenseStore,
    InMemoryUserDirectory,
    InMemoryWorkflowStore,
    build_in_memory_collaborators,
)

__all__ = [
    "ExpenseApprovalService",
    "build_approval_service",
    "InMemoryCollaborators",
    "InMemoryExpenseStore",
    "InMemoryUserDirectory",
    "InMemoryWorkflowStore",
    "build_in_memory_collaborators",
]
