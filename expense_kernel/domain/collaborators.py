"""
Collaborator interfaces consumed by the expense approval services.

The engines never call these; services resolve a full input snapshot
through them and hand it to the pure engine functions.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from expense_kernel.domain.expense import Expense, User, Workflow


@runtime_checkable
class UserDirectory(Protocol):
    """Resolves users and a company's membership."""

    def get_user_by_id(self, user_id: str) -> User | None:
        ...

    def get_all_users_in_company(self, company_id: str) -> Sequence[User]:
        ...


@runtime_checkable
class WorkflowStore(Protocol):
    """Resolves a company's configured workflows."""

    def get_workflows_for_company(self, company_id: str) -> Sequence[Workflow]:
        ...

    def save_workflow(self, workflow: Workflow) -> Workflow:
        ...


@runtime_checkable
class ExpenseStore(Protocol):
    """Durable expense records keyed by id.

    ``save_expense`` is atomic per call and compares the snapshot's
    ``version`` with the stored one, raising ``OptimisticLockError`` on
    mismatch.  It returns the stored snapshot carrying the new version.
    """

    def load_expense(self, expense_id: str) -> Expense:
        ...

    def save_expense(self, expense: Expense) -> Expense:
        ...

    def pending_for_approver(self, user_id: str) -> list[Expense]:
        ...

    def expenses_for_users(self, user_ids: Sequence[str]) -> list[Expense]:
        ...
