"""
expense_services.memory -- In-process collaborators.

Responsibility:
    Dict-backed implementations of ``UserDirectory``, ``WorkflowStore``
    and ``ExpenseStore`` for tests, demos and single-process deployments.

Architecture position:
    Services layer.  May import from expense_kernel and expense_config.

Invariants enforced:
    - At most one default workflow per company: saving a default
      workflow clears the flag on the company's other workflows.
    - ``InMemoryExpenseStore.save_expense`` is atomic per expense id and
      applies the same checks as the SQL store: version match, no write
      to a terminal expense, stored history kept as a prefix.
    - Stored snapshots are frozen dataclasses, so callers cannot mutate
      the store's state through a returned value.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date

from expense_config.schema import DirectoryFixture
from expense_kernel.domain.expense import (
    EXPENSE_TRANSITIONS,
    Expense,
    ExpenseStatus,
    User,
    Workflow,
)
from expense_kernel.exceptions import (
    ExpenseNotFoundError,
    ImmutabilityViolationError,
    OptimisticLockError,
)
from expense_kernel.logging_config import get_logger

logger = get_logger("services.memory")


class InMemoryUserDirectory:
    """User directory over a dict, preserving insertion order."""

    def __init__(self, users: Iterable[User] = ()) -> None:
        self._users: dict[str, User] = {}
        for user in users:
            self.add_user(user)

    def add_user(self, user: User) -> None:
        self._users[user.id] = user

    def get_user_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    def get_all_users_in_company(self, company_id: str) -> list[User]:
        return [u for u in self._users.values() if u.company_id == company_id]

    def direct_reports(self, manager_id: str) -> list[User]:
        return [u for u in self._users.values() if u.manager_id == manager_id]


class InMemoryWorkflowStore:
    """Workflow store keeping one default per company."""

    def __init__(self, workflows: Iterable[Workflow] = ()) -> None:
        self._workflows: dict[str, Workflow] = {}
        self._lock = threading.Lock()
        for workflow in workflows:
            self.save_workflow(workflow)

    def get_workflows_for_company(self, company_id: str) -> list[Workflow]:
        return [w for w in self._workflows.values() if w.company_id == company_id]

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        return self._workflows.get(workflow_id)

    def save_workflow(self, workflow: Workflow) -> Workflow:
        with self._lock:
            if workflow.is_default:
                for other in list(self._workflows.values()):
                    if (
                        other.company_id == workflow.company_id
                        and other.is_default
                        and other.id != workflow.id
                    ):
                        self._workflows[other.id] = replace(other, is_default=False)
                        logger.info(
                            "default_workflow_replaced",
                            extra={
                                "company_id": workflow.company_id,
                                "previous_workflow_id": other.id,
                                "workflow_id": workflow.id,
                            },
                        )
            self._workflows[workflow.id] = workflow
        return workflow


class InMemoryExpenseStore:
    """Expense store with per-expense locking and version checks."""

    def __init__(self) -> None:
        self._records: dict[str, Expense] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, expense_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(expense_id)
            if lock is None:
                lock = self._locks[expense_id] = threading.Lock()
            return lock

    def load_expense(self, expense_id: str) -> Expense:
        try:
            return self._records[expense_id]
        except KeyError:
            raise ExpenseNotFoundError(expense_id) from None

    def save_expense(self, expense: Expense) -> Expense:
        with self._lock_for(expense.id):
            stored = self._records.get(expense.id)
            if stored is None:
                if expense.version != 0:
                    raise OptimisticLockError("Expense", expense.id)
            else:
                self._check_update(stored, expense)
            saved = replace(expense, version=expense.version + 1)
            self._records[expense.id] = saved
        return saved

    @staticmethod
    def _check_update(stored: Expense, expense: Expense) -> None:
        if stored.version != expense.version:
            logger.warning(
                "expense_version_conflict",
                extra={
                    "expense_id": expense.id,
                    "version": expense.version,
                    "stored_version": stored.version,
                },
            )
            raise OptimisticLockError("Expense", expense.id)
        if expense.status not in EXPENSE_TRANSITIONS[stored.status]:
            raise ImmutabilityViolationError(
                "Expense", expense.id,
                f"cannot move a {stored.status.value} expense to {expense.status.value}",
            )
        if expense.history[: len(stored.history)] != stored.history:
            raise ImmutabilityViolationError(
                "Expense", expense.id,
                "approval history is append-only -- stored entries differ",
            )

    def pending_for_approver(self, user_id: str) -> list[Expense]:
        pending = [
            e for e in self._records.values()
            if e.status == ExpenseStatus.PENDING and user_id in e.current_approver_ids
        ]
        return _newest_first(pending)

    def expenses_for_users(self, user_ids: Sequence[str]) -> list[Expense]:
        wanted = set(user_ids)
        return _newest_first([e for e in self._records.values() if e.user_id in wanted])


def _newest_first(expenses: list[Expense]) -> list[Expense]:
    return sorted(
        expenses,
        key=lambda e: (e.expense_date or date.min, e.id),
        reverse=True,
    )


@dataclass(frozen=True)
class InMemoryCollaborators:
    """The three collaborators seeded from one directory fixture."""

    users: InMemoryUserDirectory
    workflows: InMemoryWorkflowStore
    expenses: InMemoryExpenseStore


def build_in_memory_collaborators(fixture: DirectoryFixture) -> InMemoryCollaborators:
    """Seed in-memory collaborators with a fixture's users and workflows."""
    return InMemoryCollaborators(
        users=InMemoryUserDirectory(fixture.users),
        workflows=InMemoryWorkflowStore(fixture.workflows),
        expenses=InMemoryExpenseStore(),
    )
