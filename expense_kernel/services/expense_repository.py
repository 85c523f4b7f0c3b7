"""
expense_kernel.services.expense_repository -- SQL-backed expense store.

Responsibility:
    Load and save expense snapshots through SQLAlchemy, enforcing the
    optimistic-lock version check and the append-only approval history.
    Implements the ``ExpenseStore`` protocol.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - A save succeeds only when the snapshot's ``version`` equals the
      stored one; the stored version is then incremented by one.  The
      comparison is repeated by the mapper's version column at flush, so
      a concurrent commit between load and flush is also detected.
    - Stored history is a prefix of every saved history; only new
      entries are inserted.
    - A terminal expense is never written again.

Failure modes:
    - ExpenseNotFoundError if the id is unknown.
    - OptimisticLockError on a version mismatch (including StaleDataError
      raised by the mapper).
    - ImmutabilityViolationError if the saved history rewrites stored
      entries or a terminal expense is modified.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from expense_kernel.db.engine import session_scope
from expense_kernel.domain.expense import (
    EXPENSE_TRANSITIONS,
    ApprovalAction,
    Expense,
    ExpenseStatus,
)
from expense_kernel.exceptions import (
    ExpenseNotFoundError,
    ImmutabilityViolationError,
    OptimisticLockError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.expense import ApprovalActionModel, ExpenseModel

logger = get_logger("services.expense_repository")


def _newest_first(expenses: list[Expense]) -> list[Expense]:
    return sorted(
        expenses,
        key=lambda e: (e.expense_date or date.min, e.id),
        reverse=True,
    )


def _entry_key(action: ApprovalAction) -> tuple:
    """Every stored field of a history entry, as the database returns it."""
    timestamp = action.timestamp
    if timestamp is not None and timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (
        action.approver_id,
        action.approver_name,
        action.status,
        action.comment or "",
        timestamp,
    )


class SqlExpenseStore:
    """Expense store over a SQLAlchemy session factory.

    Without an explicit factory, sessions come from the module-level
    engine set up by ``init_engine_from_url``.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    def load_expense(self, expense_id: str) -> Expense:
        with session_scope(self._session_factory) as session:
            model = session.get(ExpenseModel, expense_id)
            if model is None:
                raise ExpenseNotFoundError(expense_id)
            return model.to_dto()

    def save_expense(self, expense: Expense) -> Expense:
        """Insert or update ``expense``; returns the stored snapshot.

        A new expense must carry ``version == 0`` and is stored as
        version 1.
        """
        try:
            with session_scope(self._session_factory) as session:
                model = session.get(ExpenseModel, expense.id)
                if model is None:
                    model = self._insert(session, expense)
                else:
                    self._update(model, expense)
                session.flush()
                stored = model.to_dto()
        except StaleDataError as exc:
            logger.warning(
                "expense_version_conflict",
                extra={"expense_id": expense.id, "version": expense.version},
            )
            raise OptimisticLockError("Expense", expense.id) from exc

        logger.info(
            "expense_saved",
            extra={
                "expense_id": stored.id,
                "status": stored.status.value,
                "step_index": stored.current_step_index,
                "version": stored.version,
            },
        )
        return stored

    def _insert(self, session: Session, expense: Expense) -> ExpenseModel:
        if expense.version != 0:
            raise OptimisticLockError("Expense", expense.id)
        model = ExpenseModel.from_dto(expense, version=1)
        for sequence, action in enumerate(expense.history):
            model.actions.append(
                ApprovalActionModel.from_dto(expense.id, sequence, action)
            )
        session.add(model)
        return model

    def _update(self, model: ExpenseModel, expense: Expense) -> None:
        if model.version != expense.version:
            logger.warning(
                "expense_version_conflict",
                extra={
                    "expense_id": expense.id,
                    "version": expense.version,
                    "stored_version": model.version,
                },
            )
            raise OptimisticLockError("Expense", expense.id)

        current = ExpenseStatus(model.status)
        if expense.status not in EXPENSE_TRANSITIONS[current]:
            raise ImmutabilityViolationError(
                "Expense", expense.id,
                f"cannot move a {current.value} expense to {expense.status.value}",
            )

        stored = [_entry_key(a.to_dto()) for a in model.actions]
        incoming = [_entry_key(a) for a in expense.history[: len(stored)]]
        if incoming != stored:
            raise ImmutabilityViolationError(
                "Expense", expense.id,
                "approval history is append-only -- stored entries differ",
            )

        model.apply(expense)
        model.version = expense.version + 1
        for sequence in range(len(stored), len(expense.history)):
            model.actions.append(
                ApprovalActionModel.from_dto(
                    expense.id, sequence, expense.history[sequence],
                )
            )

    def pending_for_approver(self, user_id: str) -> list[Expense]:
        """Pending expenses listing ``user_id`` as a current approver.

        Loads every Pending expense and filters approver membership in
        Python, so the cost grows with the whole pending queue rather than
        with the user's share of it.
        """
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(ExpenseModel).where(
                    ExpenseModel.status == ExpenseStatus.PENDING.value,
                )
            ).scalars().all()
            # JSON membership is filtered here to stay dialect-neutral
            pending = [
                m.to_dto() for m in models
                if user_id in (m.current_approver_ids or ())
            ]
        return _newest_first(pending)

    def expenses_for_users(self, user_ids: Sequence[str]) -> list[Expense]:
        if not user_ids:
            return []
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(ExpenseModel).where(ExpenseModel.user_id.in_(list(user_ids)))
            ).scalars().all()
            expenses = [m.to_dto() for m in models]
        return _newest_first(expenses)
