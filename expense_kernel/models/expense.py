"""
Module: expense_kernel.models.expense
Responsibility: ORM persistence for expenses and their approval history.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - Optimistic locking: ``ExpenseModel.version`` is the mapper's version
      column.  Every UPDATE is guarded by ``WHERE version = <loaded>``, so
      two writers that loaded the same version cannot both commit.
    - Append-only history: ``ApprovalActionModel`` rows cannot be updated
      or deleted (ORM listeners raise ``ImmutabilityViolationError``).
    - History order: UNIQUE(expense_id, sequence) pins each action to its
      position in the trail.
    - Status values limited by a CHECK constraint.

Failure modes:
    - StaleDataError on a version mismatch at flush (translated to
      ``OptimisticLockError`` by the repository).
    - IntegrityError on a duplicate history position.
    - ImmutabilityViolationError on history UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_kernel.db.base import Base
from expense_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from expense_kernel.domain.expense import ApprovalAction, Expense


class ExpenseModel(Base):
    """Persistent expense record.

    Contract:
        ``version`` increases by exactly one per successful save.  Terminal
        statuses (Approved, Rejected) are never changed by the engine; the
        repository refuses to persist a transition out of them.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected')",
            name="ck_expenses_valid_status",
        ),
        Index("ix_expenses_user_id", "user_id"),
        Index("ix_expenses_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    workflow_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")
    current_step_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_approver_ids: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list,
    )
    expense_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    receipt_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    actions: Mapped[list["ApprovalActionModel"]] = relationship(
        "ApprovalActionModel",
        back_populates="expense",
        order_by="ApprovalActionModel.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        # The repository assigns the next version explicitly
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<Expense {self.id} user={self.user_id} "
            f"status={self.status} step={self.current_step_index} v{self.version}>"
        )

    def apply(self, dto: Expense) -> None:
        """Copy the mutable fields of ``dto`` onto this row."""
        self.status = dto.status.value
        self.current_step_index = dto.current_step_index
        self.current_approver_ids = list(dto.current_approver_ids)
        self.expense_date = dto.expense_date
        self.description = dto.description
        self.category = dto.category
        self.receipt_url = dto.receipt_url

    def to_dto(self) -> Expense:
        """Convert ORM model to frozen domain DTO."""
        from expense_kernel.domain.expense import (
            Expense as ExpenseDTO,
            ExpenseStatus,
        )

        return ExpenseDTO(
            id=self.id,
            user_id=self.user_id,
            amount=self.amount,
            currency=self.currency,
            workflow_id=self.workflow_id,
            status=ExpenseStatus(self.status),
            current_step_index=self.current_step_index,
            current_approver_ids=tuple(self.current_approver_ids or ()),
            history=tuple(a.to_dto() for a in self.actions),
            expense_date=self.expense_date,
            description=self.description,
            category=self.category,
            receipt_url=self.receipt_url,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: Expense, version: int) -> ExpenseModel:
        """Create ORM model from domain DTO (history rows are added separately)."""
        model = cls(
            id=dto.id,
            user_id=dto.user_id,
            amount=dto.amount,
            currency=dto.currency,
            workflow_id=dto.workflow_id,
            version=version,
        )
        model.apply(dto)
        return model


class ApprovalActionModel(Base):
    """Persistent approval history entry. Append-only.

    Contract:
        Rows are immutable once created -- no UPDATE, no DELETE.
    """

    __tablename__ = "expense_approval_actions"

    __table_args__ = (
        UniqueConstraint(
            "expense_id", "sequence",
            name="uq_expense_approval_actions_position",
        ),
        Index("ix_expense_approval_actions_approver", "approver_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    expense_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("expenses.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[str] = mapped_column(String(64), nullable=False)
    approver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    acted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    expense: Mapped["ExpenseModel"] = relationship(
        "ExpenseModel", back_populates="actions",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalAction expense={self.expense_id} #{self.sequence} "
            f"{self.status} by {self.approver_id}>"
        )

    def to_dto(self) -> ApprovalAction:
        """Convert ORM model to frozen domain DTO."""
        from expense_kernel.domain.expense import (
            ApprovalAction as ApprovalActionDTO,
            Decision,
        )

        acted_at = self.acted_at
        # SQLite drops tzinfo; stored values are always UTC
        if acted_at is not None and acted_at.tzinfo is None:
            acted_at = acted_at.replace(tzinfo=timezone.utc)

        return ApprovalActionDTO(
            approver_id=self.approver_id,
            approver_name=self.approver_name,
            status=Decision(self.status),
            comment=self.comment,
            timestamp=acted_at,
        )

    @classmethod
    def from_dto(
        cls, expense_id: str, sequence: int, dto: ApprovalAction,
    ) -> ApprovalActionModel:
        """Create ORM model from domain DTO (timestamps stored as UTC)."""
        acted_at = dto.timestamp
        if acted_at is not None and acted_at.tzinfo is not None:
            acted_at = acted_at.astimezone(timezone.utc)
        return cls(
            expense_id=expense_id,
            sequence=sequence,
            approver_id=dto.approver_id,
            approver_name=dto.approver_name,
            status=dto.status.value,
            comment=dto.comment or "",
            acted_at=acted_at,
        )


# =============================================================================
# ORM-Level Immutability for History (Append-Only)
# =============================================================================


@event.listens_for(ApprovalActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    """Prevent updates to approval history records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=f"{target.expense_id}#{target.sequence}",
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(ApprovalActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    """Prevent deletion of approval history records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=f"{target.expense_id}#{target.sequence}",
        reason="Approval history is append-only -- cannot delete",
    )
