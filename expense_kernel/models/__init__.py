"""SQLAlchemy ORM models. Importing this package registers every table."""

from expense_kernel.models.expense import ApprovalActionModel, ExpenseModel

__all__ = [
    "ApprovalActionModel",
    "ExpenseModel",
]
