"""Kernel services backed by the database layer."""

from expense_kernel.services.expense_repository import SqlExpenseStore

__all__ = ["SqlExpenseStore"]
