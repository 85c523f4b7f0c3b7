"""
Expense Kernel

Domain types, typed exceptions, structured logging and persistence for
the expense approval workflow:
- Immutable expense snapshots with an append-only approval history
- Optimistically locked expense store
- Structured JSON logs for every decision and fallback
"""

__version__ = "0.1.0"
