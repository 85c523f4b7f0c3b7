"""
Module: expense_kernel.db.base
Responsibility: Declarative base for all SQLAlchemy ORM models and the
    type annotation map that keeps column types consistent.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel; MUST NOT import from models/, services/ or domain/.

Invariants enforced:
    - Decimal maps to Numeric(38, 9).  NEVER use float for amounts.
    - datetime maps to DateTime(timezone=True).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Numeric
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Models declare their own string primary keys; expense and user ids
    are opaque strings issued by the surrounding application.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
    }
