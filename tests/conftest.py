"""
Pytest fixtures for the expense approval test suite.

Provides:
- Structured logging configured once per session, LogContext isolation
- ``captured_logs`` for asserting on emitted JSON records
- The demo directory (users + workflows) from expense_config/sets
- In-memory and SQLite-backed approval services with a deterministic clock
"""

import json
import logging
from io import StringIO
from itertools import count
from pathlib import Path

import pytest

from expense_config import EngineSettings, load_directory_fixture
from expense_kernel.db.engine import build_engine, create_tables, drop_tables
from expense_kernel.domain.clock import DeterministicClock
from expense_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from expense_kernel.services.expense_repository import SqlExpenseStore
from expense_services import ExpenseApprovalService, build_in_memory_collaborators
from sqlalchemy.orm import sessionmaker

DEMO_FIXTURE_PATH = (
    Path(__file__).resolve().parent.parent / "expense_config" / "sets" / "demo_company.yaml"
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture expense_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.submit_action(...)
            logs = captured_logs()
            assert any(r["message"] == "expense_action_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("expense_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Directory and services
# =============================================================================


@pytest.fixture
def demo_fixture():
    """Users and workflows of the bundled demo company (acme)."""
    return load_directory_fixture(DEMO_FIXTURE_PATH)


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def sequential_ids():
    """Id factory yielding exp-1, exp-2, ..."""
    counter = count(1)
    return lambda: f"exp-{next(counter)}"


@pytest.fixture
def collaborators(demo_fixture):
    return build_in_memory_collaborators(demo_fixture)


@pytest.fixture
def service(collaborators, clock, sequential_ids):
    """Approval service over in-memory collaborators seeded with the demo company."""
    return ExpenseApprovalService(
        users=collaborators.users,
        workflows=collaborators.workflows,
        expenses=collaborators.expenses,
        clock=clock,
        settings=EngineSettings(),
        id_factory=sequential_ids,
    )


@pytest.fixture
def sqlite_engine():
    """Fresh in-memory SQLite database with all expense tables."""
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(bind=sqlite_engine, expire_on_commit=False)


@pytest.fixture
def sql_store(session_factory):
    return SqlExpenseStore(session_factory)
