"""
Tests for the module-level engine, session scope and SQL service wiring.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from expense_config import EngineSettings
from expense_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from expense_kernel.domain import Decision, Expense
from expense_kernel.models import ExpenseModel
from expense_kernel.services import SqlExpenseStore
from expense_services import build_approval_service

pytestmark = pytest.mark.sql


@pytest.fixture
def global_engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


def make_expense(expense_id: str = "exp-1") -> Expense:
    return Expense(
        id=expense_id,
        user_id="u-emp",
        amount=Decimal("5"),
        currency="USD",
        workflow_id="wf-1",
    )


class TestModuleEngine:
    def test_uninitialized_access_fails(self):
        reset_engine()

        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()
        with pytest.raises(RuntimeError):
            with session_scope():
                pass

    def test_init_logs_dialect(self, captured_logs):
        init_engine_from_url("sqlite://")
        try:
            (record,) = [r for r in captured_logs() if r["message"] == "engine_initialized"]
            assert record["dialect"] == "sqlite"
        finally:
            reset_engine()

    def test_store_uses_module_engine(self, global_engine):
        store = SqlExpenseStore()

        store.save_expense(make_expense())

        assert store.load_expense("exp-1").version == 1


class TestSessionScope:
    def test_commits_on_success(self, global_engine):
        with session_scope() as session:
            session.add(ExpenseModel.from_dto(make_expense(), version=1))

        with session_scope() as session:
            assert session.get(ExpenseModel, "exp-1") is not None

    def test_rolls_back_on_error(self, global_engine):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(ExpenseModel.from_dto(make_expense(), version=1))
                session.flush()
                raise ValueError("abort")

        with session_scope() as session:
            assert session.execute(select(ExpenseModel)).first() is None


class TestBuildApprovalService:
    def test_wires_sql_store_from_settings(self, collaborators, clock):
        settings = EngineSettings(database_url="sqlite://", log_level="DEBUG")
        try:
            service = build_approval_service(
                collaborators.users, collaborators.workflows, settings=settings, clock=clock,
            )
            expense_id = service.create_expense("u-emp", 20, "USD").expense.id
            service.submit_action(expense_id, "u-mgr", Decision.APPROVED)

            assert get_engine().dialect.name == "sqlite"
            with session_scope() as session:
                row = session.get(ExpenseModel, expense_id)
                assert row.version == 2
                assert [a.approver_id for a in row.actions] == ["u-mgr"]
        finally:
            reset_engine()

    def test_memory_store_untouched(self, collaborators):
        service = build_approval_service(
            collaborators.users, collaborators.workflows,
            settings=EngineSettings(database_url="sqlite://"),
        )
        try:
            expense_id = service.create_expense("u-emp", 20, "USD").expense.id

            assert collaborators.expenses.expenses_for_users(["u-emp"]) == []
            assert service.get_expense(expense_id).version == 1
        finally:
            reset_engine()
