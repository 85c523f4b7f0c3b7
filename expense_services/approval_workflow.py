"""
expense_services.approval_workflow -- Expense approval orchestration.

Responsibility:
    Public operations of the approval system: create an expense, submit
    an approval or rejection, resolve step approvers, and answer the
    queue queries (pending for me, pending with whom, team expenses).
    Thin coordinator -- resolves a full input snapshot through the
    collaborators, delegates every decision to the pure engines in
    ``expense_engines.workflow``, and persists the result.

Architecture position:
    Services layer.  May import from expense_engines, expense_kernel and
    expense_config.

Invariants enforced:
    - No state decision is made here; start_expense/apply_action decide.
    - Each submitted action is a read-compute-write cycle guarded by the
      expense store's version check.  On a conflict the whole cycle is
      re-run on fresh state, so two concurrent approvals can never both
      be computed against the same snapshot.
    - A refused action (InvalidActionError) is logged and re-raised
      unchanged; it is never retried.

Failure modes:
    - UserNotFoundError for an unknown submitter; an actor unknown to the
      directory is refused with IneligibleApproverError.
    - WorkflowNotFoundError / NoDefaultWorkflowError when creating an
      expense without a usable workflow.
    - ExpenseValidationError for a non-positive amount or a malformed
      currency code.
    - InvalidActionError subclasses from the engine.
    - DataIntegrityError in strict mode.
    - OptimisticLockError once the retry budget is spent.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import uuid4

from expense_config.defaults import default_workflow_template
from expense_config.schema import EngineSettings
from expense_config.validator import (
    WorkflowValidationResult,
    ensure_valid_workflow,
    validate_company_workflows,
)
from expense_engines.approvers import resolve_step_approvers
from expense_engines.workflow import apply_action, start_expense
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.collaborators import (
    ExpenseStore,
    UserDirectory,
    WorkflowStore,
)
from expense_kernel.domain.expense import (
    ActionOutcome,
    Decision,
    Expense,
    ExpenseCreation,
    ExpenseDraft,
    User,
    Workflow,
    WorkflowStep,
)
from expense_kernel.exceptions import (
    ExpenseValidationError,
    IneligibleApproverError,
    InvalidActionError,
    NoDefaultWorkflowError,
    OptimisticLockError,
    UserNotFoundError,
    WorkflowNotFoundError,
)
from expense_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.approval_workflow")


@dataclass(frozen=True)
class _ActionContext:
    expense: Expense
    workflow: Workflow
    submitter: User
    company_users: Sequence[User]


class ExpenseApprovalService:
    """Entry point for expense submission and approval."""

    def __init__(
        self,
        users: UserDirectory,
        workflows: WorkflowStore,
        expenses: ExpenseStore,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._users = users
        self._workflows = workflows
        self._expenses = expenses
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._id_factory = id_factory or (lambda: str(uuid4()))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _require_user(self, user_id: str) -> User:
        user = self._users.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _find_workflow(self, company_id: str, workflow_id: str) -> Workflow | None:
        for workflow in self._workflows.get_workflows_for_company(company_id):
            if workflow.id == workflow_id:
                return workflow
        return None

    def default_workflow(self, company_id: str) -> Workflow:
        """Return the company's default workflow.

        Raises:
            NoDefaultWorkflowError: if no workflow is flagged default.
        """
        for workflow in self._workflows.get_workflows_for_company(company_id):
            if workflow.is_default:
                return workflow
        raise NoDefaultWorkflowError(company_id)

    # ------------------------------------------------------------------
    # Workflow administration
    # ------------------------------------------------------------------

    def save_workflow(self, workflow: Workflow) -> WorkflowValidationResult:
        """Validate and store a workflow; returns the advisories found.

        Raises:
            WorkflowConfigError: if the workflow has hard errors.
        """
        company_users = self._users.get_all_users_in_company(workflow.company_id)
        result = ensure_valid_workflow(workflow, company_users)
        self._workflows.save_workflow(workflow)
        for warning in result.warnings:
            logger.warning(
                "workflow_saved_with_warning",
                extra={
                    "workflow_id": workflow.id,
                    "warning_code": warning.code,
                    "warning": warning.message,
                },
            )
        company_check = validate_company_workflows(
            workflow.company_id,
            self._workflows.get_workflows_for_company(workflow.company_id),
        )
        result.warnings.extend(company_check.warnings)
        result.errors.extend(company_check.errors)
        return result

    def register_company_default_workflow(self, company_id: str) -> Workflow:
        """Give a company the template default workflow unless it has one."""
        try:
            return self.default_workflow(company_id)
        except NoDefaultWorkflowError:
            workflow = default_workflow_template(company_id)
            self._workflows.save_workflow(workflow)
            logger.info(
                "default_workflow_registered",
                extra={"company_id": company_id, "workflow_id": workflow.id},
            )
            return workflow

    # ------------------------------------------------------------------
    # createExpense
    # ------------------------------------------------------------------

    def _validate_amount(self, amount: Decimal | int | str) -> Decimal:
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except InvalidOperation:
            raise ExpenseValidationError("amount", amount, "not a number") from None
        if not value.is_finite() or value <= 0:
            raise ExpenseValidationError("amount", amount, "must be greater than zero")
        return value

    def _validate_currency(self, currency: str | None) -> str:
        code = (currency or self._settings.default_currency).strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ExpenseValidationError("currency", currency, "must be a 3-letter code")
        return code

    def create_expense(
        self,
        submitter_id: str,
        amount: Decimal | int | str,
        currency: str | None = None,
        workflow_id: str | None = None,
        expense_date: date | None = None,
        description: str = "",
        category: str = "",
        receipt_url: str | None = None,
    ) -> ExpenseCreation:
        """Create and persist a new expense.

        Uses the submitter company's default workflow when ``workflow_id``
        is omitted.  The returned creation carries the stored snapshot
        (version 1) plus any advisories raised while computing the
        initial state.
        """
        draft = ExpenseDraft(
            user_id=submitter_id,
            amount=self._validate_amount(amount),
            currency=self._validate_currency(currency),
            expense_date=expense_date,
            description=description,
            category=category,
            receipt_url=receipt_url,
        )
        submitter = self._require_user(submitter_id)

        if workflow_id is None:
            workflow = self.default_workflow(submitter.company_id)
        else:
            workflow = self._find_workflow(submitter.company_id, workflow_id)
            if workflow is None:
                raise WorkflowNotFoundError(workflow_id, submitter.company_id)

        expense_id = self._id_factory()
        with LogContext.bind(expense_id=expense_id, actor_id=submitter.id,
                             workflow_id=workflow.id):
            creation = start_expense(
                expense_id=expense_id,
                draft=draft,
                workflow=workflow,
                submitter=submitter,
                company_users=self._users.get_all_users_in_company(submitter.company_id),
            )
            stored = self._expenses.save_expense(creation.expense)
            logger.info(
                "expense_created",
                extra={
                    "status": stored.status.value,
                    "auto_approved": creation.auto_approved,
                    "warning_codes": [w.code for w in creation.warnings],
                },
            )
        return replace(creation, expense=stored)

    # ------------------------------------------------------------------
    # submitAction
    # ------------------------------------------------------------------

    def _load_action_context(self, expense_id: str) -> _ActionContext:
        expense = self._expenses.load_expense(expense_id)
        submitter = self._require_user(expense.user_id)
        workflow = self._find_workflow(submitter.company_id, expense.workflow_id)
        if workflow is None:
            # An empty stand-in sends the engine down its stale-index path
            logger.error(
                "expense_workflow_missing",
                extra={"workflow_id": expense.workflow_id},
            )
            workflow = Workflow(
                id=expense.workflow_id,
                name="",
                company_id=submitter.company_id,
            )
        return _ActionContext(
            expense=expense,
            workflow=workflow,
            submitter=submitter,
            company_users=self._users.get_all_users_in_company(submitter.company_id),
        )

    def _require_actor(self, expense_id: str, acting_user_id: str) -> User:
        # An actor missing from the directory cannot be a current approver
        acting_user = self._users.get_user_by_id(acting_user_id)
        if acting_user is not None:
            return acting_user
        expense = self._expenses.load_expense(expense_id)
        exc = IneligibleApproverError(
            expense_id, acting_user_id, expense.current_step_index,
        )
        logger.info(
            "expense_action_refused",
            extra={"error_code": exc.code, "reason": "actor not in directory"},
        )
        raise exc

    def submit_action(
        self,
        expense_id: str,
        acting_user_id: str,
        decision: Decision | str,
        comment: str = "",
    ) -> ActionOutcome:
        """Record an approval or rejection by a current approver.

        Raises:
            InvalidActionError: the actor may not act on this expense now.
            OptimisticLockError: every attempt lost a concurrent write.
        """
        attempts = 1 + max(0, self._settings.max_action_retries)
        with LogContext.bind(expense_id=expense_id, actor_id=acting_user_id):
            acting_user = self._require_actor(expense_id, acting_user_id)
            attempt = 0
            while True:
                attempt += 1
                ctx = self._load_action_context(expense_id)
                try:
                    outcome = apply_action(
                        expense=ctx.expense,
                        workflow=ctx.workflow,
                        submitter=ctx.submitter,
                        acting_user=acting_user,
                        decision=decision,
                        company_users=ctx.company_users,
                        acted_at=self._clock.now(),
                        comment=comment,
                        strict=self._settings.strict_integrity,
                        verify_with_resolver=self._settings.verify_with_resolver,
                    )
                except InvalidActionError as exc:
                    logger.info(
                        "expense_action_refused",
                        extra={"error_code": exc.code, "reason": exc.reason},
                    )
                    raise

                try:
                    stored = self._expenses.save_expense(outcome.expense)
                except OptimisticLockError:
                    logger.warning(
                        "expense_action_conflict",
                        extra={"attempt": attempt, "max_attempts": attempts},
                    )
                    if attempt == attempts:
                        raise
                    continue

                logger.info(
                    "expense_action_applied",
                    extra={
                        "decision": stored.history[-1].status.value,
                        "outcome": outcome.outcome.value,
                        "status": stored.status.value,
                        "step_index": stored.current_step_index,
                        "attempt": attempt,
                        "warning_codes": [w.code for w in outcome.warnings],
                    },
                )
                return replace(outcome, expense=stored)

    # ------------------------------------------------------------------
    # getApproversForStep and queries
    # ------------------------------------------------------------------

    @staticmethod
    def get_approvers_for_step(
        step: WorkflowStep | None,
        submitter: User,
        company_users: Sequence[User],
    ) -> tuple[str, ...]:
        """Concrete approver ids of ``step`` for ``submitter``."""
        return resolve_step_approvers(step, submitter, company_users)

    def get_expense(self, expense_id: str) -> Expense:
        return self._expenses.load_expense(expense_id)

    def pending_approvals_for(self, user_id: str) -> list[Expense]:
        """Pending expenses awaiting ``user_id``, newest first."""
        return self._expenses.pending_for_approver(user_id)

    def pending_with(self, expense_id: str) -> list[str]:
        """Display names of the approvers an expense is waiting on."""
        expense = self._expenses.load_expense(expense_id)
        names = []
        for user_id in expense.current_approver_ids:
            user = self._users.get_user_by_id(user_id)
            names.append(user.name if user is not None else user_id)
        return names

    def expenses_for_user(self, user_id: str) -> list[Expense]:
        """Expenses submitted by ``user_id``, newest first."""
        return self._expenses.expenses_for_users([user_id])

    def team_expenses(self, manager_id: str) -> list[Expense]:
        """Expenses submitted by the direct reports of ``manager_id``."""
        manager = self._require_user(manager_id)
        reports = [
            u.id for u in self._users.get_all_users_in_company(manager.company_id)
            if u.manager_id == manager.id
        ]
        return self._expenses.expenses_for_users(reports)


def build_approval_service(
    users: UserDirectory,
    workflows: WorkflowStore,
    settings: EngineSettings | None = None,
    clock: Clock | None = None,
) -> ExpenseApprovalService:
    """Build an approval service on the SQL expense store (production entrypoint).

    Settings come from ``get_active_settings()`` unless given.  Configures
    JSON logging at ``settings.log_level``, initializes the module-level
    engine from ``settings.database_url`` and creates missing tables.
    """
    from expense_config import get_active_settings
    from expense_kernel.db.engine import create_tables, init_engine_from_url
    from expense_kernel.logging_config import configure_logging
    from expense_kernel.services.expense_repository import SqlExpenseStore

    settings = settings or get_active_settings()
    configure_logging(level=settings.log_level)
    create_tables(init_engine_from_url(settings.database_url))
    return ExpenseApprovalService(
        users=users,
        workflows=workflows,
        expenses=SqlExpenseStore(),
        clock=clock,
        settings=settings,
    )
