"""
Typed Exception Hierarchy for the Expense Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers must be able to tell "you are not an approver of this expense" apart
from "another request changed this expense first" without parsing strings.
Every exception here therefore carries:
  1. a TYPED class (catch by type, not message)
  2. a CODE class attribute (machine-readable, API-safe)
  3. structured DATA attributes (expense_id, actor_id, ...)

Example:
    try:
        service.submit_action(expense_id, actor_id, Decision.APPROVED)
    except ExpenseNotPendingError as e:
        refresh(e.expense_id)
    except OptimisticLockError:
        retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ExpenseKernelError (base)
    |
    +-- InvalidActionError
    |   +-- ExpenseNotPendingError
    |   +-- IneligibleApproverError
    |   +-- InvalidDecisionError
    |
    +-- NotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- WorkflowNotFoundError
    |   +-- UserNotFoundError
    |   +-- NoDefaultWorkflowError
    |
    +-- ExpenseValidationError
    +-- WorkflowConfigError
    +-- DataIntegrityError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|------------------------------------------
Action       | EXPENSE_NOT_PENDING      | Action on an Approved/Rejected expense
             | INELIGIBLE_APPROVER      | Actor not a current approver of the step
             | INVALID_DECISION         | Decision is not Approved/Rejected
-------------|--------------------------|------------------------------------------
Lookup       | EXPENSE_NOT_FOUND        | Expense id unknown to the store
             | WORKFLOW_NOT_FOUND       | Workflow id unknown for the company
             | USER_NOT_FOUND           | User id unknown to the directory
             | NO_DEFAULT_WORKFLOW      | Company has no workflow flagged default
-------------|--------------------------|------------------------------------------
Input        | EXPENSE_VALIDATION       | Non-positive amount, malformed currency
             | WORKFLOW_CONFIG          | Malformed workflow definition
-------------|--------------------------|------------------------------------------
Integrity    | DATA_INTEGRITY           | Strict mode: stale step index
-------------|--------------------------|------------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT | Expense changed since it was loaded
-------------|--------------------------|------------------------------------------
Immutability | IMMUTABILITY_VIOLATION   | Approval history rewrite or delete

InvalidActionError and its subclasses are user-correctable: re-fetch the
expense and retry. ConcurrencyError is retried automatically by the service.
"""


class ExpenseKernelError(Exception):
    """
    Base exception for all expense kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXPENSE_KERNEL_ERROR"


# Action-related exceptions


class InvalidActionError(ExpenseKernelError):
    """An approval action was refused before any state change."""

    code: str = "INVALID_ACTION"

    def __init__(self, expense_id: str, actor_id: str, reason: str):
        self.expense_id = expense_id
        self.actor_id = actor_id
        self.reason = reason
        super().__init__(
            f"Invalid action on expense {expense_id} by {actor_id}: {reason}"
        )


class ExpenseNotPendingError(InvalidActionError):
    """The expense is terminal; no further actions are accepted."""

    code: str = "EXPENSE_NOT_PENDING"

    def __init__(self, expense_id: str, actor_id: str, status: str):
        self.status = status
        super().__init__(
            expense_id, actor_id, f"expense is {status}, not Pending",
        )


class IneligibleApproverError(InvalidActionError):
    """The actor is not among the pending approvers of the current step."""

    code: str = "INELIGIBLE_APPROVER"

    def __init__(self, expense_id: str, actor_id: str, step_index: int):
        self.step_index = step_index
        super().__init__(
            expense_id,
            actor_id,
            f"not a pending approver of step {step_index}",
        )


class InvalidDecisionError(InvalidActionError):
    """The submitted decision is not Approved or Rejected."""

    code: str = "INVALID_DECISION"

    def __init__(self, expense_id: str, actor_id: str, decision: str):
        self.decision = decision
        super().__init__(
            expense_id, actor_id, f"unsupported decision {decision!r}",
        )


# Lookup exceptions


class NotFoundError(ExpenseKernelError):
    """Base exception for unresolvable references."""

    code: str = "NOT_FOUND"


class ExpenseNotFoundError(NotFoundError):
    """Expense with given ID was not found."""

    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class WorkflowNotFoundError(NotFoundError):
    """Workflow with given ID was not found for the company."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str, company_id: str):
        self.workflow_id = workflow_id
        self.company_id = company_id
        super().__init__(
            f"Workflow {workflow_id} not found for company {company_id}"
        )


class UserNotFoundError(NotFoundError):
    """User with given ID was not found in the directory."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class NoDefaultWorkflowError(NotFoundError):
    """The company has no workflow flagged as default."""

    code: str = "NO_DEFAULT_WORKFLOW"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(
            f"No default workflow configured for company {company_id}"
        )


# Input exceptions


class ExpenseValidationError(ExpenseKernelError):
    """Expense draft failed validation at creation."""

    code: str = "EXPENSE_VALIDATION"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class WorkflowConfigError(ExpenseKernelError):
    """Workflow definition is malformed and cannot be executed."""

    code: str = "WORKFLOW_CONFIG"

    def __init__(self, workflow_id: str, reason: str):
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(f"Workflow {workflow_id} is invalid: {reason}")


class DataIntegrityError(ExpenseKernelError):
    """
    Stored expense state disagrees with its workflow.

    Raised only in strict mode; otherwise the engine applies the
    auto-approve fallback and reports a DataIntegrityWarning.
    """

    code: str = "DATA_INTEGRITY"

    def __init__(self, expense_id: str, workflow_id: str, reason: str):
        self.expense_id = expense_id
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(
            f"Data integrity fault on expense {expense_id} "
            f"(workflow {workflow_id}): {reason}"
        )


# Concurrency-related exceptions


class ConcurrencyError(ExpenseKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityViolationError(ExpenseKernelError):
    """Attempted to modify or delete an approval history record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
