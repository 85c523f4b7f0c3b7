"""
Hypothesis-based property tests for the approval engines.

Properties checked over generated directories and workflows:
- Self-approval exclusion: the resolver never returns the submitter.
- Rejection is absolute: any eligible rejection ends in Rejected with
  no pending approvers, whatever the step or completion rule.
- Monotonic step index: current_step_index never decreases.
- History append-only: each accepted action adds exactly one entry and
  never alters earlier ones.
- Terminal states: Approved/Rejected always carry no pending approvers.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from expense_engines.approvers import resolve_step_approvers
from expense_engines.workflow import apply_action, start_expense
from expense_kernel.domain import (
    AllApprovers,
    AnyApprover,
    Decision,
    DirectManager,
    ExpenseDraft,
    ExpenseStatus,
    PercentageOfApprovers,
    Role,
    SpecificApproverStop,
    SpecificUser,
    User,
    Workflow,
    WorkflowStep,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
USER_IDS = ("admin", "mgr", "emp", "a1", "a2", "a3", "a4")


# =========================================================================
# Strategies
# =========================================================================


@st.composite
def directories(draw) -> tuple[User, ...]:
    """A company where every user may report to any other user (or nobody)."""
    users = []
    for user_id in USER_IDS:
        manager = draw(st.one_of(st.none(), st.sampled_from(USER_IDS)))
        role = Role.ADMIN if user_id == "admin" else draw(st.sampled_from(list(Role)))
        users.append(User(
            id=user_id,
            name=user_id.upper(),
            role=role,
            company_id="acme",
            manager_id=manager,
        ))
    return tuple(users)


approvers = st.one_of(
    st.builds(DirectManager),
    st.builds(SpecificUser, user_id=st.sampled_from(USER_IDS)),
)

completions = st.one_of(
    st.just(AllApprovers()),
    st.just(AnyApprover()),
    st.builds(PercentageOfApprovers, st.integers(min_value=1, max_value=100)),
)


@st.composite
def steps(draw, index: int = 0) -> WorkflowStep:
    return WorkflowStep(
        id=f"step-{index}-{draw(st.integers(min_value=0, max_value=999))}",
        name=f"Step {index}",
        approvers=tuple(draw(st.lists(approvers, min_size=0, max_size=4))),
        completion=draw(completions),
    )


@st.composite
def workflows(draw) -> Workflow:
    count = draw(st.integers(min_value=1, max_value=4))
    stop_ids = draw(st.lists(st.sampled_from(USER_IDS), max_size=2, unique=True))
    return Workflow(
        id="wf-fuzz",
        name="Fuzzed",
        company_id="acme",
        steps=tuple(draw(steps(i)) for i in range(count)),
        stop_conditions=tuple(SpecificApproverStop(approver_id=u) for u in stop_ids),
        is_default=True,
    )


def _by_id(users: tuple[User, ...]) -> dict[str, User]:
    return {u.id: u for u in users}


def _start(workflow: Workflow, submitter: User, users: tuple[User, ...]):
    return start_expense(
        expense_id="exp-fuzz",
        draft=ExpenseDraft(user_id=submitter.id, amount=Decimal("10"), currency="USD"),
        workflow=workflow,
        submitter=submitter,
        company_users=users,
    )


# =========================================================================
# Properties
# =========================================================================


class TestResolverProperties:
    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(users=directories(), step=steps(), submitter_id=st.sampled_from(USER_IDS))
    def test_submitter_never_resolved(self, users, step, submitter_id):
        submitter = _by_id(users)[submitter_id]

        resolved = resolve_step_approvers(step, submitter, users)

        assert submitter_id not in resolved
        assert len(resolved) == len(set(resolved))


class TestEngineProperties:
    @settings(
        max_examples=150,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    @given(
        users=directories(),
        workflow=workflows(),
        submitter_id=st.sampled_from(USER_IDS),
        data=st.data(),
    )
    def test_random_action_sequences(self, users, workflow, submitter_id, data):
        directory = _by_id(users)
        submitter = directory[submitter_id]
        creation = _start(workflow, submitter, users)
        expense = creation.expense

        if creation.auto_approved:
            assert expense.status == ExpenseStatus.APPROVED
            assert expense.history == ()
            return

        for turn in range(40):
            if expense.status != ExpenseStatus.PENDING:
                break
            actor_id = data.draw(st.sampled_from(expense.current_approver_ids))
            decision = data.draw(st.sampled_from(list(Decision)))

            outcome = apply_action(
                expense=expense,
                workflow=workflow,
                submitter=submitter,
                acting_user=directory[actor_id],
                decision=decision,
                company_users=users,
                acted_at=START + timedelta(minutes=turn),
            )
            updated = outcome.expense

            assert submitter_id not in updated.current_approver_ids
            assert updated.current_step_index >= expense.current_step_index
            assert len(updated.history) == len(expense.history) + 1
            assert updated.history[:-1] == expense.history
            assert updated.history[-1].approver_id == actor_id

            if decision == Decision.REJECTED:
                assert updated.status == ExpenseStatus.REJECTED
            if updated.status != ExpenseStatus.PENDING:
                assert updated.current_approver_ids == ()
            else:
                assert updated.current_approver_ids

            expense = updated

        assert expense.status != ExpenseStatus.PENDING

    @settings(suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture])
    @given(
        users=directories(),
        workflow=workflows(),
        submitter_id=st.sampled_from(USER_IDS),
        data=st.data(),
    )
    def test_rejection_is_absolute(self, users, workflow, submitter_id, data):
        directory = _by_id(users)
        submitter = directory[submitter_id]
        expense = _start(workflow, submitter, users).expense

        # Approve a few times first so rejection lands at varied steps
        approvals = data.draw(st.integers(min_value=0, max_value=5))
        for _ in range(approvals):
            if expense.status != ExpenseStatus.PENDING:
                break
            actor_id = data.draw(st.sampled_from(expense.current_approver_ids))
            expense = apply_action(
                expense=expense, workflow=workflow, submitter=submitter,
                acting_user=directory[actor_id], decision=Decision.APPROVED,
                company_users=users, acted_at=START,
            ).expense

        if expense.status != ExpenseStatus.PENDING:
            return

        actor_id = data.draw(st.sampled_from(expense.current_approver_ids))
        outcome = apply_action(
            expense=expense, workflow=workflow, submitter=submitter,
            acting_user=directory[actor_id], decision=Decision.REJECTED,
            company_users=users, acted_at=START,
        )

        assert outcome.expense.status == ExpenseStatus.REJECTED
        assert outcome.expense.current_approver_ids == ()
        assert outcome.expense.current_step_index == expense.current_step_index
