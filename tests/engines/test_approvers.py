"""
Tests for the approver resolver.

Tests cover:
- DirectManager: manager, Admin fallback, no fallback available
- SpecificUser: resolved unconditionally, unknown ids reported separately
- Self-approval exclusion and de-duplication
- Dispatch table exhaustiveness
"""

import pytest

from expense_engines.approvers import (
    APPROVER_RESOLVERS,
    find_unresolved_references,
    resolve_step_approvers,
)
from expense_kernel.domain import (
    DirectManager,
    Role,
    SpecificUser,
    StepApproverType,
    User,
    WorkflowStep,
)


# =========================================================================
# Factory helpers
# =========================================================================


def make_user(
    user_id: str,
    role: Role = Role.EMPLOYEE,
    manager_id: str | None = None,
    company_id: str = "acme",
) -> User:
    return User(
        id=user_id,
        name=user_id.title(),
        role=role,
        company_id=company_id,
        manager_id=manager_id,
    )


def make_step(*approvers) -> WorkflowStep:
    return WorkflowStep(id="s1", name="Step", approvers=tuple(approvers))


ADMIN = make_user("admin", Role.ADMIN)
BOSS = make_user("boss", Role.MANAGER, manager_id="admin")
EMP = make_user("emp", manager_id="boss")
LONER = make_user("loner")
USERS = (ADMIN, BOSS, EMP, LONER)


class TestDirectManager:
    def test_resolves_submitter_manager(self):
        assert resolve_step_approvers(make_step(DirectManager()), EMP, USERS) == ("boss",)

    def test_falls_back_to_admin_without_manager(self):
        assert resolve_step_approvers(make_step(DirectManager()), LONER, USERS) == ("admin",)

    def test_admin_without_manager_resolves_to_nobody(self):
        """The only Admin cannot approve their own expense."""
        assert resolve_step_approvers(make_step(DirectManager()), ADMIN, USERS) == ()

    def test_second_admin_is_used_for_managerless_admin(self):
        other_admin = make_user("admin2", Role.ADMIN)
        users = USERS + (other_admin,)
        assert resolve_step_approvers(make_step(DirectManager()), ADMIN, users) == ("admin2",)

    def test_no_admin_in_company(self):
        users = (EMP, LONER)
        assert resolve_step_approvers(make_step(DirectManager()), LONER, users) == ()


class TestSpecificUser:
    def test_resolved_in_declaration_order(self):
        step = make_step(SpecificUser(user_id="boss"), SpecificUser(user_id="admin"))
        assert resolve_step_approvers(step, EMP, USERS) == ("boss", "admin")

    def test_unknown_user_is_still_resolved(self):
        step = make_step(SpecificUser(user_id="ghost"))
        assert resolve_step_approvers(step, EMP, USERS) == ("ghost",)

    def test_empty_user_id_resolves_to_nobody(self):
        assert resolve_step_approvers(make_step(SpecificUser(user_id="")), EMP, USERS) == ()

    def test_find_unresolved_references(self):
        step = make_step(
            SpecificUser(user_id="ghost"),
            SpecificUser(user_id="boss"),
            SpecificUser(user_id="ghost"),
            DirectManager(),
        )
        assert find_unresolved_references(step, USERS) == ("ghost",)

    def test_find_unresolved_references_for_missing_step(self):
        assert find_unresolved_references(None, USERS) == ()


class TestResolutionSet:
    def test_submitter_is_excluded(self):
        step = make_step(SpecificUser(user_id="emp"), SpecificUser(user_id="boss"))
        assert resolve_step_approvers(step, EMP, USERS) == ("boss",)

    def test_duplicates_collapse(self):
        step = make_step(DirectManager(), SpecificUser(user_id="boss"))
        assert resolve_step_approvers(step, EMP, USERS) == ("boss",)

    def test_empty_step(self):
        assert resolve_step_approvers(make_step(), EMP, USERS) == ()

    def test_missing_step(self):
        assert resolve_step_approvers(None, EMP, USERS) == ()

    def test_self_only_step_is_unowned(self):
        assert resolve_step_approvers(make_step(SpecificUser(user_id="emp")), EMP, USERS) == ()


class TestDispatchExhaustiveness:
    def test_every_approver_type_has_a_resolver(self):
        assert set(APPROVER_RESOLVERS) == set(StepApproverType)

    def test_unhandled_kind_raises(self):
        class Unknown:
            kind = "Mystery"

        with pytest.raises(ValueError, match="Unhandled step approver type"):
            resolve_step_approvers(make_step(Unknown()), EMP, USERS)
