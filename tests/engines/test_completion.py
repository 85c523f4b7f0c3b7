"""
Tests for quorum rules and stop conditions.
"""

import pytest

from expense_engines.completion import (
    QUORUM_RULES,
    STOP_RULES,
    is_step_complete,
    required_approvals,
    stop_condition_fires,
)
from expense_kernel.domain import (
    AllApprovers,
    AnyApprover,
    CompletionType,
    PercentageOfApprovers,
    SpecificApproverStop,
    StopConditionType,
    Workflow,
)


class TestRequiredApprovals:
    def test_all_requires_everyone(self):
        assert required_approvals(AllApprovers(), 4) == 4

    def test_any_requires_one(self):
        assert required_approvals(AnyApprover(), 4) == 1

    @pytest.mark.parametrize(
        "percentage,count,expected",
        [
            (50, 3, 2),
            (50, 4, 2),
            (34, 3, 2),
            (33, 3, 1),
            (100, 3, 3),
            (1, 10, 1),
            (10, 10, 1),
            (11, 10, 2),
            (50, 0, 0),
        ],
    )
    def test_percentage_rounds_up(self, percentage, count, expected):
        assert required_approvals(PercentageOfApprovers(percentage), count) == expected

    def test_fifty_percent_of_three_needs_two(self):
        condition = PercentageOfApprovers(50)
        assert not is_step_complete(condition, 1, 3)
        assert is_step_complete(condition, 2, 3)

    def test_every_completion_type_has_a_rule(self):
        assert set(QUORUM_RULES) == set(CompletionType)

    def test_unhandled_kind_raises(self):
        class Unknown:
            kind = "Mystery"

        with pytest.raises(ValueError, match="Unhandled completion type"):
            required_approvals(Unknown(), 1)


class TestIsStepComplete:
    def test_all_incomplete_until_last(self):
        assert not is_step_complete(AllApprovers(), 1, 2)
        assert is_step_complete(AllApprovers(), 2, 2)

    def test_any_complete_after_first(self):
        assert not is_step_complete(AnyApprover(), 0, 3)
        assert is_step_complete(AnyApprover(), 1, 3)


class TestStopConditions:
    def test_fires_for_named_approver(self):
        stop = SpecificApproverStop(approver_id="cfo", id="stop-1")
        workflow = Workflow(id="wf", name="WF", company_id="c", stop_conditions=(stop,))
        assert stop_condition_fires(workflow, "cfo") is stop

    def test_silent_for_other_approvers(self):
        stop = SpecificApproverStop(approver_id="cfo")
        workflow = Workflow(id="wf", name="WF", company_id="c", stop_conditions=(stop,))
        assert stop_condition_fires(workflow, "mgr") is None

    def test_no_conditions(self):
        workflow = Workflow(id="wf", name="WF", company_id="c")
        assert stop_condition_fires(workflow, "cfo") is None

    def test_every_stop_type_has_a_rule(self):
        assert set(STOP_RULES) == set(StopConditionType)
