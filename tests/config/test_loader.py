"""
Tests for expense_config.loader and get_active_settings.
"""

from pathlib import Path

import pytest
import yaml

from expense_config import EngineSettings, get_active_settings, load_directory_fixture
from expense_config.loader import (
    parse_bool,
    parse_completion,
    parse_settings,
    parse_step_approver,
    parse_user,
    parse_workflow,
)
from expense_kernel.domain import (
    AllApprovers,
    AnyApprover,
    DirectManager,
    PercentageOfApprovers,
    Role,
    SpecificApproverStop,
    SpecificUser,
)
from expense_kernel.exceptions import WorkflowConfigError


def _workflow_doc(**overrides) -> dict:
    doc = {
        "id": "wf-1",
        "name": "Travel",
        "company_id": "acme",
        "is_default": True,
        "steps": [
            {
                "id": "s1",
                "name": "Manager",
                "approvers": [{"type": "DirectManager"}],
                "completion": {"type": "All"},
            },
            {
                "id": "s2",
                "approvers": [
                    {"type": "SpecificUser", "user_id": "u-fin1"},
                    {"type": "SpecificUser", "user_id": "u-fin2"},
                ],
                "completion": {"type": "Percentage", "value": 50},
            },
        ],
        "stop_conditions": [{"type": "SpecificApprover", "approver_id": "u-cfo"}],
    }
    doc.update(overrides)
    return doc


class TestParseWorkflow:
    def test_full_document(self):
        workflow = parse_workflow(_workflow_doc())

        assert workflow.id == "wf-1"
        assert workflow.is_default is True
        assert workflow.steps[0].approvers == (DirectManager(),)
        assert workflow.steps[0].completion == AllApprovers()
        assert workflow.steps[1].name == "s2"
        assert workflow.steps[1].approvers == (
            SpecificUser(user_id="u-fin1"),
            SpecificUser(user_id="u-fin2"),
        )
        assert workflow.steps[1].completion == PercentageOfApprovers(50)
        assert workflow.stop_conditions == (SpecificApproverStop(approver_id="u-cfo"),)

    def test_missing_company_raises_config_error(self):
        doc = _workflow_doc()
        del doc["company_id"]

        with pytest.raises(WorkflowConfigError) as exc_info:
            parse_workflow(doc)

        assert exc_info.value.workflow_id == "wf-1"
        assert "company_id" in exc_info.value.reason

    def test_unknown_approver_type_raises_config_error(self):
        doc = _workflow_doc(steps=[{"id": "s1", "approvers": [{"type": "Committee"}]}])

        with pytest.raises(WorkflowConfigError):
            parse_workflow(doc)

    def test_out_of_range_percentage_raises_config_error(self):
        doc = _workflow_doc(
            steps=[{"id": "s1", "completion": {"type": "Percentage", "value": 150}}]
        )

        with pytest.raises(WorkflowConfigError):
            parse_workflow(doc)

    def test_defaults(self):
        workflow = parse_workflow({"id": "wf-2", "company_id": "acme"})

        assert workflow.name == "wf-2"
        assert workflow.steps == ()
        assert workflow.stop_conditions == ()
        assert workflow.is_default is False


class TestVariantParsers:
    def test_missing_completion_is_all(self):
        assert parse_completion(None) == AllApprovers()

    def test_any_completion(self):
        assert parse_completion({"type": "Any"}) == AnyApprover()

    def test_percentage_without_value_is_full(self):
        assert parse_completion({"type": "Percentage"}) == PercentageOfApprovers(100)

    def test_specific_user_keeps_descriptor_id(self):
        approver = parse_step_approver({"type": "SpecificUser", "user_id": 7, "id": "a1"})
        assert approver == SpecificUser(user_id="7", id="a1")


class TestParseUser:
    def test_user_fields(self):
        user = parse_user({
            "id": "u1", "name": "Ann", "role": "Manager",
            "company_id": "acme", "manager_id": "u0",
        })

        assert user.role == Role.MANAGER
        assert user.manager_id == "u0"
        assert user.email is None

    def test_missing_role_raises(self):
        with pytest.raises(KeyError):
            parse_user({"id": "u1", "name": "Ann", "company_id": "acme"})


class TestDirectoryFixture:
    def test_demo_company_loads(self, demo_fixture):
        ids = {u.id for u in demo_fixture.users}

        assert {"u-admin", "u-cfo", "u-mgr", "u-fin1", "u-fin2", "u-emp"} <= ids
        assert [w.id for w in demo_fixture.workflows] == ["wf-standard"]

    def test_roundtrip_from_file(self, tmp_path: Path):
        path = tmp_path / "directory.yaml"
        path.write_text(yaml.safe_dump({
            "users": [{"id": "u1", "name": "Ann", "role": "Admin", "company_id": "c"}],
            "workflows": [{"id": "wf", "company_id": "c", "is_default": "yes"}],
        }))

        fixture = load_directory_fixture(path)

        assert fixture.users[0].role == Role.ADMIN
        assert fixture.workflows[0].is_default is True


class TestSettings:
    @pytest.mark.parametrize("raw,expected", [
        (True, True), ("true", True), ("1", True), ("YES", True),
        (False, False), ("false", False), ("0", False), ("", False),
    ])
    def test_parse_bool(self, raw, expected):
        assert parse_bool(raw) is expected

    def test_parse_settings_defaults(self):
        assert parse_settings({}) == EngineSettings()

    def test_bundled_defaults(self):
        settings = get_active_settings(environ={})

        assert settings.strict_integrity is False
        assert settings.verify_with_resolver is True
        assert settings.max_action_retries == 3

    def test_explicit_file(self, tmp_path: Path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump({
            "settings": {"strict_integrity": True, "max_action_retries": 5,
                         "default_currency": "eur"},
        }))

        settings = get_active_settings(path, environ={})

        assert settings.strict_integrity is True
        assert settings.max_action_retries == 5
        assert settings.default_currency == "EUR"

    def test_config_path_from_environment(self, tmp_path: Path):
        path = tmp_path / "env.yaml"
        path.write_text(yaml.safe_dump({"settings": {"log_level": "debug"}}))

        settings = get_active_settings(environ={"EXPENSE_WORKFLOW_CONFIG": str(path)})

        assert settings.log_level == "DEBUG"

    def test_environment_overrides_file(self):
        settings = get_active_settings(environ={
            "EXPENSE_WORKFLOW_STRICT": "true",
            "EXPENSE_WORKFLOW_DATABASE_URL": "sqlite://",
            "EXPENSE_WORKFLOW_LOG_LEVEL": "warning",
        })

        assert settings.strict_integrity is True
        assert settings.database_url == "sqlite://"
        assert settings.log_level == "WARNING"

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            get_active_settings(tmp_path / "absent.yaml", environ={})

    def test_emits_config_trace(self, captured_logs):
        get_active_settings(environ={})

        traces = [r for r in captured_logs() if r.get("trace_type") == "EXPENSE_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["source"].endswith("default.yaml")
