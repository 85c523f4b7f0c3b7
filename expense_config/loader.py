"""
Configuration Loader (``expense_config.loader``).

Responsibility
--------------
Loads YAML documents and parses them into typed domain values:
engine settings, users and workflows.  Runtime callers obtain settings
through ``expense_config.get_active_settings()``; the fixture loader is
used to seed the in-memory collaborators.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on
``expense_kernel.domain`` and ``expense_kernel.exceptions``; the engines
never import it.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Variant ``type`` tags are parsed through one table per variant family;
  an unknown tag is an error, never skipped.
* Malformed workflow documents raise ``WorkflowConfigError`` naming the
  workflow; no silent defaults for required fields.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing keys / unknown tags in a workflow -> ``WorkflowConfigError``.
* Missing keys in a user entry -> ``KeyError`` propagates.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from expense_config.schema import DirectoryFixture, EngineSettings
from expense_kernel.domain.expense import (
    AllApprovers,
    AnyApprover,
    CompletionCondition,
    CompletionType,
    DirectManager,
    PercentageOfApprovers,
    Role,
    SpecificApproverStop,
    SpecificUser,
    StepApprover,
    StepApproverType,
    StopCondition,
    StopConditionType,
    User,
    Workflow,
    WorkflowStep,
)
from expense_kernel.exceptions import WorkflowConfigError

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_bool(value: Any) -> bool:
    """Parse a YAML or environment boolean ("true", "1", True ...)."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_STRINGS


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse ``EngineSettings`` from the ``settings`` mapping of a document."""
    defaults = EngineSettings()
    return EngineSettings(
        strict_integrity=parse_bool(data.get("strict_integrity", defaults.strict_integrity)),
        verify_with_resolver=parse_bool(
            data.get("verify_with_resolver", defaults.verify_with_resolver)
        ),
        max_action_retries=int(data.get("max_action_retries", defaults.max_action_retries)),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
        database_url=str(data.get("database_url", defaults.database_url)),
        default_currency=str(data.get("default_currency", defaults.default_currency)).upper(),
    )


def parse_user(data: dict[str, Any]) -> User:
    """Parse a ``User``. ``id``, ``name``, ``role`` and ``company_id`` are required."""
    return User(
        id=str(data["id"]),
        name=data["name"],
        role=Role(data["role"]),
        company_id=str(data["company_id"]),
        manager_id=str(data["manager_id"]) if data.get("manager_id") else None,
        email=data.get("email"),
    )


# ---------------------------------------------------------------------------
# Variant parsers
# ---------------------------------------------------------------------------

_APPROVER_PARSERS: dict[StepApproverType, Callable[[dict[str, Any]], StepApprover]] = {
    StepApproverType.DIRECT_MANAGER: lambda d: DirectManager(id=str(d.get("id", ""))),
    StepApproverType.SPECIFIC_USER: lambda d: SpecificUser(
        user_id=str(d["user_id"]), id=str(d.get("id", "")),
    ),
}

_COMPLETION_PARSERS: dict[CompletionType, Callable[[dict[str, Any]], CompletionCondition]] = {
    CompletionType.ALL: lambda d: AllApprovers(),
    CompletionType.ANY: lambda d: AnyApprover(),
    # Missing value means 100%, as in the original workflow editor
    CompletionType.PERCENTAGE: lambda d: PercentageOfApprovers(int(d.get("value", 100))),
}

_STOP_PARSERS: dict[StopConditionType, Callable[[dict[str, Any]], StopCondition]] = {
    StopConditionType.SPECIFIC_APPROVER: lambda d: SpecificApproverStop(
        approver_id=str(d["approver_id"]), id=str(d.get("id", "")),
    ),
}


def parse_step_approver(data: dict[str, Any]) -> StepApprover:
    """Parse one approver descriptor from ``{type: ..., ...}``."""
    return _APPROVER_PARSERS[StepApproverType(data["type"])](data)


def parse_completion(data: dict[str, Any] | None) -> CompletionCondition:
    """Parse a completion condition; absent means All."""
    if not data:
        return AllApprovers()
    return _COMPLETION_PARSERS[CompletionType(data["type"])](data)


def parse_stop_condition(data: dict[str, Any]) -> StopCondition:
    """Parse one stop condition from ``{type: ..., ...}``."""
    return _STOP_PARSERS[StopConditionType(data["type"])](data)


def parse_step(data: dict[str, Any]) -> WorkflowStep:
    """Parse a ``WorkflowStep``."""
    return WorkflowStep(
        id=str(data["id"]),
        name=data.get("name", str(data["id"])),
        approvers=tuple(parse_step_approver(a) for a in data.get("approvers") or ()),
        completion=parse_completion(data.get("completion")),
    )


def parse_workflow(data: dict[str, Any]) -> Workflow:
    """
    Parse a ``Workflow`` from a dict.

    Raises:
        WorkflowConfigError: on missing keys, unknown variant tags or an
            out-of-range percentage.
    """
    workflow_id = str(data.get("id", "<unnamed>"))
    try:
        return Workflow(
            id=str(data["id"]),
            name=data.get("name", workflow_id),
            company_id=str(data["company_id"]),
            steps=tuple(parse_step(s) for s in data.get("steps") or ()),
            stop_conditions=tuple(
                parse_stop_condition(c) for c in data.get("stop_conditions") or ()
            ),
            is_default=parse_bool(data.get("is_default", False)),
        )
    except KeyError as exc:
        raise WorkflowConfigError(workflow_id, f"missing key {exc.args[0]!r}") from exc
    except (TypeError, ValueError) as exc:
        raise WorkflowConfigError(workflow_id, str(exc)) from exc


def parse_directory(data: dict[str, Any]) -> DirectoryFixture:
    """Parse a document holding ``users`` and ``workflows`` lists."""
    return DirectoryFixture(
        users=tuple(parse_user(u) for u in data.get("users") or ()),
        workflows=tuple(parse_workflow(w) for w in data.get("workflows") or ()),
    )


def load_directory_fixture(path: Path) -> DirectoryFixture:
    """Load users and workflows from a YAML file."""
    return parse_directory(load_yaml_file(path))
