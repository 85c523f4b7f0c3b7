"""
expense_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain engine settings at runtime through
    ``get_active_settings()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML-driven.  Sits above ``expense_kernel`` and below
    ``expense_services``.  The kernel and the engines MUST NEVER import
    from ``expense_config``.

Resolution order (later wins):
    1. ``EngineSettings`` defaults
    2. the ``settings`` mapping of the YAML file given as ``path``, or
       named by ``EXPENSE_WORKFLOW_CONFIG``, or ``sets/default.yaml``
    3. environment overrides ``EXPENSE_WORKFLOW_STRICT``,
       ``EXPENSE_WORKFLOW_DATABASE_URL``, ``EXPENSE_WORKFLOW_LOG_LEVEL``

Audit relevance:
    Every call emits an ``EXPENSE_CONFIG_TRACE`` log entry naming the
    source file and the effective strictness.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path

from expense_config.defaults import default_workflow_template
from expense_config.loader import (
    load_directory_fixture,
    load_yaml_file,
    parse_bool,
    parse_settings,
    parse_workflow,
)
from expense_config.schema import DirectoryFixture, EngineSettings
from expense_config.validator import (
    WorkflowValidationResult,
    ensure_valid_workflow,
    validate_company_workflows,
    validate_workflow,
)

_logger = logging.getLogger("expense_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"

ENV_CONFIG_PATH = "EXPENSE_WORKFLOW_CONFIG"
ENV_STRICT = "EXPENSE_WORKFLOW_STRICT"
ENV_DATABASE_URL = "EXPENSE_WORKFLOW_DATABASE_URL"
ENV_LOG_LEVEL = "EXPENSE_WORKFLOW_LOG_LEVEL"


def get_active_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """The ONLY public settings entrypoint.

    Args:
        path: YAML file to read.  Defaults to ``$EXPENSE_WORKFLOW_CONFIG``
            or the bundled ``sets/default.yaml``.
        environ: Environment mapping (defaults to ``os.environ``).

    Raises:
        FileNotFoundError: if an explicitly named file does not exist.
        yaml.YAMLError: if the file is not valid YAML.
    """
    env = os.environ if environ is None else environ

    source = path
    if source is None and env.get(ENV_CONFIG_PATH):
        source = Path(env[ENV_CONFIG_PATH])
    if source is None:
        source = _DEFAULT_CONFIG_FILE

    settings = parse_settings(load_yaml_file(source).get("settings") or {})

    if ENV_STRICT in env:
        settings = replace(settings, strict_integrity=parse_bool(env[ENV_STRICT]))
    if env.get(ENV_DATABASE_URL):
        settings = replace(settings, database_url=env[ENV_DATABASE_URL])
    if env.get(ENV_LOG_LEVEL):
        settings = replace(settings, log_level=env[ENV_LOG_LEVEL].upper())

    _logger.info(
        "EXPENSE_CONFIG_TRACE",
        extra={
            "trace_type": "EXPENSE_CONFIG_TRACE",
            "source": str(source),
            "strict_integrity": settings.strict_integrity,
            "verify_with_resolver": settings.verify_with_resolver,
        },
    )
    return settings


__all__ = [
    "DirectoryFixture",
    "EngineSettings",
    "WorkflowValidationResult",
    "default_workflow_template",
    "ensure_valid_workflow",
    "get_active_settings",
    "load_directory_fixture",
    "parse_workflow",
    "validate_company_workflows",
    "validate_workflow",
]
