"""
Expense workflow configuration schema.

Frozen dataclasses that YAML documents are parsed into by the loader.
``EngineSettings`` governs engine and service behaviour;
``DirectoryFixture`` bundles users and workflows for seeding the
in-memory collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass

from expense_kernel.domain.expense import User, Workflow


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the approval engine and services.

    ``strict_integrity`` turns data-integrity fallbacks (stale step index)
    into ``DataIntegrityError``; leave it off in production where the
    auto-approve fallback is the liveness guarantee.
    """

    strict_integrity: bool = False
    verify_with_resolver: bool = True
    max_action_retries: int = 3
    log_level: str = "INFO"
    database_url: str = "sqlite:///expenses.db"
    default_currency: str = "USD"


@dataclass(frozen=True)
class DirectoryFixture:
    """Users and workflows loaded from a single YAML document."""

    users: tuple[User, ...] = ()
    workflows: tuple[Workflow, ...] = ()
