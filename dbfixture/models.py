"""Shared dataclasses used across the resolver, engines and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

DEFAULT_FIXTURE_DUMP = "tests/_data/dump.sql"
POSTGRES_IDENTIFIER = "pgsql"


class EngineKind(str, Enum):
    """Database engines reachable through their command-line tools."""

    MYSQL = "mysql"
    POSTGRESQL = "pgsql"

    @classmethod
    def from_label(cls, label: str) -> EngineKind:
        """Map a DSN prefix or ``database_type`` value onto an engine."""

        if label.lower() == POSTGRES_IDENTIFIER:
            return cls.POSTGRESQL
        return cls.MYSQL


class ArtifactRole(str, Enum):
    """Purpose of a file produced or consumed during a suite run."""

    BEFORE_BACKUP = "before-backup"
    AFTER_BACKUP = "after-backup"
    BASELINE_RESTORE_SOURCE = "baseline-restore-source"
    FIXTURE_DUMP = "fixture-dump"


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Resolved connection parameters for one suite phase."""

    engine: EngineKind
    host: str
    database: str
    port: int | None = None
    login: str | None = None
    user: str | None = None
    password: str | None = None
    baseline_dump: str | None = None
    environment: str = ""
    options: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SuiteRunConfig:
    """Flags and commands driving the before/after suite sequences."""

    backup_before: bool = False
    backup_after: bool = False
    backup_path: str = ""
    migrations: str | None = None
    seed: str | None = None
    fixture_dump: str = DEFAULT_FIXTURE_DUMP
    timeout: float | None = None

    def backup_artifact(self, role: ArtifactRole, environment: str) -> FixtureArtifact:
        """Deterministic backup location for the given role and environment label."""

        if role is ArtifactRole.BEFORE_BACKUP:
            suffix = "_before"
        elif role is ArtifactRole.AFTER_BACKUP:
            suffix = "_after"
        else:
            raise ValueError(f"'{role.value}' is not a backup role")
        return FixtureArtifact(path=Path(f"{self.backup_path}{suffix}{environment}.sql"), role=role)

    def fixture_artifact(self) -> FixtureArtifact:
        return FixtureArtifact(path=Path(self.fixture_dump), role=ArtifactRole.FIXTURE_DUMP)


@dataclass(frozen=True, slots=True)
class FixtureArtifact:
    """A file on disk together with the role it plays in the run."""

    path: Path
    role: ArtifactRole


@dataclass(frozen=True, slots=True)
class SuiteEvent:
    """Event payload handed to the suite hooks by the host framework."""

    settings: Mapping[str, Any] = field(default_factory=dict)

    @property
    def current_environment(self) -> str | None:
        value = self.settings.get("current_environment")
        if value is None or value == "":
            return None
        return str(value)

    @property
    def module_configs(self) -> Any:
        """Raw ``modules.config`` entry: a list of per-module blocks or a mapping."""

        modules = self.settings.get("modules")
        if not isinstance(modules, Mapping):
            return None
        return modules.get("config")


__all__ = [
    "ArtifactRole",
    "ConnectionProfile",
    "DEFAULT_FIXTURE_DUMP",
    "EngineKind",
    "FixtureArtifact",
    "POSTGRES_IDENTIFIER",
    "SuiteEvent",
    "SuiteRunConfig",
]
