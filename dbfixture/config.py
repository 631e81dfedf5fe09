"""Configuration file loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import DEFAULT_FIXTURE_DUMP

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path("dbfixture.toml")


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or malformed."""


class ExtensionSettings(BaseModel):
    """The extension's own settings block."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    backup_before: bool = Field(default=False, alias="backupBefore")
    backup_after: bool = Field(default=False, alias="backupAfter")
    backup_path: str = ""
    migrations: str | None = None
    seed: str | None = None
    fixture_dump: str = DEFAULT_FIXTURE_DUMP
    timeout: float | None = None
    host: str | None = None
    port: int | str | None = None
    login: str | None = None
    database: str | None = None
    database_type: str | None = None


class DbModuleSettings(BaseModel):
    """Settings owned by the Db module (connection, credentials, dump source)."""

    model_config = ConfigDict(frozen=True)

    dsn: str | None = None
    user: str | None = None
    password: str | None = None
    dump: str | None = None
    populate: bool = False
    cleanup: bool = False

    def merged(self, overrides: dict[str, Any]) -> DbModuleSettings:
        """Return a copy with per-environment overrides applied."""

        return self.model_copy(update=overrides)


class EnvironmentConfig(BaseModel):
    """Per-environment overrides for the Db module."""

    db: dict[str, Any] = Field(default_factory=dict)


class FileConfig(BaseModel):
    """Shape of ``dbfixture.toml``."""

    extension: ExtensionSettings = Field(default_factory=ExtensionSettings)
    db: DbModuleSettings = Field(default_factory=DbModuleSettings)
    environments: dict[str, EnvironmentConfig] = Field(default_factory=dict)

    def db_settings_for(self, environment: str | None) -> DbModuleSettings:
        """Db module settings with the named environment's overrides merged in."""

        if environment is None:
            return self.db
        env = self.environments.get(environment)
        if env is None:
            return self.db
        return self.db.merged(env.db)

    def suite_settings(self, environment: str | None) -> dict[str, Any]:
        """Event settings in the shape the host framework hands to suite hooks."""

        settings: dict[str, Any] = {
            "modules": {"config": [{"Db": self.db_settings_for(environment).model_dump()}]},
        }
        if environment:
            settings["current_environment"] = environment
        return settings


def load_config(path: Path | None = None) -> FileConfig:
    """Load configuration from disk; fall back to defaults only if the file is missing."""

    target = path or CONFIG_FILE
    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        LOG.debug("No configuration file found", extra={"path": str(target)})
        return FileConfig()
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigurationError(f"Unreadable configuration file {target}: {exc}") from exc
    try:
        return FileConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration file {target}: {exc}") from exc


__all__ = [
    "CONFIG_FILE",
    "ConfigurationError",
    "DbModuleSettings",
    "EnvironmentConfig",
    "ExtensionSettings",
    "FileConfig",
    "load_config",
]
