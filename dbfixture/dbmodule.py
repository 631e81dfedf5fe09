"""Standalone Db module that populates the database through the engine CLIs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from .config import DbModuleSettings, ExtensionSettings
from .models import SuiteEvent
from .process import ExternalProcessFailure, ProcessRunner, SubprocessRunner
from .resolver import ConnectionResolver

LOG = logging.getLogger(__name__)


class ShellDbConsumer:
    """Minimal Db module for running the fixture lifecycle outside a host framework.

    ``initialize()`` restores the configured dump with the engine's restore tool
    when ``populate`` is set; otherwise it only logs the active configuration.
    """

    def __init__(
        self,
        settings: DbModuleSettings,
        *,
        runner: ProcessRunner | None = None,
        extension: ExtensionSettings | None = None,
        timeout: float | None = None,
    ) -> None:
        self._settings = settings
        self._runner = runner or SubprocessRunner()
        self._resolver = ConnectionResolver(extension or ExtensionSettings())
        self._timeout = timeout
        self.initialize_count = 0

    @property
    def settings(self) -> DbModuleSettings:
        return self._settings

    def get_config(self, key: str) -> Any:
        return getattr(self._settings, key, None)

    def reconfigure(self, overrides: Mapping[str, Any]) -> None:
        self._settings = self._settings.merged(dict(overrides))

    def initialize(self) -> None:
        self.initialize_count += 1
        dump = self._settings.dump
        if not (self._settings.populate and dump):
            LOG.debug("Db module initialized without populating", extra={"dump": dump})
            return
        phase = self._resolver.resolve(self, SuiteEvent())
        command = phase.adapter.build_restore_command(phase.profile, Path(dump))
        LOG.info("Populating database from %s", dump)
        result = self._runner.run(command, timeout=self._timeout)
        if not result.ok:
            raise ExternalProcessFailure("populate", command, result, fatal=True)


__all__ = ["ShellDbConsumer"]
