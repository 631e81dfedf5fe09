"""Before/after suite sequencing of backup, restore, migrate, seed and dump steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import ExtensionSettings
from .consumer import CollaboratorUnavailable, DbConsumer, ModuleLookup, lookup_db_consumer
from .models import ArtifactRole, FixtureArtifact, SuiteEvent
from .process import ExternalProcessFailure, ProcessCommand, ProcessRunner, SubprocessRunner
from .resolver import ConnectionResolver, ResolvedPhase

LOG = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    """Lifecycle position of the orchestrator between hook invocations."""

    IDLE = "idle"
    BEFORE_SUITE_RUNNING = "before-suite-running"
    READY = "ready"
    AFTER_SUITE_RUNNING = "after-suite-running"
    FAILED = "failed"


class PhaseStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class OrchestratorStateError(RuntimeError):
    """Raised when a hook fires while another phase is still running."""


@dataclass(frozen=True, slots=True)
class StepRecord:
    """Outcome of one step, in execution order."""

    name: str
    ok: bool
    command: str | None = None
    detail: str | None = None


@dataclass(slots=True)
class PhaseReport:
    """What a before/after suite phase did."""

    phase: str
    status: PhaseStatus = PhaseStatus.COMPLETED
    steps: list[StepRecord] = field(default_factory=list)
    artifacts: list[FixtureArtifact] = field(default_factory=list)
    failures: list[ExternalProcessFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is PhaseStatus.COMPLETED and not self.failures

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(step.name for step in self.steps)


class FixtureOrchestrator:
    """Drives the database through backup, baseline restore, migrate, seed and fixture dump."""

    EVENTS = {
        "suite.before": "before_suite",
        "suite.after": "after_suite",
    }

    def __init__(
        self,
        settings: ExtensionSettings,
        modules: ModuleLookup,
        *,
        runner: ProcessRunner | None = None,
    ) -> None:
        self._settings = settings
        self._modules = modules
        self._runner = runner or SubprocessRunner()
        self._state = OrchestratorState.IDLE

    @property
    def state(self) -> OrchestratorState:
        return self._state

    def dispatch(self, event_name: str, event: SuiteEvent) -> PhaseReport:
        """Route a host framework event to its hook."""

        try:
            handler = getattr(self, self.EVENTS[event_name])
        except KeyError:
            raise ValueError(f"Unsupported event '{event_name}'") from None
        return handler(event)

    def before_suite(self, event: SuiteEvent) -> PhaseReport:
        report = PhaseReport(phase="before-suite")
        consumer = self._begin(report, OrchestratorState.BEFORE_SUITE_RUNNING)
        if consumer is None:
            return report
        try:
            self._run_before(report, consumer, event)
        except Exception:
            self._fail(report)
            raise
        self._state = OrchestratorState.READY
        return report

    def after_suite(self, event: SuiteEvent) -> PhaseReport:
        report = PhaseReport(phase="after-suite")
        consumer = self._begin(report, OrchestratorState.AFTER_SUITE_RUNNING)
        if consumer is None:
            return report
        try:
            self._run_after(report, consumer, event)
        except Exception:
            self._fail(report)
            raise
        self._state = OrchestratorState.IDLE
        return report

    def _run_before(self, report: PhaseReport, consumer: DbConsumer, event: SuiteEvent) -> None:
        phase = self._resolve(consumer, event)
        config = phase.run_config

        if config.backup_before:
            artifact = config.backup_artifact(ArtifactRole.BEFORE_BACKUP, phase.profile.environment)
            LOG.info("Backing up the local database to %s...", artifact.path)
            self._dump(report, phase, "backup-before", artifact)

        # Point of no return: the baseline overwrites whatever was there.
        baseline = phase.profile.baseline_dump
        LOG.info("Restoring local database from baseline %s...", baseline)
        consumer.reconfigure({"populate": True, "dump": baseline})
        consumer.initialize()
        report.steps.append(StepRecord(name="restore-baseline", ok=True, detail=baseline))
        if baseline:
            report.artifacts.append(
                FixtureArtifact(path=Path(baseline), role=ArtifactRole.BASELINE_RESTORE_SOURCE)
            )
        LOG.info("Done.")

        if config.migrations:
            LOG.info("Running migrations...")
            self._execute(report, "migrate", ProcessCommand.shell_line(config.migrations), phase, fatal=True)
        if config.seed:
            LOG.info("Seeding database...")
            self._execute(report, "seed", ProcessCommand.shell_line(config.seed), phase, fatal=True)

        fixture = config.fixture_artifact()
        LOG.info("Creating fixture dump %s...", fixture.path)
        if not self._dump(report, phase, "dump-fixture", fixture):
            # The Db module stays on the baseline it was just populated from.
            LOG.warning(
                "Fixture dump failed; Db module left on baseline %s",
                baseline,
                extra={"fixture": str(fixture.path)},
            )
            report.steps.append(StepRecord(name="keep-baseline", ok=True, detail=baseline))
            return

        LOG.info("Re-configuring Db module to restore from %s...", fixture.path)
        consumer.reconfigure({"dump": str(fixture.path)})
        consumer.initialize()
        report.steps.append(StepRecord(name="reconfigure-consumer", ok=True, detail=str(fixture.path)))
        LOG.info("Done.")

    def _run_after(self, report: PhaseReport, consumer: DbConsumer, event: SuiteEvent) -> None:
        phase = self._resolve(consumer, event)
        config = phase.run_config
        environment = phase.profile.environment

        if config.backup_after:
            artifact = config.backup_artifact(ArtifactRole.AFTER_BACKUP, environment)
            LOG.info("Backing up the local database to %s...", artifact.path)
            self._dump(report, phase, "backup-after", artifact)

        if config.backup_before and consumer.get_config("cleanup"):
            source = config.backup_artifact(ArtifactRole.BEFORE_BACKUP, environment)
            LOG.info("Restoring the database from backup %s...", source.path)
            command = phase.adapter.build_restore_command(phase.profile, source.path)
            self._execute(report, "rollback", command, phase, fatal=False)

    def _begin(self, report: PhaseReport, running: OrchestratorState) -> DbConsumer | None:
        if self._state in (OrchestratorState.BEFORE_SUITE_RUNNING, OrchestratorState.AFTER_SUITE_RUNNING):
            raise OrchestratorStateError(f"Cannot start {report.phase} while {self._state.value}")
        try:
            consumer = lookup_db_consumer(self._modules)
        except CollaboratorUnavailable as exc:
            LOG.warning("Skipping %s: %s", report.phase, exc)
            report.status = PhaseStatus.SKIPPED
            return None
        self._state = running
        return consumer

    def _fail(self, report: PhaseReport) -> None:
        self._state = OrchestratorState.FAILED
        report.status = PhaseStatus.FAILED
        LOG.error(
            "%s aborted after steps: %s",
            report.phase,
            ", ".join(report.step_names) or "none",
        )

    def _resolve(self, consumer: DbConsumer, event: SuiteEvent) -> ResolvedPhase:
        phase = ConnectionResolver(self._settings).resolve(consumer, event)
        LOG.debug(
            "Resolved connection",
            extra={
                "engine": phase.profile.engine.value,
                "host": phase.profile.host,
                "database": phase.profile.database,
                "environment": phase.profile.environment,
            },
        )
        return phase

    def _dump(self, report: PhaseReport, phase: ResolvedPhase, step: str, artifact: FixtureArtifact) -> bool:
        command = phase.adapter.build_dump_command(phase.profile, artifact.path)
        if not self._execute(report, step, command, phase, fatal=False):
            return False
        report.artifacts.append(artifact)
        return True

    def _execute(
        self,
        report: PhaseReport,
        step: str,
        command: ProcessCommand,
        phase: ResolvedPhase,
        *,
        fatal: bool,
    ) -> bool:
        result = self._runner.run(command, timeout=phase.run_config.timeout)
        if result.ok:
            report.steps.append(StepRecord(name=step, ok=True, command=command.display()))
            LOG.info("Done.")
            return True
        failure = ExternalProcessFailure(step, command, result, fatal=fatal)
        report.steps.append(StepRecord(name=step, ok=False, command=command.display(), detail=str(failure)))
        LOG.error(
            "%s",
            failure,
            extra={"step": step, "exit_code": result.exit_code, "output": result.output},
        )
        if fatal:
            raise failure
        report.failures.append(failure)
        return False


__all__ = [
    "FixtureOrchestrator",
    "OrchestratorState",
    "OrchestratorStateError",
    "PhaseReport",
    "PhaseStatus",
    "StepRecord",
]
