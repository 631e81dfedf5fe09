"""Run a suite phase from the command line: `python -m dbfixture before|after`."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import CONFIG_FILE, ConfigurationError, FileConfig, load_config
from .consumer import DB_MODULE, ModuleRegistry
from .dbmodule import ShellDbConsumer
from .models import SuiteEvent
from .orchestrator import FixtureOrchestrator, PhaseReport
from .process import DryRunProcessRunner, ExternalProcessFailure, ProcessRunner, SubprocessRunner

LOG = logging.getLogger("dbfixture")

PHASES = {"before": "suite.before", "after": "suite.after"}


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="dbfixture", description=__doc__)
    parser.add_argument("phase", choices=sorted(PHASES), help="Suite phase to run")
    parser.add_argument("--config", type=Path, default=CONFIG_FILE, help="Path to dbfixture.toml")
    parser.add_argument("--env", default=None, help="Current environment name")
    parser.add_argument("--dry-run", action="store_true", help="Log commands without executing them")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def build_orchestrator(
    config: FileConfig,
    environment: str | None,
    runner: ProcessRunner,
) -> FixtureOrchestrator:
    consumer = ShellDbConsumer(
        config.db_settings_for(environment),
        runner=runner,
        extension=config.extension,
        timeout=config.extension.timeout,
    )
    return FixtureOrchestrator(config.extension, ModuleRegistry({DB_MODULE: consumer}), runner=runner)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    runner: ProcessRunner = DryRunProcessRunner() if args.dry_run else SubprocessRunner()
    try:
        config = load_config(args.config)
        orchestrator = build_orchestrator(config, args.env, runner)
        event = SuiteEvent(settings=config.suite_settings(args.env))
        report = orchestrator.dispatch(PHASES[args.phase], event)
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return 2
    except ExternalProcessFailure as exc:
        LOG.error("Aborted: %s", exc)
        return 1
    _summarize(report)
    return 0 if report.ok else 1


def _summarize(report: PhaseReport) -> None:
    LOG.info("%s %s", report.phase, report.status.value)
    for step in report.steps:
        LOG.info("  %-22s %s", step.name, "ok" if step.ok else "FAILED")
    for artifact in report.artifacts:
        LOG.info("  wrote %s (%s)", artifact.path, artifact.role.value)


if __name__ == "__main__":
    raise SystemExit(main())
