"""External process execution for dump, restore, migrate and seed steps."""

from __future__ import annotations

import logging
import shlex
import subprocess
from contextlib import ExitStack
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol, runtime_checkable

LOG = logging.getLogger(__name__)

MASK = "****"
PARTIAL_SUFFIX = ".partial"


@dataclass(frozen=True, slots=True)
class ProcessCommand:
    """An external command as data: argv or a shell line, plus file redirection."""

    args: tuple[str, ...]
    shell: bool = False
    stdin_path: Path | None = None
    stdout_path: Path | None = None
    secret: str | None = None
    writes: Path | None = None

    @classmethod
    def shell_line(cls, line: str) -> ProcessCommand:
        """Wrap a user-supplied shell command such as a migration runner."""

        return cls(args=(line,), shell=True)

    @property
    def program(self) -> str:
        if self.shell:
            return "sh"
        return self.args[0]

    def display(self) -> str:
        """Printable rendering with the secret masked."""

        if self.shell:
            text = self.args[0]
        else:
            text = shlex.join(self._masked(arg) for arg in self.args)
        if self.stdin_path is not None:
            text = f"{text} < {self.stdin_path}"
        if self.stdout_path is not None:
            text = f"{text} > {self.stdout_path}"
        return text

    def staged(self, partial: Path) -> ProcessCommand:
        """Copy of this command writing to ``partial`` instead of its destination."""

        target = str(self.writes)
        return replace(
            self,
            args=tuple(str(partial) if arg == target else arg for arg in self.args),
            stdout_path=partial if self.stdout_path == self.writes else self.stdout_path,
            writes=partial,
        )

    def _masked(self, arg: str) -> str:
        if not self.secret:
            return arg
        if arg == self.secret:
            return MASK
        if arg == f"-p{self.secret}":
            return f"-p{MASK}"
        return arg


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Exit status and captured output of a finished command."""

    exit_code: int
    output: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and self.error is None


class ExternalProcessFailure(RuntimeError):
    """Raised (or recorded) when an external command exits unsuccessfully."""

    def __init__(self, step: str, command: ProcessCommand, result: ProcessResult, *, fatal: bool) -> None:
        self.step = step
        self.command = command
        self.result = result
        self.fatal = fatal
        detail = result.error or result.output.strip() or "no output"
        super().__init__(
            f"Step '{step}' failed with exit status {result.exit_code}: {command.display()} ({detail})"
        )


@runtime_checkable
class ProcessRunner(Protocol):
    """Executes a command synchronously and reports how it went."""

    def run(self, command: ProcessCommand, *, timeout: float | None = None) -> ProcessResult:
        """Run the command to completion (or until the timeout expires)."""


class SubprocessRunner:
    """Process runner backed by :func:`subprocess.run`.

    Commands that write a file produce it under a ``.partial`` sibling first; the
    destination is replaced only after a zero exit status, so a failed dump never
    clobbers the previous artifact.
    """

    def run(self, command: ProcessCommand, *, timeout: float | None = None) -> ProcessResult:
        LOG.debug("Running external command", extra={"command": command.display()})
        target = command.writes
        if target is None:
            return self._execute(command, timeout)
        partial = target.with_name(f"{target.name}{PARTIAL_SUFFIX}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            return ProcessResult(exit_code=-1, error=f"cannot create output directory: {exc}")
        result = self._execute(command.staged(partial), timeout)
        if not result.ok:
            partial.unlink(missing_ok=True)
            return result
        try:
            partial.replace(target)
        except OSError as exc:
            return ProcessResult(exit_code=-1, output=result.output, error=f"cannot move {partial} into place: {exc}")
        return result

    def _execute(self, command: ProcessCommand, timeout: float | None) -> ProcessResult:
        with ExitStack() as stack:
            stdin = None
            stdout = subprocess.PIPE
            try:
                if command.stdin_path is not None:
                    stdin = stack.enter_context(command.stdin_path.open("rb"))
                if command.stdout_path is not None:
                    stdout = stack.enter_context(command.stdout_path.open("wb"))
            except OSError as exc:
                return ProcessResult(exit_code=-1, error=f"cannot open redirection file: {exc}")
            try:
                completed = subprocess.run(
                    command.args[0] if command.shell else list(command.args),
                    shell=command.shell,
                    stdin=stdin,
                    stdout=stdout,
                    stderr=subprocess.STDOUT if command.stdout_path is None else subprocess.PIPE,
                    timeout=timeout,
                    check=False,
                )
            except FileNotFoundError as exc:
                return ProcessResult(exit_code=127, error=f"{command.program} not found: {exc}")
            except subprocess.TimeoutExpired:
                return ProcessResult(exit_code=-1, error=f"timed out after {timeout}s")
            except OSError as exc:
                return ProcessResult(exit_code=126, error=f"{command.program} could not be executed: {exc}")
        output = _decode(completed.stdout) + _decode(completed.stderr)
        return ProcessResult(exit_code=completed.returncode, output=output)


class DryRunProcessRunner:
    """Runner that logs commands instead of executing them."""

    def __init__(self) -> None:
        self.commands: list[ProcessCommand] = []

    def run(self, command: ProcessCommand, *, timeout: float | None = None) -> ProcessResult:
        self.commands.append(command)
        LOG.info("[dry-run] %s", command.display())
        return ProcessResult(exit_code=0)


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


__all__ = [
    "DryRunProcessRunner",
    "ExternalProcessFailure",
    "ProcessCommand",
    "ProcessResult",
    "ProcessRunner",
    "SubprocessRunner",
]
