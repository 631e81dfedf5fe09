"""Engine adapters producing dump/restore command lines."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from .models import ConnectionProfile, EngineKind
from .process import ProcessCommand

POSTGRES_SUPERUSER = "postgres"


@runtime_checkable
class EngineAdapter(Protocol):
    """Builds the external commands for one database engine."""

    kind: EngineKind

    def build_dump_command(self, profile: ConnectionProfile, destination: Path) -> ProcessCommand: ...

    def build_restore_command(self, profile: ConnectionProfile, source: Path) -> ProcessCommand: ...


class PostgresAdapter:
    """pg_dump / pg_restore using the tar archive format."""

    kind = EngineKind.POSTGRESQL

    def build_dump_command(self, profile: ConnectionProfile, destination: Path) -> ProcessCommand:
        args = ["pg_dump", "-h", profile.host]
        args += _flag("-p", profile.port)
        args += _flag("-U", profile.login or profile.user)
        args += ["-d", profile.database, "-F", "t", "--file", str(destination)]
        return ProcessCommand(args=tuple(args), writes=destination)

    def build_restore_command(self, profile: ConnectionProfile, source: Path) -> ProcessCommand:
        # Restores run as the superuser, never as the application login.
        args = ["pg_restore", "-h", profile.host]
        args += _flag("-p", profile.port)
        args += ["-U", POSTGRES_SUPERUSER, "-d", profile.database, "-c", str(source)]
        return ProcessCommand(args=tuple(args))


class MySQLAdapter:
    """mysqldump / mysql client with plain SQL dumps."""

    kind = EngineKind.MYSQL

    def build_dump_command(self, profile: ConnectionProfile, destination: Path) -> ProcessCommand:
        args = ["mysqldump", "--routines", "--databases", *self._connection_args(profile)]
        return ProcessCommand(
            args=tuple(args),
            stdout_path=destination,
            writes=destination,
            secret=profile.password or None,
        )

    def build_restore_command(self, profile: ConnectionProfile, source: Path) -> ProcessCommand:
        args = ["mysql", *self._connection_args(profile)]
        return ProcessCommand(args=tuple(args), stdin_path=source, secret=profile.password or None)

    @staticmethod
    def _connection_args(profile: ConnectionProfile) -> list[str]:
        args = ["-h", profile.host]
        args += _flag("-P", profile.port)
        args += _flag("-u", profile.user)
        if profile.password:
            args.append(f"-p{profile.password}")
        args.append(profile.database)
        return args


_ADAPTERS: dict[EngineKind, EngineAdapter] = {
    EngineKind.MYSQL: MySQLAdapter(),
    EngineKind.POSTGRESQL: PostgresAdapter(),
}


def adapter_for(kind: EngineKind) -> EngineAdapter:
    """Return the adapter for a resolved engine kind."""

    return _ADAPTERS[kind]


def _flag(name: str, value: object | None) -> list[str]:
    if value is None or value == "":
        return []
    return [name, str(value)]


__all__ = [
    "EngineAdapter",
    "MySQLAdapter",
    "POSTGRES_SUPERUSER",
    "PostgresAdapter",
    "adapter_for",
]
