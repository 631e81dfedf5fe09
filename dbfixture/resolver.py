"""Resolution of connection parameters and run flags for a suite phase."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from .config import ConfigurationError, ExtensionSettings
from .consumer import DB_MODULE, DbConsumer
from .engines import EngineAdapter, adapter_for
from .models import ConnectionProfile, EngineKind, SuiteEvent, SuiteRunConfig

LOG = logging.getLogger(__name__)

DSN_KEYS = frozenset({"host", "port", "dbname", "database", "user", "password"})


@dataclass(frozen=True, slots=True)
class ParsedDsn:
    """Engine label and key/value pairs recovered from a DSN."""

    engine: str
    values: Mapping[str, str]

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    @property
    def database(self) -> str | None:
        """``dbname`` takes precedence over ``database`` when both are present."""

        return self.values.get("dbname") or self.values.get("database")


@dataclass(frozen=True, slots=True)
class ResolvedPhase:
    """Everything a phase needs, rebuilt at the start of each hook."""

    profile: ConnectionProfile
    run_config: SuiteRunConfig
    adapter: EngineAdapter


def parse_dsn(dsn: str) -> ParsedDsn:
    """Split ``engine:key=value;key=value`` into its parts."""

    engine, sep, remainder = dsn.partition(":")
    engine = engine.strip()
    if not sep or not engine:
        raise ConfigurationError(f"DSN '{dsn}' does not start with '<engine>:'")
    values: dict[str, str] = {}
    for segment in remainder.split(";"):
        if not segment.strip():
            continue
        key, eq, value = segment.partition("=")
        if not eq:
            raise ConfigurationError(f"DSN segment '{segment}' is not a key=value pair")
        values[key.strip()] = value.strip()
    return ParsedDsn(engine=engine, values=MappingProxyType(values))


class ConnectionResolver:
    """Builds the connection profile and run config from settings, consumer and event."""

    def __init__(self, settings: ExtensionSettings) -> None:
        self._settings = settings

    def resolve(self, consumer: DbConsumer, event: SuiteEvent) -> ResolvedPhase:
        profile = self.resolve_profile(consumer, event)
        return ResolvedPhase(
            profile=profile,
            run_config=self.run_config(),
            adapter=adapter_for(profile.engine),
        )

    def run_config(self) -> SuiteRunConfig:
        settings = self._settings
        return SuiteRunConfig(
            backup_before=bool(settings.backup_before),
            backup_after=bool(settings.backup_after),
            backup_path=settings.backup_path or "",
            migrations=settings.migrations or None,
            seed=settings.seed or None,
            fixture_dump=settings.fixture_dump,
            timeout=settings.timeout,
        )

    def resolve_profile(self, consumer: DbConsumer, event: SuiteEvent) -> ConnectionProfile:
        dsn = consumer.get_config("dsn")
        if dsn:
            fields = self._from_dsn(parse_dsn(str(dsn)), consumer)
        else:
            fields = self._from_settings(consumer)
        environment = event.current_environment
        fields["environment"] = f"_{environment}" if environment else ""
        fields["baseline_dump"] = self._baseline_dump(consumer, event)
        return self._build(fields)

    def _from_dsn(self, parsed: ParsedDsn, consumer: DbConsumer) -> dict[str, Any]:
        engine = EngineKind.from_label(parsed.engine)
        if engine is EngineKind.POSTGRESQL:
            user = parsed.get("user")
            password = parsed.get("password")
        else:
            user = consumer.get_config("user")
            password = consumer.get_config("password")
        options = {key: value for key, value in parsed.values.items() if key not in DSN_KEYS}
        return {
            "engine_label": parsed.engine,
            "host": parsed.get("host"),
            "port": parsed.get("port"),
            "database": parsed.database,
            "login": user,
            "user": user,
            "password": password,
            "options": MappingProxyType(options),
        }

    def _from_settings(self, consumer: DbConsumer) -> dict[str, Any]:
        settings = self._settings
        return {
            "engine_label": settings.database_type,
            "host": settings.host,
            "port": settings.port,
            "database": settings.database,
            "login": settings.login,
            "user": consumer.get_config("user"),
            "password": consumer.get_config("password"),
        }

    def _baseline_dump(self, consumer: DbConsumer, event: SuiteEvent) -> str | None:
        if event.current_environment:
            block = find_module_config(event.module_configs, DB_MODULE)
            dump = block.get("dump") if block is not None else None
            if dump:
                return str(dump)
            LOG.warning(
                "No per-environment Db dump found; using the default dump",
                extra={"environment": event.current_environment},
            )
        dump = consumer.get_config("dump")
        if not dump:
            LOG.warning("No baseline dump configured; the Db module will not be repopulated")
            return None
        return str(dump)

    @staticmethod
    def _build(fields: dict[str, Any]) -> ConnectionProfile:
        label = fields.pop("engine_label")
        missing = [name for name in ("host", "database") if not fields.get(name)]
        if not label:
            missing.insert(0, "engine kind")
        if missing:
            raise ConfigurationError(f"Missing required connection settings: {', '.join(missing)}")
        engine = EngineKind.from_label(str(label))
        port = fields.pop("port")
        return ConnectionProfile(engine=engine, port=_parse_port(port), **_stringify(fields))


def find_module_config(configs: Any, module: str) -> Mapping[str, Any] | None:
    """Locate a module's block inside ``modules.config`` (a list of blocks or a mapping)."""

    if isinstance(configs, Mapping):
        configs = [configs]
    if not isinstance(configs, (list, tuple)):
        return None
    for block in configs:
        if isinstance(block, Mapping) and module in block:
            found = block[module]
            if isinstance(found, Mapping):
                return found
    return None


def _parse_port(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Port '{value}' is not a number") from exc


def _stringify(fields: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in fields.items():
        if key == "options" or value is None:
            result[key] = value
        else:
            result[key] = str(value)
    if result.get("options") is None:
        result.pop("options", None)
    return result


__all__ = [
    "ConfigurationError",
    "ConnectionResolver",
    "ParsedDsn",
    "ResolvedPhase",
    "find_module_config",
    "parse_dsn",
]
