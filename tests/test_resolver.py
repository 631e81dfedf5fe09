"""Tests for DSN parsing and connection resolution."""

from __future__ import annotations

from typing import Any

import pytest

from dbfixture.config import ExtensionSettings
from dbfixture.engines import MySQLAdapter, PostgresAdapter
from dbfixture.models import EngineKind, SuiteEvent
from dbfixture.resolver import ConfigurationError, ConnectionResolver, find_module_config, parse_dsn


class _ConsumerStub:
    def __init__(self, **config: Any) -> None:
        self.config = config

    def get_config(self, key: str) -> Any:
        return self.config.get(key)

    def reconfigure(self, overrides):  # type: ignore[no-untyped-def]
        self.config.update(overrides)

    def initialize(self) -> None:
        return None


def test_parse_dsn_recovers_all_pairs() -> None:
    parsed = parse_dsn("pgsql:host=localhost;port=5432;dbname=testdb;user=bruce;password=mypass")

    assert parsed.engine == "pgsql"
    assert dict(parsed.values) == {
        "host": "localhost",
        "port": "5432",
        "dbname": "testdb",
        "user": "bruce",
        "password": "mypass",
    }


def test_parse_dsn_missing_optional_keys_are_not_set() -> None:
    parsed = parse_dsn("mysql:host=db;dbname=app")

    assert parsed.get("port") is None
    assert parsed.get("user") is None
    assert parsed.get("password") is None


def test_parse_dsn_splits_on_first_separator_only() -> None:
    parsed = parse_dsn("pgsql:host=db;dbname=app;password=a=b:c")

    assert parsed.get("password") == "a=b:c"


def test_parse_dsn_ignores_trailing_separator() -> None:
    parsed = parse_dsn("mysql:host=db;dbname=app;")

    assert dict(parsed.values) == {"host": "db", "dbname": "app"}


def test_dbname_takes_precedence_over_database() -> None:
    assert parse_dsn("mysql:host=db;database=other;dbname=app").database == "app"
    assert parse_dsn("mysql:host=db;dbname=app;database=other").database == "app"
    assert parse_dsn("mysql:host=db;database=other").database == "other"


@pytest.mark.parametrize("dsn", ["host=db;dbname=app", ":host=db", "mysql:host=db;garbage"])
def test_parse_dsn_rejects_malformed_input(dsn: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_dsn(dsn)


@pytest.mark.parametrize("label", ["PGSQL", "pgsql", "PgSql"])
def test_postgres_selection_is_case_insensitive(label: str) -> None:
    resolver = ConnectionResolver(ExtensionSettings())
    consumer = _ConsumerStub(dsn=f"{label}:host=db;dbname=app")

    phase = resolver.resolve(consumer, SuiteEvent())

    assert phase.profile.engine is EngineKind.POSTGRESQL
    assert isinstance(phase.adapter, PostgresAdapter)


@pytest.mark.parametrize("label", ["mysql", "MySQL", "mariadb", "sqlite"])
def test_other_labels_select_mysql(label: str) -> None:
    resolver = ConnectionResolver(ExtensionSettings())
    consumer = _ConsumerStub(dsn=f"{label}:host=db;dbname=app")

    phase = resolver.resolve(consumer, SuiteEvent())

    assert phase.profile.engine is EngineKind.MYSQL
    assert isinstance(phase.adapter, MySQLAdapter)


def test_mysql_dsn_takes_credentials_from_consumer() -> None:
    resolver = ConnectionResolver(ExtensionSettings())
    consumer = _ConsumerStub(
        dsn="mysql:host=db;port=3306;dbname=app;charset=utf8mb4",
        user="root",
        password="secret",
        dump="tests/_data/base.sql",
    )

    profile = resolver.resolve_profile(consumer, SuiteEvent())

    assert profile.host == "db"
    assert profile.port == 3306
    assert profile.database == "app"
    assert profile.user == "root"
    assert profile.password == "secret"
    assert profile.baseline_dump == "tests/_data/base.sql"
    assert profile.environment == ""
    assert dict(profile.options) == {"charset": "utf8mb4"}


def test_postgres_dsn_credentials_default_to_none() -> None:
    resolver = ConnectionResolver(ExtensionSettings())
    consumer = _ConsumerStub(dsn="pgsql:host=db;dbname=app", user="ignored")

    profile = resolver.resolve_profile(consumer, SuiteEvent())

    assert profile.user is None
    assert profile.password is None
    assert profile.port is None


def test_mysql_dsn_without_host_fails_fast() -> None:
    resolver = ConnectionResolver(ExtensionSettings())
    consumer = _ConsumerStub(dsn="mysql:dbname=app")

    with pytest.raises(ConfigurationError, match="host"):
        resolver.resolve(consumer, SuiteEvent())


def test_mysql_dsn_without_database_fails_fast() -> None:
    resolver = ConnectionResolver(ExtensionSettings())
    consumer = _ConsumerStub(dsn="mysql:host=db")

    with pytest.raises(ConfigurationError, match="database"):
        resolver.resolve(consumer, SuiteEvent())


def test_non_numeric_port_is_a_configuration_error() -> None:
    resolver = ConnectionResolver(ExtensionSettings())
    consumer = _ConsumerStub(dsn="mysql:host=db;dbname=app;port=abc")

    with pytest.raises(ConfigurationError, match="Port"):
        resolver.resolve(consumer, SuiteEvent())


def test_discrete_settings_are_used_without_dsn() -> None:
    settings = ExtensionSettings(
        host="localhost",
        port="5432",
        login="admin",
        database="app",
        database_type="pgsql",
    )
    consumer = _ConsumerStub(user="app_user", password="pw", dump="base.tar")

    profile = ConnectionResolver(settings).resolve_profile(consumer, SuiteEvent())

    assert profile.engine is EngineKind.POSTGRESQL
    assert profile.port == 5432
    assert profile.login == "admin"
    assert profile.user == "app_user"
    assert profile.password == "pw"


def test_discrete_settings_without_engine_kind_fail() -> None:
    settings = ExtensionSettings(host="localhost", database="app")

    with pytest.raises(ConfigurationError, match="engine kind"):
        ConnectionResolver(settings).resolve_profile(_ConsumerStub(), SuiteEvent())


def test_environment_selects_per_environment_dump() -> None:
    consumer = _ConsumerStub(dsn="mysql:host=db;dbname=app", dump="default.sql")
    event = SuiteEvent(
        settings={
            "current_environment": "staging",
            "modules": {"config": [{"REST": {"url": "x"}}, {"Db": {"dump": "staging.sql"}}]},
        }
    )

    profile = ConnectionResolver(ExtensionSettings()).resolve_profile(consumer, event)

    assert profile.environment == "_staging"
    assert profile.baseline_dump == "staging.sql"


def test_environment_without_db_block_falls_back_to_default_dump() -> None:
    consumer = _ConsumerStub(dsn="mysql:host=db;dbname=app", dump="default.sql")
    event = SuiteEvent(settings={"current_environment": "ci", "modules": {"config": []}})

    profile = ConnectionResolver(ExtensionSettings()).resolve_profile(consumer, event)

    assert profile.environment == "_ci"
    assert profile.baseline_dump == "default.sql"


def test_find_module_config_accepts_mapping_and_list() -> None:
    assert find_module_config({"Db": {"dump": "a.sql"}}, "Db") == {"dump": "a.sql"}
    assert find_module_config([{"Db": {"dump": "b.sql"}}], "Db") == {"dump": "b.sql"}
    assert find_module_config(None, "Db") is None
    assert find_module_config([{"Other": {}}], "Db") is None


def test_run_config_normalizes_empty_commands() -> None:
    settings = ExtensionSettings(backupBefore=True, backup_path="/tmp/run", migrations="", seed="make seed")

    config = ConnectionResolver(settings).run_config()

    assert config.backup_before is True
    assert config.backup_after is False
    assert config.migrations is None
    assert config.seed == "make seed"


def test_environment_block_without_dump_falls_back_to_default(caplog: pytest.LogCaptureFixture) -> None:
    consumer = _ConsumerStub(dsn="mysql:host=db;dbname=app", dump="default.sql")
    event = SuiteEvent(
        settings={"current_environment": "staging", "modules": {"config": [{"Db": {"cleanup": True}}]}}
    )

    with caplog.at_level("WARNING", logger="dbfixture.resolver"):
        profile = ConnectionResolver(ExtensionSettings()).resolve_profile(consumer, event)

    assert profile.baseline_dump == "default.sql"
    assert "per-environment" in caplog.text


def test_missing_baseline_dump_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    consumer = _ConsumerStub(dsn="mysql:host=db;dbname=app")

    with caplog.at_level("WARNING", logger="dbfixture.resolver"):
        profile = ConnectionResolver(ExtensionSettings()).resolve_profile(consumer, SuiteEvent())

    assert profile.baseline_dump is None
    assert "No baseline dump configured" in caplog.text
