"""Boundary to the Db module that owns connectivity and per-test restores."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

DB_MODULE = "Db"


class CollaboratorUnavailable(RuntimeError):
    """Raised when a required module is not enabled for the suite."""


@runtime_checkable
class DbConsumer(Protocol):
    """Contract of the Db module as seen by the orchestrator."""

    def get_config(self, key: str) -> Any:
        """Read a named setting (``dsn``, ``dump``, ``user``, ``password``, ``cleanup``)."""

    def reconfigure(self, overrides: Mapping[str, Any]) -> None:
        """Merge overrides (``populate``, ``dump``) into the live configuration."""

    def initialize(self) -> None:
        """Apply the current configuration, repopulating from the configured dump."""


class ModuleLookup(Protocol):
    def get_module(self, name: str) -> Any: ...


class ModuleRegistry:
    """Named modules enabled for the suite."""

    def __init__(self, modules: Mapping[str, Any] | None = None) -> None:
        self._modules: dict[str, Any] = dict(modules or {})

    def register(self, name: str, module: Any) -> None:
        self._modules[name] = module

    def get_module(self, name: str) -> Any:
        try:
            return self._modules[name]
        except KeyError:
            raise CollaboratorUnavailable(f"Module '{name}' is not enabled") from None

    def __contains__(self, name: object) -> bool:
        return name in self._modules


def lookup_db_consumer(modules: ModuleLookup) -> DbConsumer:
    """Fetch the Db module, raising :class:`CollaboratorUnavailable` when absent."""

    module = modules.get_module(DB_MODULE)
    if module is None:
        raise CollaboratorUnavailable(f"Module '{DB_MODULE}' is not enabled")
    return module


__all__ = [
    "CollaboratorUnavailable",
    "DB_MODULE",
    "DbConsumer",
    "ModuleLookup",
    "ModuleRegistry",
    "lookup_db_consumer",
]
