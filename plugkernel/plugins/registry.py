"""
Dispatch registry.

The kernel only reads from a registry: it looks records up by key, checks
module enable flags, lists middleware and event callbacks. How the registry
is populated (file scanning, manifests, decorators) is up to the host.

HandlerRegistry is an in-memory implementation hosts can fill directly.

Example:
```python
from types import SimpleNamespace
from plugkernel.plugins import HandlerRegistry, RecordKind

async def ping(interaction, options):
    return "Pong!"

registry = HandlerRegistry()
registry.register_command("ping", SimpleNamespace(run=ping), module="utility")
registry.disable_module("utility")
```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence


class RecordKind(Enum):
    """Tables a dispatch record can live in."""

    COMMAND = "command"
    CONTEXT = "context"
    EVENT = "event"


@dataclass(frozen=True)
class PluginRef:
    """Identity of the plugin that contributed a record."""

    name: str
    path: Path | None = None


@dataclass(frozen=True, eq=False)
class DispatchRecord:
    """A command, context-menu command or event callback entry."""

    key: str
    handler: Any
    kind: RecordKind = RecordKind.COMMAND
    module: str | None = None
    plugin: PluginRef | None = None
    path: str = ""
    enabled: bool = True

    @property
    def config(self) -> dict[str, Any]:
        """The handler's config mapping, or an empty dict."""
        return getattr(self.handler, "config", None) or {}

    @property
    def label(self) -> str:
        """Name used in log messages, prefixed with the plugin name."""
        prefix = f"[{self.plugin.name}] " if self.plugin else ""
        return prefix + (self.path or self.key)


@dataclass(frozen=True, eq=False)
class MiddlewareRecord:
    """An interceptor run before every dispatch."""

    key: str
    handler: Callable[..., Any]
    plugin: PluginRef | None = None
    enabled: bool = True

    @property
    def label(self) -> str:
        prefix = f"[{self.plugin.name}] " if self.plugin else ""
        return prefix + self.key


@dataclass
class Module:
    """A named group of records sharing one enable flag."""

    name: str
    enabled: bool = True
    records: list[DispatchRecord] = field(default_factory=list)


class Registry(Protocol):
    """Read-only view of the dispatch table consumed by the kernel."""

    def lookup(self, key: str, kind: RecordKind = RecordKind.COMMAND) -> DispatchRecord | None: ...

    def module_enabled(self, name: str) -> bool: ...

    def middleware_list(self) -> Sequence[MiddlewareRecord]: ...

    def event_callbacks(self, name: str) -> Sequence[DispatchRecord]: ...


class HandlerRegistry:
    """
    In-memory registry for commands, context menus, events and middleware.
    """

    def __init__(self):
        self._tables: dict[RecordKind, dict[str, DispatchRecord]] = {
            RecordKind.COMMAND: {},
            RecordKind.CONTEXT: {},
        }
        self._events: dict[str, list[DispatchRecord]] = {}
        self._middleware: list[MiddlewareRecord] = []
        self._modules: dict[str, Module] = {}

    def _track(self, record: DispatchRecord) -> DispatchRecord:
        if record.module:
            module = self._modules.setdefault(record.module, Module(record.module))
            module.records.append(record)
        return record

    def register_command(
        self,
        key: str,
        handler: Any,
        module: str | None = None,
        plugin: PluginRef | None = None,
        path: str = "",
        enabled: bool = True,
    ) -> DispatchRecord:
        """
        Register a command.

        Args:
            key: Command key, e.g. "ping" or "user info"
            handler: Object exposing run/config/autocomplete
            module: Module the command belongs to
            plugin: Plugin that registered this
            path: Source path used in logs
            enabled: Record-level enable flag

        Returns:
            The registered record
        """
        record = DispatchRecord(
            key=key,
            handler=handler,
            kind=RecordKind.COMMAND,
            module=module,
            plugin=plugin,
            path=path,
            enabled=enabled,
        )
        self._tables[RecordKind.COMMAND][key] = record
        return self._track(record)

    def register_context(
        self,
        key: str,
        handler: Any,
        module: str | None = None,
        plugin: PluginRef | None = None,
        path: str = "",
        enabled: bool = True,
    ) -> DispatchRecord:
        """Register a context-menu command."""
        record = DispatchRecord(
            key=key,
            handler=handler,
            kind=RecordKind.CONTEXT,
            module=module,
            plugin=plugin,
            path=path,
            enabled=enabled,
        )
        self._tables[RecordKind.CONTEXT][key] = record
        return self._track(record)

    def register_event(
        self,
        name: str,
        handler: Any,
        module: str | None = None,
        plugin: PluginRef | None = None,
        path: str = "",
        enabled: bool = True,
    ) -> DispatchRecord:
        """Append a callback for an event name."""
        record = DispatchRecord(
            key=name,
            handler=handler,
            kind=RecordKind.EVENT,
            module=module,
            plugin=plugin,
            path=path,
            enabled=enabled,
        )
        self._events.setdefault(name, []).append(record)
        return self._track(record)

    def register_middleware(
        self,
        key: str,
        handler: Callable[..., Any],
        plugin: PluginRef | None = None,
        enabled: bool = True,
    ) -> MiddlewareRecord:
        """Append a middleware. Registration order is execution order."""
        record = MiddlewareRecord(key=key, handler=handler, plugin=plugin, enabled=enabled)
        self._middleware.append(record)
        return record

    def unregister(self, key: str, kind: RecordKind = RecordKind.COMMAND) -> bool:
        """
        Unregister a command, a context-menu command, or every callback
        registered for an event name.

        Returns:
            True if anything was removed
        """
        if kind is RecordKind.EVENT:
            removed = self._events.pop(key, [])
        else:
            record = self._tables[kind].pop(key, None)
            removed = [record] if record is not None else []

        for record in removed:
            if record.module and record.module in self._modules:
                self._modules[record.module].records.remove(record)
        return bool(removed)

    def lookup(self, key: str, kind: RecordKind = RecordKind.COMMAND) -> DispatchRecord | None:
        """Get a command or context-menu record by key."""
        if kind is RecordKind.EVENT:
            callbacks = self._events.get(key)
            return callbacks[0] if callbacks else None
        return self._tables[kind].get(key)

    def module_enabled(self, name: str) -> bool:
        """Check a module's enable flag. Unknown modules are enabled."""
        module = self._modules.get(name)
        return module.enabled if module else True

    def enable_module(self, name: str) -> None:
        """Enable a module."""
        self._modules.setdefault(name, Module(name)).enabled = True

    def disable_module(self, name: str) -> None:
        """Disable a module."""
        self._modules.setdefault(name, Module(name)).enabled = False

    def get_module(self, name: str) -> Module | None:
        """Get a module by name."""
        return self._modules.get(name)

    def middleware_list(self) -> list[MiddlewareRecord]:
        """All middleware in registration order."""
        return list(self._middleware)

    def event_callbacks(self, name: str) -> list[DispatchRecord]:
        """All callbacks registered for an event, in registration order."""
        return list(self._events.get(name, []))

    def list_commands(self, kind: RecordKind = RecordKind.COMMAND) -> list[DispatchRecord]:
        """List records of a kind sorted by key."""
        return sorted(self._tables[kind].values(), key=lambda r: r.key)

    def list_events(self) -> dict[str, int]:
        """Event names mapped to their callback counts."""
        return {name: len(callbacks) for name, callbacks in self._events.items()}
