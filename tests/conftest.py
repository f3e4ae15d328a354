"""Shared fixtures for plugkernel tests."""

from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from plugkernel.middleware import MiddlewarePipeline
from plugkernel.plugins import FailurePolicy, HandlerRegistry, HookKind, PluginData


class FakeInteraction:
    """Records every reply primitive call and tracks replied/deferred."""

    def __init__(self, target: Any = None):
        self.replied = False
        self.deferred = False
        self.target = target
        self.calls: list[tuple[str, Any]] = []

    async def reply(self, payload):
        self.calls.append(("reply", payload))
        self.replied = True

    async def edit_reply(self, payload):
        self.calls.append(("edit_reply", payload))
        self.replied = True

    async def defer_reply(self, *, ephemeral=False):
        self.calls.append(("defer_reply", {"ephemeral": ephemeral}))
        self.deferred = True

    async def follow_up(self, payload):
        self.calls.append(("follow_up", payload))

    async def respond(self, choices):
        self.calls.append(("respond", choices))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeLoader:
    """In-memory hook loader: maps hook paths to entry points."""

    def __init__(self):
        self.entries: dict[Path, Callable[..., Any] | None] = {}
        self.loaded: list[Path] = []

    def add(self, path: str, entry: Callable[..., Any] | None) -> Path:
        key = Path(path)
        self.entries[key] = entry
        return key

    def __call__(self, path: Path) -> Callable[..., Any] | None:
        self.loaded.append(path)
        return self.entries[path]


class FakeResolver:
    """Hook resolver backed by a dict; knows nothing about the filesystem."""

    def __init__(self, project_hooks: dict[HookKind, Path] | None = None):
        self.project_hooks = project_hooks or {}

    def plugin_hook(self, plugin, kind):
        return None

    def project_hook(self, kind, mode):
        return self.project_hooks.get(kind)

    def resolve_all(self, plugin):
        for kind in HookKind:
            plugin.hooks.setdefault(kind, None)
        return plugin


def make_handler(run=None, config=None, autocomplete=None) -> SimpleNamespace:
    """Build a handler object exposing only the given attributes."""
    handler = SimpleNamespace()
    if run is not None:
        handler.run = run
    if config is not None:
        handler.config = config
    if autocomplete is not None:
        handler.autocomplete = autocomplete
    return handler


def make_plugin(name: str, fail_safe: bool = False, options: Any = None, **hooks: Path) -> PluginData:
    """Build PluginData with hook paths given by kind name (init=, start=, stop=)."""
    return PluginData(
        name=name,
        options=options,
        policy=FailurePolicy.FAIL_SAFE if fail_safe else FailurePolicy.STRICT,
        hooks={kind: hooks.get(kind.value) for kind in HookKind},
    )


@pytest.fixture
def interaction():
    return FakeInteraction()


@pytest.fixture
def registry():
    return HandlerRegistry()


@pytest.fixture
def pipeline(registry):
    return MiddlewarePipeline(registry)


@pytest.fixture
def loader():
    return FakeLoader()
