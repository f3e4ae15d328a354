"""
Plugin data, hook resolution and hook module loading.

Plugins are listed in the config's ``plugins`` array, in registration order:

```toml
plugins = ["plugkernel-plugin-basic"]

[[plugins]]
name = "plugkernel-plugin-audit"
path = "plugins/audit"
fail_safe = true
options = { channel = "ops" }
```

Lifecycle hooks are plain Python files exposing ``run(context)``:
```
my_plugin/
    build/hooks/init.py    # preferred
    hooks/start.py         # fallback
```
"""

from __future__ import annotations

import importlib.metadata
import importlib.util
import logging
import re
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

ENTRY_POINT = "run"

# Probed in order, relative to a plugin's root directory
PLUGIN_HOOK_CANDIDATES = ("build/hooks/{kind}.py", "hooks/{kind}.py")

# Relative to the project root
PROJECT_HOOK_PATH = "build/hooks/{kind}.py"

_NAMESPACE_PREFIXES = ("plugkernel-plugin-", "plugkernel_plugin_", "plugin-", "plugin_")


class HookKind(Enum):
    """Lifecycle phases a hook file can implement."""

    INIT = "init"
    START = "start"
    STOP = "stop"


class FailurePolicy(Enum):
    """How init/start hook failures of a plugin are treated."""

    STRICT = "strict"
    FAIL_SAFE = "fail_safe"


@dataclass
class PluginData:
    """A registered plugin as seen by the lifecycle executor."""

    name: str
    options: Any = None
    policy: FailurePolicy = FailurePolicy.STRICT
    path: Path | None = None
    hooks: dict[HookKind, Path | None] = field(default_factory=dict)

    @property
    def fail_safe(self) -> bool:
        return self.policy is FailurePolicy.FAIL_SAFE


@dataclass(frozen=True)
class PluginMeta:
    """Plugin identity handed to start/stop hooks."""

    name: str
    path: Path | None
    version: str


def load_plugin_data(config: dict[str, Any], base_dir: Path | None = None) -> dict[str, PluginData]:
    """
    Build PluginData for every plugin listed in the config.

    Args:
        config: Full configuration dictionary
        base_dir: Directory relative plugin paths are resolved against

    Returns:
        Plugin data keyed by name, in registration order
    """
    base = base_dir or Path.cwd()
    plugins: dict[str, PluginData] = {}

    for entry in config.get("plugins", []):
        if isinstance(entry, str):
            plugins[entry] = PluginData(name=entry)
            continue

        path = entry.get("path")
        plugins[entry["name"]] = PluginData(
            name=entry["name"],
            options=entry.get("options"),
            policy=FailurePolicy.FAIL_SAFE if entry.get("fail_safe") else FailurePolicy.STRICT,
            path=(base / path).resolve() if path else None,
        )

    return plugins


def infer_namespace(plugin_name: str) -> str:
    """
    Infer a short namespace from a plugin distribution name.

    ``@acme/audit`` -> ``audit``, ``plugkernel-plugin-audit`` -> ``audit``,
    ``plugin-audit`` -> ``audit``.
    """
    name = plugin_name.rsplit("/", 1)[-1]
    for prefix in _NAMESPACE_PREFIXES:
        if name.startswith(prefix) and len(name) > len(prefix):
            return name[len(prefix):]
    return name


def resolve_plugin_root(plugin: PluginData) -> Path | None:
    """
    Find a plugin's root directory.

    Uses the explicit path if configured, otherwise the location of the
    importable package named after the plugin.
    """
    if plugin.path is not None:
        return plugin.path

    module_name = re.sub(r"[^0-9A-Za-z_]", "_", plugin.name.rsplit("/", 1)[-1])
    try:
        spec = importlib.util.find_spec(module_name)
    except (ImportError, ValueError):
        return None

    if spec is None:
        return None
    if spec.submodule_search_locations:
        return Path(list(spec.submodule_search_locations)[0])
    if spec.origin:
        return Path(spec.origin).parent
    return None


def resolve_plugin_version(plugin: PluginData) -> str:
    """
    Resolve a plugin's version.

    Tries installed distribution metadata, then the plugin's own
    pyproject.toml, then falls back to ``0.0.0``.
    """
    try:
        return importlib.metadata.version(plugin.name)
    except importlib.metadata.PackageNotFoundError:
        pass
    except ValueError:
        pass

    root = resolve_plugin_root(plugin)
    if root is not None:
        pyproject = root / "pyproject.toml"
        if pyproject.is_file():
            try:
                with open(pyproject, "rb") as f:
                    version = tomllib.load(f).get("project", {}).get("version")
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.debug(f"Could not read {pyproject}: {e}")
            else:
                if isinstance(version, str):
                    return version

    return "0.0.0"


class HookResolver:
    """
    Locates compiled hook files for plugins and the project.

    Args:
        project_root: Root directory of the host project
    """

    def __init__(self, project_root: Path | None = None):
        self.project_root = project_root or Path.cwd()

    def plugin_hook(self, plugin: PluginData, kind: HookKind) -> Path | None:
        """Return the first existing hook file for a plugin, or None."""
        root = resolve_plugin_root(plugin)
        if root is None:
            return None

        for candidate in PLUGIN_HOOK_CANDIDATES:
            path = root / candidate.format(kind=kind.value)
            if path.is_file():
                return path
        return None

    def project_hook(self, kind: HookKind, mode: str) -> Path | None:
        """
        Return the project's hook file, or None.

        ``mode`` is accepted for mode-specific build outputs; all modes
        currently share one location.
        """
        logger.debug(f"Resolving project {kind.value} hook for mode '{mode}'")
        path = self.project_root / PROJECT_HOOK_PATH.format(kind=kind.value)
        return path if path.is_file() else None

    def resolve_all(self, plugin: PluginData) -> PluginData:
        """Fill in any hook paths not yet resolved on *plugin*."""
        for kind in HookKind:
            if kind not in plugin.hooks:
                plugin.hooks[kind] = self.plugin_hook(plugin, kind)
        return plugin


class ModuleLoader:
    """
    Loads hook files and returns their entry point.

    Each path is imported once; later loads reuse the module.
    """

    def __init__(self):
        self._loaded: dict[Path, Any] = {}

    def __call__(self, path: Path) -> Callable[..., Any] | None:
        return self.load(path)

    def load(self, path: Path) -> Callable[..., Any] | None:
        """
        Import a hook file.

        Args:
            path: Path to the hook's Python file

        Returns:
            The module's ``run`` callable, or None if it has none

        Raises:
            ImportError: If the file cannot be imported
        """
        path = Path(path).resolve()
        module = self._loaded.get(path)

        if module is None:
            module_name = f"plugkernel_hook_{abs(hash(path)):x}_{path.stem}"
            spec = importlib.util.spec_from_file_location(module_name, path)
            if not spec or not spec.loader:
                raise ImportError(f"Cannot load hook module from {path}")

            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
            self._loaded[path] = module

        entry = getattr(module, ENTRY_POINT, None)
        return entry if callable(entry) else None
