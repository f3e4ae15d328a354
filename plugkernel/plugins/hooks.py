"""
Lifecycle hook executor.

Runs the init, start and stop hooks of every plugin and of the host project:

- init:  plugins in registration order, then the project
- start: plugins in registration order, then the project
- stop:  the project, then plugins in reverse registration order

Init and start failures abort the phase unless the plugin is FAIL_SAFE;
project failures always abort. Start and stop hooks are raced against the
lifecycle timeout, and a slow hook only produces a warning. Stop never
raises.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

from ..config import get_mode, get_timeout_config
from ..exceptions import HookFailedError
from ..state import PluginState, StateStore
from ..timeouts import TIMEOUT, abandon, race
from .loader import (
    HookKind,
    HookResolver,
    ModuleLoader,
    PluginData,
    PluginMeta,
    infer_namespace,
    resolve_plugin_version,
)

logger = logging.getLogger(__name__)


@dataclass
class HookContext:
    """Context passed to hook entry points."""

    kind: HookKind
    config: dict[str, Any]
    logger: logging.Logger
    env: Mapping[str, str]
    mode: str

    # Stop phase only
    reason: str | None = None

    # Plugin start/stop hooks only
    state: PluginState | None = None
    meta: PluginMeta | None = None


class LifecycleExecutor:
    """
    Orchestrates lifecycle hooks across plugins and the host project.

    Args:
        plugins: Plugin data keyed by name, in registration order
        config: Full configuration dictionary
        state_store: Store that plugin state handles are scoped from
        resolver: Locates hook files
        loader: Turns a hook file path into its entry point
        env: Environment mapping exposed to hooks
        hook_logger: Logger handed to hooks; plugins get a child of it
    """

    def __init__(
        self,
        plugins: Mapping[str, PluginData],
        config: dict[str, Any] | None = None,
        state_store: StateStore | None = None,
        resolver: HookResolver | None = None,
        loader: Callable[[Path], Callable[..., Any] | None] | None = None,
        env: Mapping[str, str] | None = None,
        hook_logger: logging.Logger | None = None,
    ):
        self.plugins = plugins
        self.config = config if config is not None else {}
        self.mode = get_mode(self.config)
        self.timeout = get_timeout_config(self.config)["lifecycle"]
        self.state_store = state_store if state_store is not None else StateStore()
        self.resolver = resolver if resolver is not None else HookResolver()
        self.loader = loader if loader is not None else ModuleLoader()
        self.env = env if env is not None else os.environ
        self.hook_logger = hook_logger if hook_logger is not None else logging.getLogger("plugkernel")
        self._versions: dict[str, str] = {}

        for plugin in self.plugins.values():
            self.resolver.resolve_all(plugin)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def run_init(self) -> None:
        """
        Run init hooks: plugins in order, then the project.

        Raises:
            HookFailedError: If a STRICT plugin or the project hook fails
        """
        for plugin in self.plugins.values():
            await self._run_plugin_hook(HookKind.INIT, plugin, timed=False)
        await self._run_project_hook(HookKind.INIT, timed=False)

    async def run_start(self) -> None:
        """
        Run start hooks: plugins in order, then the project.

        Each hook is raced against the lifecycle timeout.

        Raises:
            HookFailedError: If a STRICT plugin or the project hook fails
        """
        for plugin in self.plugins.values():
            await self._run_plugin_hook(HookKind.START, plugin, timed=True)
        await self._run_project_hook(HookKind.START, timed=True)

    async def run_stop(self, reason: str | None = None) -> None:
        """
        Run stop hooks: the project first, then plugins in reverse order.

        Failures and timeouts are logged; this never raises.
        """
        path = self.resolver.project_hook(HookKind.STOP, self.mode)
        if path is not None:
            try:
                await self._call(path, self._project_context(HookKind.STOP, reason), "Stop hook for project", timed=True)
            except Exception as e:
                logger.error(f"Project stop hook failed: {e}", exc_info=True)

        for plugin in reversed(list(self.plugins.values())):
            path = self._hook_path(plugin, HookKind.STOP)
            if path is None:
                continue

            try:
                context = self._plugin_context(HookKind.STOP, plugin, reason)
                await self._call(path, context, f"Stop hook for {plugin.name}", timed=True)
            except Exception as e:
                if plugin.fail_safe:
                    logger.warning(f"Stop hook for {plugin.name} failed (failSafe enabled): {e}")
                else:
                    logger.error(f"Stop hook for {plugin.name} failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    def plugin_meta(self, plugin: PluginData) -> PluginMeta:
        """Identity metadata for a plugin; the version is resolved once."""
        version = self._versions.get(plugin.name)
        if version is None:
            version = resolve_plugin_version(plugin)
            self._versions[plugin.name] = version
        return PluginMeta(name=plugin.name, path=plugin.path, version=version)

    def _project_context(self, kind: HookKind, reason: str | None = None) -> HookContext:
        return HookContext(
            kind=kind,
            config=self.config,
            logger=self.hook_logger,
            env=self.env,
            mode=self.mode,
            reason=reason,
        )

    def _plugin_context(self, kind: HookKind, plugin: PluginData, reason: str | None = None) -> HookContext:
        context = HookContext(
            kind=kind,
            config=self.config,
            logger=self.hook_logger.getChild(infer_namespace(plugin.name)),
            env=self.env,
            mode=self.mode,
            reason=reason,
        )
        if kind is not HookKind.INIT:
            context.state = self.state_store.scoped(plugin.name)
            context.meta = self.plugin_meta(plugin)
        return context

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _hook_path(self, plugin: PluginData, kind: HookKind) -> Path | None:
        if kind not in plugin.hooks:
            plugin.hooks[kind] = self.resolver.plugin_hook(plugin, kind)
        return plugin.hooks[kind]

    async def _run_plugin_hook(self, kind: HookKind, plugin: PluginData, timed: bool) -> None:
        path = self._hook_path(plugin, kind)
        if path is None:
            return

        try:
            context = self._plugin_context(kind, plugin)
            await self._call(path, context, f"{kind.value.capitalize()} hook for {plugin.name}", timed)
        except Exception as e:
            if plugin.fail_safe:
                logger.warning(f"{kind.value.capitalize()} hook for {plugin.name} failed (failSafe enabled): {e}")
                return
            logger.error(f"{kind.value.capitalize()} hook for {plugin.name} failed: {e}", exc_info=True)
            raise HookFailedError(kind.value, plugin.name, str(e)) from e

    async def _run_project_hook(self, kind: HookKind, timed: bool) -> None:
        path = self.resolver.project_hook(kind, self.mode)
        if path is None:
            return

        try:
            await self._call(path, self._project_context(kind), f"{kind.value.capitalize()} hook for project", timed)
        except Exception as e:
            logger.error(f"Project {kind.value} hook failed: {e}", exc_info=True)
            raise HookFailedError(kind.value, None, str(e)) from e

    async def _call(self, path: Path, context: HookContext, label: str, timed: bool) -> bool:
        """
        Load and invoke one hook.

        Returns:
            False if the hook timed out, True otherwise
        """
        entry = self.loader(path)
        if entry is None:
            logger.debug(f"Skipping {label}: {path} defines no run()")
            return True

        logger.debug(f"Executing {label}")
        result = entry(context)
        if not inspect.isawaitable(result):
            return True

        task = asyncio.ensure_future(result)
        outcome = await race(task, self.timeout if timed else None, TIMEOUT)
        if outcome is TIMEOUT:
            abandon(task, label)
            logger.warning(f"{label} timed out after {self.timeout:g} seconds")
            return False
        return True
