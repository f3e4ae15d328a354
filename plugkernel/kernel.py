"""
Kernel facade.

Wires the registry, middleware, dispatch, event fan-out, lifecycle hooks
and plugin state into one object a host process can drive:

```python
kernel = Kernel(registry, load_config(), client=client)
await kernel.boot()
kernel.install_signal_handlers()
...
await kernel.dispatch_command(interaction, "ping")
...
await kernel.shutdown("SIGTERM")
```
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any, Callable, Mapping

from .compat import is_windows
from .config import load_config, validate_config
from .dispatch import DispatchController
from .events import START_EVENT, STOP_EVENT, CallbackOutcome, EventFanout
from .middleware import MiddlewarePipeline
from .plugins.hooks import LifecycleExecutor
from .plugins.loader import HookResolver, PluginData, load_plugin_data
from .plugins.registry import Registry
from .state import StateStore

__all__ = ["Kernel"]

logger = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = ("SIGINT", "SIGTERM")


class Kernel:
    """
    Host-process runtime for a plugin-composed application.

    Args:
        registry: Dispatch table the kernel reads from
        config: Full configuration dictionary (validated here)
        client: Host client object passed to lifecycle event callbacks
        plugins: Plugin data by name; loaded from config if omitted
        project_root: Root of the host project, for hook files and
            relative plugin paths
        loader: Hook module loader override
        resolver: Hook resolver override
        env: Environment mapping exposed to hooks
    """

    def __init__(
        self,
        registry: Registry,
        config: dict[str, Any] | None = None,
        client: Any = None,
        plugins: Mapping[str, PluginData] | None = None,
        project_root: Path | None = None,
        loader: Callable[[Path], Callable[..., Any] | None] | None = None,
        resolver: HookResolver | None = None,
        env: Mapping[str, str] | None = None,
    ):
        self.config = config if config is not None else {}
        validate_config(self.config)

        self.registry = registry
        self.client = client
        self.plugins = plugins if plugins is not None else load_plugin_data(self.config, project_root)
        self.state = StateStore()

        self.pipeline = MiddlewarePipeline(registry)
        self.dispatcher = DispatchController(registry, self.pipeline, self.config)
        self.events = EventFanout(registry, self.pipeline, self.config, self.plugins)
        self.lifecycle = LifecycleExecutor(
            self.plugins,
            self.config,
            state_store=self.state,
            resolver=resolver if resolver is not None else HookResolver(project_root),
            loader=loader,
            env=env,
        )

        self._started = False
        self._stopped = False
        self._shutdown_task: asyncio.Task | None = None

    @classmethod
    def from_config_file(cls, registry: Registry, config_path: Path | None = None, **kwargs: Any) -> "Kernel":
        """Create a kernel from a TOML config file."""
        return cls(registry, load_config(config_path), **kwargs)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Run init hooks."""
        logger.debug("Running init hooks")
        await self.lifecycle.run_init()

    async def start(self) -> list[CallbackOutcome]:
        """Run start hooks, then notify ``_start`` event callbacks."""
        logger.debug("Running start hooks")
        await self.lifecycle.run_start()
        outcomes = await self.events.emit(START_EVENT, self.client)
        self._started = True
        logger.info(f"Kernel started with {len(self.plugins)} plugin(s)")
        return outcomes

    async def boot(self) -> None:
        """
        Init and start the kernel.

        Raises:
            HookFailedError: If a fatal init or start hook fails
        """
        await self.init()
        await self.start()

    async def shutdown(self, reason: str | None = None) -> None:
        """
        Notify ``_stop`` callbacks, then run stop hooks.

        Only the first call does anything. Never raises.
        """
        if self._stopped:
            logger.debug("Shutdown already done, ignoring")
            return
        self._stopped = True

        logger.info(f"Shutting down{f' ({reason})' if reason else ''}")
        await self.events.emit(STOP_EVENT, self.client)
        await self.lifecycle.run_stop(reason)
        self._started = False

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        """
        Shut down on SIGINT/SIGTERM.

        Not available on Windows event loops.

        Returns:
            True if handlers were installed
        """
        if is_windows():
            logger.debug("Signal handlers are not supported on Windows")
            return False

        loop = loop or asyncio.get_running_loop()
        for name in _SHUTDOWN_SIGNALS:
            loop.add_signal_handler(getattr(signal, name), self._on_signal, name)
        return True

    def _on_signal(self, name: str) -> None:
        if self._shutdown_task is None:
            logger.info(f"Received {name}")
            self._shutdown_task = asyncio.ensure_future(self.shutdown(name))

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch_command(self, interaction: Any, key: str, options: dict[str, Any] | None = None) -> None:
        await self.dispatcher.dispatch_command(interaction, key, options)

    async def dispatch_context(self, interaction: Any, key: str, target: Any = None) -> None:
        await self.dispatcher.dispatch_context(interaction, key, target)

    async def dispatch_autocomplete(self, interaction: Any, key: str) -> None:
        await self.dispatcher.dispatch_autocomplete(interaction, key)

    async def emit(self, name: str, *data: Any) -> list[CallbackOutcome]:
        """Deliver a host event to its callbacks."""
        return await self.events.emit(name, *data)
