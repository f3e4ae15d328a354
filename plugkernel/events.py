"""
Event fan-out.

Delivers one event to every registered callback concurrently. Each callback
checks its module flag, runs the shared middleware pipeline, then receives
the event data plus its plugin's options. One callback's failure, abort or
timeout never affects its siblings.

Events whose name starts with ``_`` are lifecycle events (``_start``,
``_stop``) and are raced against the lifecycle timeout; all others wait
unbounded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .config import DEFAULT_LIFECYCLE_TIMEOUT, get_timeout_config
from .exceptions import HandlerMissingError
from .middleware import MiddlewarePipeline
from .plugins.loader import FailurePolicy, PluginData
from .plugins.registry import DispatchRecord, Registry
from .timeouts import TIMEOUT, abandon, race

__all__ = [
    "START_EVENT",
    "STOP_EVENT",
    "CallbackStatus",
    "CallbackOutcome",
    "EventFanout",
    "is_lifecycle_event",
]

logger = logging.getLogger(__name__)

START_EVENT = "_start"
STOP_EVENT = "_stop"


def is_lifecycle_event(name: str) -> bool:
    """Lifecycle events carry the reserved ``_`` prefix."""
    return name.startswith("_")


class CallbackStatus(Enum):
    """How one callback's delivery ended."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class CallbackOutcome:
    """Result of delivering an event to one callback."""

    record: DispatchRecord
    status: CallbackStatus
    value: Any = None
    error: BaseException | None = None


class EventFanout:
    """
    Delivers events to registered callbacks.

    Args:
        registry: Dispatch table to read callbacks from
        pipeline: Shared middleware pipeline
        config: Full configuration dictionary
        plugins: Plugin data by name, for options and failure policy
    """

    def __init__(
        self,
        registry: Registry,
        pipeline: MiddlewarePipeline,
        config: dict[str, Any] | None = None,
        plugins: Mapping[str, PluginData] | None = None,
    ):
        self.registry = registry
        self.pipeline = pipeline
        self.config = config if config is not None else {}
        self.plugins = plugins if plugins is not None else {}
        self.timeouts = get_timeout_config(self.config)
        self._spent: set[DispatchRecord] = set()

    async def emit(self, name: str, *data: Any) -> list[CallbackOutcome]:
        """
        Deliver an event to all of its callbacks concurrently.

        Callbacks are started in priority order (``config["priority"]``,
        lower first, registration order for ties) but finish in any order.

        Args:
            name: Event name
            *data: Event arguments passed to every callback

        Returns:
            One outcome per callback, in start order
        """
        callbacks = self.registry.event_callbacks(name)
        if not callbacks:
            return []

        ordered = sorted(callbacks, key=lambda r: r.config.get("priority", 0))
        return list(await asyncio.gather(
            *(self._deliver(name, record, data) for record in ordered)
        ))

    async def _deliver(self, name: str, record: DispatchRecord, data: tuple[Any, ...]) -> CallbackOutcome:
        try:
            if record.module and not self.registry.module_enabled(record.module):
                logger.debug(f"Tried to execute disabled event from module: {record.module}")
                return CallbackOutcome(record, CallbackStatus.SKIPPED)

            if not record.enabled or record in self._spent:
                logger.debug(f"Tried to execute disabled event: {record.label}")
                return CallbackOutcome(record, CallbackStatus.SKIPPED)

            if not await self.pipeline.run(list(data), record):
                logger.debug(f"Middleware aborted event: {name}")
                return CallbackOutcome(record, CallbackStatus.ABORTED)

            run = getattr(record.handler, "run", None)
            if run is None:
                raise HandlerMissingError("event", name)

            if record.config.get("frequency") == "once":
                self._spent.add(record)

            options = None
            if record.plugin is not None and record.plugin.name in self.plugins:
                options = self.plugins[record.plugin.name].options

            logger.debug(f"Executing event handler: {record.label}")
            result = run(*data, options)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                timeout = None
                if is_lifecycle_event(name):
                    timeout = record.config.get("timeout")
                    if timeout is None:
                        timeout = self.timeouts["lifecycle"]
                    if timeout is None:
                        timeout = DEFAULT_LIFECYCLE_TIMEOUT
                result = await race(task, timeout, TIMEOUT)
                if result is TIMEOUT:
                    abandon(task, f"{name} handler {record.label}")
                    logger.warning(f"{name} lifecycle event handler {record.label} timed out")
                    return CallbackOutcome(record, CallbackStatus.TIMED_OUT)

            return CallbackOutcome(record, CallbackStatus.COMPLETED, value=result)
        except Exception as e:
            self._report_failure(name, record, e)
            return CallbackOutcome(record, CallbackStatus.FAILED, error=e)

    def _report_failure(self, name: str, record: DispatchRecord, error: Exception) -> None:
        """Pick the log message for a failed callback."""
        if record.plugin is None:
            logger.error(f"Error executing {name} event handler: {error}", exc_info=error)
            return

        plugin = self.plugins.get(record.plugin.name)
        fail_safe = plugin is not None and plugin.policy is FailurePolicy.FAIL_SAFE
        if name == START_EVENT and fail_safe:
            logger.warning(f"{record.plugin.name} plugin failed to start: {error}")
        else:
            logger.error(f"{record.plugin.name} plugin error in event {name}: {error}", exc_info=error)
