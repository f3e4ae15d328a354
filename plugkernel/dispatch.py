"""
Dispatch controller for commands, context-menu commands and autocomplete.

Command and context-menu handlers run under Sage, the soft-deferral
protocol:

1. The handler is called. A plain return value is the reply.
2. An awaitable result is raced against the Sage defer buffer. If it
   settles first, no defer happens.
3. Otherwise the interaction is deferred (once) and the handler is raced
   against the hard timeout. A timeout abandons the handler without
   cancelling it.
4. The settled value is sent with edit_reply if deferred, reply otherwise.

Failures never escape a dispatch: they are logged and turned into an error
reply for the user. Autocomplete failures are logged and answered with
silence.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from .config import get_mode, get_timeout_config, resolve_sage
from .exceptions import AlreadyAcknowledgedError, DispatchTimeoutError, HandlerMissingError
from .middleware import MiddlewarePipeline
from .plugins.registry import DispatchRecord, RecordKind, Registry
from .timeouts import BUFFER, TIMEOUT, abandon, race

__all__ = [
    "Interaction",
    "DeferralState",
    "ReplyChannel",
    "DispatchController",
]

logger = logging.getLogger(__name__)

# Host errors that mean "someone already acknowledged this interaction"
_ACKNOWLEDGED_MARKERS = ("Unknown interaction", "already been acknowledged")


class Interaction(Protocol):
    """Reply primitives the host platform provides for one interaction."""

    replied: bool
    deferred: bool

    async def reply(self, payload: Any) -> Any: ...

    async def edit_reply(self, payload: Any) -> Any: ...

    async def defer_reply(self, *, ephemeral: bool = False) -> Any: ...

    async def follow_up(self, payload: Any) -> Any: ...

    async def respond(self, choices: list[Any]) -> Any: ...


@dataclass
class DeferralState:
    """Reply bookkeeping for one dispatch."""

    was_deferred: bool = False
    was_replied: bool = False
    defer_options: dict[str, Any] | None = None


class ReplyChannel:
    """
    Wraps an interaction's reply primitives and tracks DeferralState.

    The host's own ``replied``/``deferred`` flags are honoured too, since a
    handler may reply or defer on the interaction directly.
    """

    def __init__(self, interaction: Any):
        self.interaction = interaction
        self.state = DeferralState()

    @property
    def replied(self) -> bool:
        return self.state.was_replied or bool(getattr(self.interaction, "replied", False))

    @property
    def deferred(self) -> bool:
        return self.state.was_deferred or bool(getattr(self.interaction, "deferred", False))

    async def defer(self, ephemeral: bool = False) -> None:
        """Defer the reply unless it was already deferred."""
        if self.deferred:
            return

        options = {"ephemeral": ephemeral}
        try:
            await self.interaction.defer_reply(**options)
        except Exception as e:
            if not _already_acknowledged(e):
                raise
            logger.debug("Interaction was already handled, skipping Sage deferral")
            return

        self.state.was_deferred = True
        self.state.defer_options = options

    async def reply(self, payload: Any) -> None:
        await self.interaction.reply(payload)
        self.state.was_replied = True

    async def edit(self, payload: Any) -> None:
        await self.interaction.edit_reply(payload)
        self.state.was_replied = True

    async def follow_up(self, payload: Any) -> None:
        await self.interaction.follow_up(payload)


def _already_acknowledged(error: Exception) -> bool:
    if isinstance(error, AlreadyAcknowledgedError):
        return True
    message = str(error)
    return any(marker in message for marker in _ACKNOWLEDGED_MARKERS)


def _as_reply(response: Any) -> Any:
    if isinstance(response, str):
        return {"content": response}
    return response


def _with_ephemeral(reply: Any, ephemeral: bool) -> Any:
    if ephemeral and isinstance(reply, dict):
        return {**reply, "ephemeral": True}
    return reply


def _is_message_object(reply: Any) -> bool:
    if isinstance(reply, dict):
        return "id" in reply
    return getattr(reply, "id", None) is not None


class DispatchController:
    """
    Resolves records, runs middleware and invokes handlers.

    Args:
        registry: Dispatch table to read from
        pipeline: Middleware pipeline shared with event fan-out
        config: Full configuration dictionary
    """

    def __init__(
        self,
        registry: Registry,
        pipeline: MiddlewarePipeline,
        config: dict[str, Any] | None = None,
    ):
        self.registry = registry
        self.pipeline = pipeline
        self.config = config if config is not None else {}
        self.mode = get_mode(self.config)
        self.timeouts = get_timeout_config(self.config)

    async def _resolve(self, interaction: Any, key: str, kind: RecordKind) -> DispatchRecord | None:
        """Find an enabled record and run middleware for it."""
        noun = "context menu command" if kind is RecordKind.CONTEXT else "command"
        record = self.registry.lookup(key, kind)
        if record is None:
            logger.error(f'No {noun} matching "{key}" was found.')
            return None

        if record.module and not self.registry.module_enabled(record.module):
            logger.debug(f"Tried to execute disabled {noun} from module: {record.module}")
            return None

        if not record.enabled:
            logger.debug(f"Tried to execute disabled {noun}: {key}")
            return None

        if not await self.pipeline.run([interaction], record):
            logger.debug(f"Middleware aborted {noun}: {key}")
            return None

        return record

    async def dispatch_command(self, interaction: Any, key: str, options: dict[str, Any] | None = None) -> None:
        """
        Dispatch a slash command.

        Args:
            interaction: Host interaction exposing the reply primitives
            key: Command key, e.g. "ping" or "user info"
            options: Parsed command options passed to the handler
        """
        record = await self._resolve(interaction, key, RecordKind.COMMAND)
        if record is None:
            return

        await self._execute(interaction, record, f"/{key}", "command", options or {})

    async def dispatch_context(self, interaction: Any, key: str, target: Any = None) -> None:
        """
        Dispatch a context-menu command.

        Args:
            interaction: Host interaction exposing the reply primitives
            key: Context menu name
            target: The user or message the menu was opened on
        """
        record = await self._resolve(interaction, key, RecordKind.CONTEXT)
        if record is None:
            return

        if target is None:
            target = getattr(interaction, "target", None)
        await self._execute(interaction, record, key, "context menu command", target)

    async def dispatch_autocomplete(self, interaction: Any, key: str) -> None:
        """
        Dispatch an autocomplete request for a command.

        Timeouts and errors are logged and produce no response.
        """
        record = await self._resolve(interaction, key, RecordKind.COMMAND)
        if record is None:
            return

        try:
            autocomplete = getattr(record.handler, "autocomplete", None)
            if autocomplete is None:
                logger.debug(f"No autocomplete handler for command: {key}")
                return

            logger.debug(f"Executing autocomplete handler: {record.label}")
            result = autocomplete(interaction)

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                timeout = record.config.get("timeout")
                if timeout is None:
                    timeout = self.timeouts["autocomplete"]
                result = await race(task, timeout, TIMEOUT)
                if result is TIMEOUT:
                    abandon(task, f"autocomplete for /{key}")
                    raise DispatchTimeoutError(f"Autocomplete for /{key}", timeout)

            await interaction.respond(list(result or []))
        except Exception as e:
            logger.error(f"Autocomplete error for /{key}: {e}", exc_info=True)

    async def _execute(self, interaction: Any, record: DispatchRecord, label: str, noun: str, argument: Any) -> None:
        channel = ReplyChannel(interaction)
        sage = resolve_sage(record.config, self.config)
        logger.debug(f"Sage options for {label}: {sage}")

        try:
            logger.debug(f"Executing {noun} handler: {record.label}")
            run = getattr(record.handler, "run", None)
            if run is None:
                raise HandlerMissingError(noun, label)

            result = run(interaction, argument)
            if inspect.isawaitable(result):
                response = await self._await_handler(channel, record, label, sage, result)
            else:
                response = result

            if response is None:
                logger.debug(f"{label} returned nothing, skipping response")
                return

            await self._deliver(channel, label, response, sage)
        except Exception as e:
            logger.error(f"Error executing {noun} {label}: {e}", exc_info=True)
            await self._reply_error(channel, e, sage)

    async def _await_handler(self, channel: ReplyChannel, record: DispatchRecord, label: str, sage: dict[str, Any], result: Any) -> Any:
        task = asyncio.ensure_future(result)
        try:
            if sage["defer"]:
                outcome = await race(task, sage["defer_buffer"], BUFFER)
                if outcome is not BUFFER:
                    return outcome

                if not channel.replied:
                    logger.debug(f"Sage is deferring async handler for {label}")
                    await channel.defer(ephemeral=sage["ephemeral"])

            timeout = record.config.get("timeout")
            if timeout is None:
                timeout = self.timeouts["command"]
            outcome = await race(task, timeout, TIMEOUT)
        except BaseException:
            if not task.done():
                abandon(task, f"handler for {label}")
            raise

        if outcome is TIMEOUT:
            abandon(task, f"handler for {label}")
            raise DispatchTimeoutError(label, timeout)
        return outcome

    async def _deliver(self, channel: ReplyChannel, label: str, response: Any, sage: dict[str, Any]) -> None:
        reply = _as_reply(response)
        if _is_message_object(reply):
            logger.warning(f"Invalid return value for {label}. Did you accidentally return a message object?")
            return

        logger.debug(f"Sage is handling reply for {label}")
        if channel.deferred:
            await channel.edit(reply)
        else:
            await channel.reply(_with_ephemeral(reply, sage["ephemeral"]))

    async def _reply_error(self, channel: ReplyChannel, error: Exception, sage: dict[str, Any]) -> None:
        if not sage["error_replies"]:
            return

        if self.mode == "development":
            content = f"An error occurred: {error}"
        else:
            content = sage["error_message"]

        payload = {"content": content, "ephemeral": True}
        try:
            if channel.replied or channel.deferred:
                await channel.follow_up(payload)
            else:
                await channel.reply(payload)
        except Exception as e:
            logger.debug(f"Error printing error response: {e!r}")
