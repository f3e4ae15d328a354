"""
Timeout races for handlers and hooks.

A timeout is modelled as a race between a task and a delay. The losing task
is never cancelled: it keeps running in the background and is held here
until it finishes, at which point its outcome is logged. There is no
cancellation token propagated into handlers, so a handler that loses its
race may still act (e.g. attempt a late reply) after the kernel moved on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

__all__ = [
    "BUFFER",
    "TIMEOUT",
    "race",
    "abandon",
    "detached_count",
]

logger = logging.getLogger(__name__)


class _Marker:
    """Sentinel returned by race() when the delay wins."""

    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"<{self.name}>"


BUFFER = _Marker("BUFFER")
TIMEOUT = _Marker("TIMEOUT")

# Strong references to abandoned tasks so they are not garbage collected
_detached: set[asyncio.Future] = set()


async def race(task: asyncio.Future, seconds: float | None, marker: _Marker) -> Any:
    """
    Wait for *task* for at most *seconds*.

    Args:
        task: Future or task to wait on
        seconds: Delay before *marker* wins; None waits unbounded
        marker: Value returned when the delay wins

    Returns:
        The task's result, or *marker* if the task is still pending

    Raises:
        Whatever the task raised, if it settled first
    """
    if seconds is None:
        return await asyncio.shield(task)

    done, _ = await asyncio.wait({task}, timeout=seconds)
    if task in done:
        return task.result()
    return marker


def abandon(task: asyncio.Future, label: str) -> None:
    """
    Let *task* keep running after it lost a race.

    The task is not cancelled. Its eventual result or error is logged at
    debug level so the exception is never left unretrieved.
    """
    if task.done():
        _log_abandoned(task, label)
        return
    if task in _detached:
        return

    _detached.add(task)

    def _finished(fut: asyncio.Future) -> None:
        _detached.discard(fut)
        _log_abandoned(fut, label)

    task.add_done_callback(_finished)


def detached_count() -> int:
    """Number of abandoned tasks still running."""
    return len(_detached)


def _log_abandoned(task: asyncio.Future, label: str) -> None:
    if task.cancelled():
        logger.debug(f"Abandoned {label} was cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned {label} failed after its timeout: {error!r}")
    else:
        logger.debug(f"Abandoned {label} finished after its timeout")
