"""
Middleware pipeline.

Middleware run in registration order before every dispatch. Each receives a
MiddlewareData and may abort the dispatch by returning an abort signal:

```python
from plugkernel.middleware import MiddlewareResult

async def block_dms(data):
    if data.payload[0].guild is None:
        return MiddlewareResult(abort=True)
```

An abort is normal control flow. A middleware that raises also aborts the
dispatch, but is logged as an error.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from .plugins.registry import DispatchRecord, Registry

__all__ = [
    "MiddlewareData",
    "MiddlewareResult",
    "MiddlewarePipeline",
    "ABORT",
]

logger = logging.getLogger(__name__)


@dataclass
class MiddlewareData:
    """What a middleware gets to inspect."""

    payload: Sequence[Any]
    record: DispatchRecord


@dataclass(frozen=True)
class MiddlewareResult:
    """Returned by a middleware to control the dispatch."""

    abort: bool = False


ABORT = MiddlewareResult(abort=True)


def _is_abort(result: Any) -> bool:
    if result is None:
        return False
    if isinstance(result, dict):
        return bool(result.get("abort"))
    return bool(getattr(result, "abort", False))


class MiddlewarePipeline:
    """Runs the registry's middleware ahead of a dispatch."""

    def __init__(self, registry: Registry):
        self.registry = registry

    async def run(self, payload: Sequence[Any], record: DispatchRecord) -> bool:
        """
        Run every enabled middleware for one dispatch.

        Args:
            payload: Dispatch arguments (interaction, or event data)
            record: The matched record

        Returns:
            True if the dispatch should continue
        """
        data = MiddlewareData(payload=payload, record=record)

        for mw in self.registry.middleware_list():
            if not mw.enabled:
                continue

            logger.debug(f"Executing middleware: {mw.label}")
            try:
                result = mw.handler(data)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.error(f"Aborting {record.key} due to middleware error in {mw.label}: {e}", exc_info=True)
                return False

            if _is_abort(result):
                logger.debug(f"Middleware {mw.label} aborted execution for: {record.key}")
                return False

        return True
