"""
plugkernel - Runtime kernel for plugin-composed applications.

Governs how a host process dispatches work to handlers contributed by the
project and its plugins.

Features:
- Command, context-menu and autocomplete dispatch
- Sage soft deferral (auto-defer slow handlers, hard timeouts)
- Ordered middleware with abort signals
- Concurrent event fan-out with per-callback isolation
- Ordered init/start/stop lifecycle hooks with fail-safe plugins
- Per-plugin namespaced state

Example usage:
    from plugkernel import Kernel, load_config
    from plugkernel.plugins import HandlerRegistry

    registry = HandlerRegistry()
    registry.register_command("ping", PingHandler())

    kernel = Kernel(registry, load_config())
    await kernel.boot()
    await kernel.dispatch_command(interaction, "ping")
    await kernel.shutdown("done")
"""

__version__ = "0.1.0"

from .config import (
    load_config,
    validate_config,
    init_config,
    get_sage_config,
    get_timeout_config,
    resolve_sage,
)
from .exceptions import (
    KernelError,
    ConfigError,
    ConfigNotFoundError,
    ConfigValidationError,
    DispatchError,
    HandlerMissingError,
    DispatchTimeoutError,
    AlreadyAcknowledgedError,
    LifecycleError,
    HookFailedError,
    StateError,
)
from .middleware import MiddlewareData, MiddlewareResult, MiddlewarePipeline, ABORT
from .dispatch import DispatchController, ReplyChannel, DeferralState
from .events import EventFanout, CallbackOutcome, CallbackStatus, START_EVENT, STOP_EVENT
from .state import StateStore, PluginState
from .kernel import Kernel

__all__ = [
    # Version
    "__version__",
    # Config
    "load_config",
    "validate_config",
    "init_config",
    "get_sage_config",
    "get_timeout_config",
    "resolve_sage",
    # Kernel
    "Kernel",
    # Dispatch
    "DispatchController",
    "ReplyChannel",
    "DeferralState",
    # Middleware
    "MiddlewareData",
    "MiddlewareResult",
    "MiddlewarePipeline",
    "ABORT",
    # Events
    "EventFanout",
    "CallbackOutcome",
    "CallbackStatus",
    "START_EVENT",
    "STOP_EVENT",
    # State
    "StateStore",
    "PluginState",
    # Exceptions
    "KernelError",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigValidationError",
    "DispatchError",
    "HandlerMissingError",
    "DispatchTimeoutError",
    "AlreadyAcknowledgedError",
    "LifecycleError",
    "HookFailedError",
    "StateError",
]
