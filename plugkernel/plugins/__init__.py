"""
plugkernel plugin layer.

Provides:
- The dispatch registry (commands, context menus, events, middleware)
- Plugin data and hook file resolution
- Lifecycle hooks (init/start/stop)
"""

from .registry import (
    HandlerRegistry,
    Registry,
    RecordKind,
    DispatchRecord,
    MiddlewareRecord,
    Module,
    PluginRef,
)
from .loader import (
    HookKind,
    FailurePolicy,
    PluginData,
    PluginMeta,
    HookResolver,
    ModuleLoader,
    load_plugin_data,
    infer_namespace,
)
from .hooks import HookContext, LifecycleExecutor

__all__ = [
    "HandlerRegistry",
    "Registry",
    "RecordKind",
    "DispatchRecord",
    "MiddlewareRecord",
    "Module",
    "PluginRef",
    "HookKind",
    "FailurePolicy",
    "PluginData",
    "PluginMeta",
    "HookResolver",
    "ModuleLoader",
    "load_plugin_data",
    "infer_namespace",
    "HookContext",
    "LifecycleExecutor",
]
