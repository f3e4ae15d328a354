"""
Custom exceptions for plugkernel.

All plugkernel-specific errors inherit from KernelError.
"""

__all__ = [
    "KernelError",
    # Config errors
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigValidationError",
    # Dispatch errors
    "DispatchError",
    "HandlerMissingError",
    "DispatchTimeoutError",
    "AlreadyAcknowledgedError",
    # Lifecycle errors
    "LifecycleError",
    "HookFailedError",
    # State errors
    "StateError",
]


class KernelError(Exception):
    """Base exception for all plugkernel errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n  Details: {self.details}"
        return self.message


# Configuration Errors

class ConfigError(KernelError):
    """Base class for configuration errors."""
    pass


class ConfigNotFoundError(ConfigError):
    """Raised when config file is not found."""

    def __init__(self, path: str):
        super().__init__(
            f"Configuration file not found: {path}",
            details="Call plugkernel.init_config() to create a minimal configuration"
        )
        self.path = path


class ConfigValidationError(ConfigError):
    """Raised when config validation fails."""

    def __init__(self, message: str, field: str | None = None):
        details = f"Field: {field}" if field else None
        super().__init__(f"Configuration validation error: {message}", details)
        self.field = field


# Dispatch Errors

class DispatchError(KernelError):
    """Base class for errors raised while dispatching a command."""
    pass


class HandlerMissingError(DispatchError):
    """Raised when a handler does not provide its run() entry point."""

    def __init__(self, kind: str, key: str):
        super().__init__(
            f"Missing run() entry point for {kind}: {key}",
            details="Handler modules must define a callable named 'run'"
        )
        self.kind = kind
        self.key = key


class DispatchTimeoutError(DispatchError):
    """Raised when a handler exceeds its hard timeout."""

    def __init__(self, label: str, timeout: float):
        super().__init__(f"{label} timed out after {timeout:g} seconds")
        self.label = label
        self.timeout = timeout


class AlreadyAcknowledgedError(DispatchError):
    """Raised by hosts when an interaction was already acknowledged."""

    def __init__(self, reason: str | None = None):
        super().__init__("Interaction has already been acknowledged", details=reason)
        self.reason = reason


# Lifecycle Errors

class LifecycleError(KernelError):
    """Base class for lifecycle errors."""
    pass


class HookFailedError(LifecycleError):
    """Raised when an init or start hook fails and the failure is fatal."""

    def __init__(self, kind: str, plugin: str | None, reason: str | None = None):
        owner = f"plugin '{plugin}'" if plugin else "project"
        super().__init__(f"{kind.capitalize()} hook for {owner} failed", details=reason)
        self.kind = kind
        self.plugin = plugin
        self.reason = reason


# State Errors

class StateError(KernelError):
    """Raised when a state namespace is invalid."""

    def __init__(self, namespace: str, reason: str):
        super().__init__(f"Invalid state namespace: '{namespace}'", details=reason)
        self.namespace = namespace
        self.reason = reason
