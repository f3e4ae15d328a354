"""
Configuration loading and validation for plugkernel.

Handles:
- TOML config file loading
- Configuration validation
- Sage, timeout and mode defaults
- Handler-over-host Sage resolution
- Default config initialization
"""

import tomllib
from pathlib import Path
from typing import Any

from .compat import get_config_dir
from .exceptions import ConfigNotFoundError, ConfigValidationError

__all__ = [
    "load_config",
    "validate_config",
    "init_config",
    "get_config_path",
    "get_sage_config",
    "get_timeout_config",
    "get_mode",
    "resolve_sage",
    "DEFAULT_SAGE",
    "DEFAULT_LIFECYCLE_TIMEOUT",
    "MODES",
    "MINIMAL_CONFIG",
]

# Seconds a lifecycle hook or lifecycle event may run before it is abandoned
DEFAULT_LIFECYCLE_TIMEOUT = 5.0

DEFAULT_SAGE: dict[str, Any] = {
    "defer": True,
    "defer_buffer": 0.25,
    "ephemeral": False,
    "error_replies": True,
    "error_message": "Something went wrong.",
}

DISABLED_SAGE: dict[str, Any] = {
    "defer": False,
    "defer_buffer": 0.0,
    "ephemeral": False,
    "error_replies": False,
    "error_message": DEFAULT_SAGE["error_message"],
}

MODES = ("development", "production")

_TIMEOUT_KEYS = ("autocomplete", "command", "lifecycle")
_SAGE_BOOL_KEYS = ("defer", "ephemeral", "error_replies")


def get_config_path() -> Path:
    """Get path to config.toml file."""
    return get_config_dir() / "config.toml"


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load and validate configuration from TOML file.

    Args:
        config_path: Optional custom config path. Uses default if not provided.

    Returns:
        Parsed configuration dictionary

    Raises:
        ConfigNotFoundError: If config file doesn't exist
        ConfigValidationError: If config is invalid
    """
    path = config_path or get_config_path()

    if not path.exists():
        raise ConfigNotFoundError(str(path))

    with open(path, "rb") as f:
        config = tomllib.load(f)

    validate_config(config)
    return config


def validate_config(config: dict[str, Any]) -> None:
    """
    Validate configuration structure and field types.

    Every section is optional; defaults are applied by the get_* helpers.

    Args:
        config: Configuration dictionary to validate

    Raises:
        ConfigValidationError: If validation fails
    """
    if "mode" in config and config["mode"] not in MODES:
        raise ConfigValidationError(
            f"mode must be one of {', '.join(MODES)}",
            field="mode"
        )

    if "sage" in config:
        _validate_sage_config(config["sage"], "sage")

    if "timeouts" in config:
        _validate_timeout_config(config["timeouts"])

    if "plugins" in config:
        _validate_plugins_config(config["plugins"])


def _validate_sage_config(sage: Any, field: str) -> None:
    """Validate a sage section (host-level or handler-level)."""
    if isinstance(sage, bool):
        return
    if not isinstance(sage, dict):
        raise ConfigValidationError(
            f"{field} must be a boolean or a table",
            field=field
        )

    for key in _SAGE_BOOL_KEYS:
        if key in sage and not isinstance(sage[key], bool):
            raise ConfigValidationError(
                f"{field}.{key} must be a boolean",
                field=f"{field}.{key}"
            )

    if "defer_buffer" in sage:
        buffer = sage["defer_buffer"]
        if isinstance(buffer, bool) or not isinstance(buffer, (int, float)) or buffer < 0:
            raise ConfigValidationError(
                f"{field}.defer_buffer must be a non-negative number",
                field=f"{field}.defer_buffer"
            )

    if "error_message" in sage and not isinstance(sage["error_message"], str):
        raise ConfigValidationError(
            f"{field}.error_message must be a string",
            field=f"{field}.error_message"
        )


def _validate_timeout_config(timeouts: Any) -> None:
    """Validate timeouts section."""
    if not isinstance(timeouts, dict):
        raise ConfigValidationError("timeouts must be a table", field="timeouts")

    for key in _TIMEOUT_KEYS:
        if key not in timeouts:
            continue
        value = timeouts[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigValidationError(
                f"timeouts.{key} must be a positive number",
                field=f"timeouts.{key}"
            )


def _validate_plugins_config(plugins: Any) -> None:
    """Validate plugins list."""
    if not isinstance(plugins, list):
        raise ConfigValidationError("plugins must be a list", field="plugins")

    seen: set[str] = set()
    for i, entry in enumerate(plugins):
        if isinstance(entry, str):
            name = entry
        elif isinstance(entry, dict):
            name = entry.get("name")
            if not isinstance(name, str) or not name:
                raise ConfigValidationError(
                    f"Plugin entry {i + 1} must specify 'name'",
                    field=f"plugins[{i}].name"
                )
            if "fail_safe" in entry and not isinstance(entry["fail_safe"], bool):
                raise ConfigValidationError(
                    f"Plugin '{name}' fail_safe must be a boolean",
                    field=f"plugins[{i}].fail_safe"
                )
            if "path" in entry and not isinstance(entry["path"], str):
                raise ConfigValidationError(
                    f"Plugin '{name}' path must be a string",
                    field=f"plugins[{i}].path"
                )
        else:
            raise ConfigValidationError(
                f"Plugin entry {i + 1} must be a string or a table",
                field=f"plugins[{i}]"
            )

        if name in seen:
            raise ConfigValidationError(
                f"Plugin '{name}' is registered more than once",
                field=f"plugins[{i}]"
            )
        seen.add(name)


def init_config(force: bool = False) -> Path:
    """
    Write a minimal configuration to the user's config directory.

    Args:
        force: If True, overwrite existing configuration

    Returns:
        Path to the configuration file
    """
    config_file = get_config_path()
    config_file.parent.mkdir(parents=True, exist_ok=True)

    if not config_file.exists() or force:
        config_file.write_text(MINIMAL_CONFIG, encoding="utf-8")

    return config_file


def get_mode(config: dict[str, Any]) -> str:
    """Get execution mode, defaulting to production."""
    return config.get("mode", "production")


def get_sage_config(config: dict[str, Any]) -> dict[str, Any]:
    """
    Get host-level Sage configuration with defaults.

    Args:
        config: Full configuration dictionary

    Returns:
        Sage configuration with defaults applied
    """
    sage = config.get("sage", {})
    if sage is False:
        return dict(DISABLED_SAGE)
    if sage is True:
        return dict(DEFAULT_SAGE)
    return {**DEFAULT_SAGE, **sage}


def get_timeout_config(config: dict[str, Any]) -> dict[str, float | None]:
    """
    Get timeout configuration with defaults.

    Missing autocomplete/command timeouts mean unbounded waits.

    Args:
        config: Full configuration dictionary

    Returns:
        Timeout configuration with defaults applied
    """
    defaults: dict[str, float | None] = {
        "autocomplete": None,
        "command": None,
        "lifecycle": DEFAULT_LIFECYCLE_TIMEOUT,
    }

    timeouts = config.get("timeouts", {})
    return {**defaults, **timeouts}


def resolve_sage(handler_config: dict[str, Any] | None, config: dict[str, Any]) -> dict[str, Any]:
    """
    Resolve effective Sage options for one handler.

    Handler-level ``sage`` wins over the host ``[sage]`` section. ``False``
    at the handler level, or at the host level when the handler says
    nothing, disables Sage entirely.

    Args:
        handler_config: The handler's ``config`` mapping, if any
        config: Full configuration dictionary

    Returns:
        Sage options dictionary
    """
    handler_sage = (handler_config or {}).get("sage")
    host_sage = config.get("sage")

    if handler_sage is False or (handler_sage is None and host_sage is False):
        return dict(DISABLED_SAGE)

    result = get_sage_config(config)
    if isinstance(handler_sage, dict):
        result.update(handler_sage)
    return result


# Minimal config for bootstrapping
MINIMAL_CONFIG = """# plugkernel configuration
# See plugkernel.config for all options

mode = "production"

[sage]
defer = true
defer_buffer = 0.25
ephemeral = false
error_replies = true

[timeouts]
lifecycle = 5

# [[plugins]]
# name = "plugkernel-plugin-example"
# fail_safe = false
# options = {}
"""
