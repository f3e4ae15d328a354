"""
Hello Plugin - Example plugin for plugkernel.

This plugin demonstrates how to:
1. Register commands, autocomplete and event callbacks
2. Provide lifecycle hooks (hooks/init.py, hooks/start.py, hooks/stop.py)
3. Keep per-plugin state between start and stop

To use, list it in config.toml:

    [[plugins]]
    name = "hello_plugin"
    path = "examples/plugins/hello_plugin"
    options = { greeting = "Hello" }
"""

from plugkernel.plugins import PluginRef

# Plugin metadata
name = "hello_plugin"
description = "Example plugin that adds /hello and /cowsay"


def register(registry, path=None):
    """
    Register everything this plugin contributes.

    Args:
        registry: HandlerRegistry to populate
        path: Plugin root, recorded on each record
    """
    plugin = PluginRef(name, path)

    from .commands import register_commands
    from .events import register_events

    register_commands(registry, plugin)
    register_events(registry, plugin)
