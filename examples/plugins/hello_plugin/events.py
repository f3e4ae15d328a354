"""
Event callbacks for hello_plugin.
"""

import logging

logger = logging.getLogger("plugkernel.hello")


def register_events(registry, plugin):
    """Register plugin event callbacks."""
    registry.register_event("_start", Ready(), plugin=plugin, path="events/_start.py")
    registry.register_event("messageCreate", Greeter(), plugin=plugin, path="events/messageCreate.py")


class Ready:
    config = {"frequency": "once"}

    def run(self, client, options):
        logger.info(f"hello_plugin is ready on {client}")


class Greeter:
    """Answer "hi" with the configured greeting."""

    async def run(self, message, options):
        greeting = (options or {}).get("greeting", "Hello")
        if message.get("content", "").lower() == "hi":
            return f"{greeting}, {message.get('author', 'friend')}!"
        return None
