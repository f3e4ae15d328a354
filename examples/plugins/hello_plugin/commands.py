"""
Commands for hello_plugin.
"""

import asyncio

NAMES = ["World", "Sage", "Kernel", "Plugin"]


def register_commands(registry, plugin):
    """Register plugin commands."""
    registry.register_command("hello", Hello(), module="greetings", plugin=plugin, path="commands/hello.py")
    registry.register_command("cowsay", Cowsay(), module="greetings", plugin=plugin, path="commands/cowsay.py")
    registry.register_context("Wave", Wave(), module="greetings", plugin=plugin, path="context/user/wave.py")


class Hello:
    """Say hello to someone."""

    config = {"description": "Say hello to someone"}

    def run(self, interaction, options):
        name = options.get("name") or "World"
        return f"Hello, {name}!"

    def autocomplete(self, interaction):
        query = str(getattr(interaction, "focused", "") or "").lower()
        return [n for n in NAMES if n.lower().startswith(query)]


class Cowsay:
    """Make a cow say something. Slow on purpose, so Sage defers it."""

    config = {
        "description": "Make a cow say something",
        "sage": {"ephemeral": True},
        "timeout": 10,
    }

    async def run(self, interaction, options):
        message = options.get("message") or "Moo!"
        await asyncio.sleep(options.get("delay", 0))

        border = "-" * (len(message) + 2)
        return {
            "content": (
                f" {border}\n"
                f"< {message} >\n"
                f" {border}\n"
                "        \\   ^__^\n"
                "         \\  (oo)\\_______\n"
                "            (__)\\       )\\/\\\n"
                "                ||----w |\n"
                "                ||     ||\n"
            )
        }


class Wave:
    """Context menu: wave at a user."""

    def run(self, interaction, target):
        return f"*waves at {target}*"

