"""Runs the bundled hello_plugin example through a real kernel."""

import asyncio
import importlib.util
import logging
import sys
from pathlib import Path

import pytest

from conftest import FakeInteraction
from plugkernel import Kernel
from plugkernel.plugins import HandlerRegistry

EXAMPLE = Path(__file__).resolve().parent.parent / "examples" / "plugins" / "hello_plugin"


@pytest.fixture
def hello_plugin(monkeypatch):
    spec = importlib.util.spec_from_file_location(
        "hello_plugin",
        EXAMPLE / "__init__.py",
        submodule_search_locations=[str(EXAMPLE)],
    )
    module = importlib.util.module_from_spec(spec)
    monkeypatch.setitem(sys.modules, "hello_plugin", module)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def kernel(hello_plugin, tmp_path):
    registry = HandlerRegistry()
    hello_plugin.register(registry, EXAMPLE)
    config = {
        "mode": "development",
        "sage": {"defer_buffer": 0.05},
        "plugins": [{"name": "hello_plugin", "path": str(EXAMPLE), "options": {"greeting": "Howdy"}}],
    }
    return Kernel(registry, config, client="bot", project_root=tmp_path)


class TestHelloPlugin:

    def test_lifecycle_hooks_from_disk(self, kernel, caplog):
        caplog.set_level(logging.INFO)
        state = kernel.state.scoped("hello_plugin")

        async def scenario():
            await kernel.boot()
            assert state.get("started_version") == "1.0.0"
            await kernel.shutdown("done")

        asyncio.run(scenario())

        assert "Initializing hello_plugin in development mode" in caplog.text
        assert "hello_plugin 1.0.0 started" in caplog.text
        assert "hello_plugin is ready on bot" in caplog.text
        assert "hello_plugin 1.0.0 stopping (done)" in caplog.text
        assert state.keys() == []

    def test_commands(self, kernel):
        hello = FakeInteraction()
        cowsay = FakeInteraction()
        complete = FakeInteraction()
        complete.focused = "k"
        wave = FakeInteraction(target="Ada")

        async def scenario():
            await kernel.dispatch_command(hello, "hello", {"name": "Ada"})
            await kernel.dispatch_command(cowsay, "cowsay", {"message": "Moo"})
            await kernel.dispatch_autocomplete(complete, "hello")
            await kernel.dispatch_context(wave, "Wave")

        asyncio.run(scenario())

        assert hello.calls == [("reply", {"content": "Hello, Ada!"})]
        assert cowsay.names == ["reply"]
        assert cowsay.calls[0][1]["ephemeral"] is True
        assert "< Moo >" in cowsay.calls[0][1]["content"]
        assert complete.calls == [("respond", ["Kernel"])]
        assert wave.calls == [("reply", {"content": "*waves at Ada*"})]

    def test_slow_cowsay_is_deferred(self, kernel):
        interaction = FakeInteraction()
        asyncio.run(kernel.dispatch_command(interaction, "cowsay", {"message": "Zzz", "delay": 0.15}))

        assert interaction.names == ["defer_reply", "edit_reply"]
        assert interaction.calls[0] == ("defer_reply", {"ephemeral": True})

    def test_event_uses_plugin_options(self, kernel):
        outcomes = asyncio.run(kernel.emit("messageCreate", {"content": "hi", "author": "Ada"}))

        assert [o.value for o in outcomes] == ["Howdy, Ada!"]

    def test_disabled_module(self, kernel):
        kernel.registry.disable_module("greetings")
        interaction = FakeInteraction()

        asyncio.run(kernel.dispatch_command(interaction, "hello", {"name": "Ada"}))

        assert interaction.calls == []
