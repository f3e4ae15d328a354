"""Tests for concurrent event fan-out."""

import asyncio
import logging

from conftest import make_handler, make_plugin
from plugkernel.events import START_EVENT, STOP_EVENT, CallbackStatus, EventFanout, is_lifecycle_event
from plugkernel.exceptions import HandlerMissingError
from plugkernel.middleware import ABORT
from plugkernel.plugins import PluginRef, RecordKind


def errors(caplog):
    return [r for r in caplog.records if r.levelno >= logging.ERROR]


class TestFanout:
    """Concurrent delivery and per-callback isolation."""

    def test_no_callbacks(self, registry, pipeline):
        fanout = EventFanout(registry, pipeline)
        assert asyncio.run(fanout.emit("ready")) == []

    def test_ready_resolve_and_reject(self, registry, pipeline, caplog):
        """One slow success and one immediate failure both complete."""
        async def slow(client, options):
            await asyncio.sleep(0.01)
            return "ready!"

        async def broken(client, options):
            raise RuntimeError("boom")

        registry.register_event("ready", make_handler(run=slow))
        registry.register_event("ready", make_handler(run=broken))
        fanout = EventFanout(registry, pipeline)

        outcomes = asyncio.run(fanout.emit("ready", "client"))

        assert [o.status for o in outcomes] == [CallbackStatus.COMPLETED, CallbackStatus.FAILED]
        assert outcomes[0].value == "ready!"
        assert isinstance(outcomes[1].error, RuntimeError)
        assert len(errors(caplog)) == 1
        assert "Error executing ready event handler: boom" in caplog.text

    def test_callbacks_run_concurrently(self, registry, pipeline):
        async def nap(client, options):
            await asyncio.sleep(0.1)

        for _ in range(5):
            registry.register_event("ready", make_handler(run=nap))
        fanout = EventFanout(registry, pipeline)

        async def timed():
            loop = asyncio.get_running_loop()
            started = loop.time()
            await fanout.emit("ready", None)
            return loop.time() - started

        assert asyncio.run(timed()) < 0.4

    def test_event_data_and_options(self, registry, pipeline):
        seen = []
        plugin = make_plugin("plugin-greeter", options={"greeting": "hi"})

        registry.register_event(
            "messageCreate",
            make_handler(run=lambda *args: seen.append(args)),
            plugin=PluginRef(plugin.name),
        )
        registry.register_event("messageCreate", make_handler(run=lambda *args: seen.append(args)))
        fanout = EventFanout(registry, pipeline, plugins={plugin.name: plugin})

        asyncio.run(fanout.emit("messageCreate", "message", "extra"))

        assert seen == [("message", "extra", {"greeting": "hi"}), ("message", "extra", None)]

    def test_abort_only_affects_one_callback(self, registry, pipeline):
        ran = []
        registry.register_event("ready", make_handler(run=lambda c, o: ran.append("a")), path="events/ready/a.py")
        registry.register_event("ready", make_handler(run=lambda c, o: ran.append("b")), path="events/ready/b.py")
        registry.register_middleware("block-a", lambda data: ABORT if data.record.path.endswith("a.py") else None)
        fanout = EventFanout(registry, pipeline)

        outcomes = asyncio.run(fanout.emit("ready", None))

        assert ran == ["b"]
        assert [o.status for o in outcomes] == [CallbackStatus.ABORTED, CallbackStatus.COMPLETED]

    def test_disabled_callbacks_are_skipped(self, registry, pipeline):
        ran = []
        registry.register_event("ready", make_handler(run=lambda c, o: ran.append("mod")), module="games")
        registry.register_event("ready", make_handler(run=lambda c, o: ran.append("rec")), enabled=False)
        registry.register_event("ready", make_handler(run=lambda c, o: ran.append("ok")))
        registry.disable_module("games")
        fanout = EventFanout(registry, pipeline)

        outcomes = asyncio.run(fanout.emit("ready", None))

        assert ran == ["ok"]
        assert [o.status for o in outcomes] == [
            CallbackStatus.SKIPPED,
            CallbackStatus.SKIPPED,
            CallbackStatus.COMPLETED,
        ]

    def test_missing_run_fails_one_callback(self, registry, pipeline):
        registry.register_event("ready", make_handler(config={}))
        fanout = EventFanout(registry, pipeline)

        outcomes = asyncio.run(fanout.emit("ready", None))

        assert outcomes[0].status is CallbackStatus.FAILED
        assert isinstance(outcomes[0].error, HandlerMissingError)


class TestOrdering:
    """Priority and once-only callbacks."""

    def test_priority_orders_start(self, registry, pipeline):
        order = []
        registry.register_event("ready", make_handler(run=lambda c, o: order.append("late"), config={"priority": 10}))
        registry.register_event("ready", make_handler(run=lambda c, o: order.append("default")))
        registry.register_event("ready", make_handler(run=lambda c, o: order.append("early"), config={"priority": -1}))
        fanout = EventFanout(registry, pipeline)

        asyncio.run(fanout.emit("ready", None))

        assert order == ["early", "default", "late"]

    def test_once_callback_is_spent(self, registry, pipeline):
        calls = []
        registry.register_event("ready", make_handler(run=lambda c, o: calls.append(c), config={"frequency": "once"}))
        fanout = EventFanout(registry, pipeline)

        async def twice():
            first = await fanout.emit("ready", 1)
            second = await fanout.emit("ready", 2)
            return first, second

        first, second = asyncio.run(twice())

        assert calls == [1]
        assert first[0].status is CallbackStatus.COMPLETED
        assert second[0].status is CallbackStatus.SKIPPED

    def test_spent_callbacks_are_tracked_by_record(self, registry, pipeline):
        once = registry.register_event("ready", make_handler(run=lambda c, o: None, config={"frequency": "once"}))
        registry.register_event("ready", make_handler(run=lambda c, o: None))
        fanout = EventFanout(registry, pipeline)

        asyncio.run(fanout.emit("ready", None))

        assert fanout._spent == {once}

    def test_unregistered_event_has_no_callbacks(self, registry, pipeline):
        registry.register_event("ready", make_handler(run=lambda c, o: None), module="status")
        registry.register_event("ready", make_handler(run=lambda c, o: None), module="status")
        registry.register_event("messageCreate", make_handler(run=lambda c, o: None), module="status")

        assert registry.unregister("ready", RecordKind.EVENT) is True
        assert registry.unregister("ready", RecordKind.EVENT) is False
        assert registry.event_callbacks("ready") == []
        assert [r.key for r in registry._modules["status"].records] == ["messageCreate"]
        assert asyncio.run(EventFanout(registry, pipeline).emit("ready", None)) == []


class TestLifecycleEvents:
    """``_start``/``_stop`` timeouts and failure log levels."""

    def test_lifecycle_prefix(self):
        assert is_lifecycle_event(START_EVENT)
        assert is_lifecycle_event(STOP_EVENT)
        assert not is_lifecycle_event("ready")

    def test_lifecycle_event_times_out(self, registry, pipeline, caplog):
        async def stuck(client, options):
            await asyncio.sleep(0.3)

        registry.register_event(START_EVENT, make_handler(run=stuck))
        registry.register_event(START_EVENT, make_handler(run=lambda c, o: "fine"))
        fanout = EventFanout(registry, pipeline, {"timeouts": {"lifecycle": 0.05}})

        outcomes = asyncio.run(fanout.emit(START_EVENT, None))

        assert [o.status for o in outcomes] == [CallbackStatus.TIMED_OUT, CallbackStatus.COMPLETED]
        assert "timed out" in caplog.text
        assert errors(caplog) == []

    def test_handler_timeout_overrides_lifecycle(self, registry, pipeline):
        async def stuck(client, options):
            await asyncio.sleep(0.3)

        registry.register_event(STOP_EVENT, make_handler(run=stuck, config={"timeout": 0.02}))
        fanout = EventFanout(registry, pipeline)

        outcomes = asyncio.run(fanout.emit(STOP_EVENT, None))

        assert outcomes[0].status is CallbackStatus.TIMED_OUT

    def test_zero_handler_timeout_is_not_replaced(self, registry, pipeline):
        async def slow(client, options):
            await asyncio.sleep(0.05)

        registry.register_event(STOP_EVENT, make_handler(run=slow, config={"timeout": 0}))
        fanout = EventFanout(registry, pipeline, {"timeouts": {"lifecycle": 5}})

        outcomes = asyncio.run(fanout.emit(STOP_EVENT, None))

        assert outcomes[0].status is CallbackStatus.TIMED_OUT

    def test_regular_events_wait_unbounded(self, registry, pipeline):
        async def slow(client, options):
            await asyncio.sleep(0.1)
            return "done"

        registry.register_event("ready", make_handler(run=slow))
        fanout = EventFanout(registry, pipeline, {"timeouts": {"lifecycle": 0.02}})

        outcomes = asyncio.run(fanout.emit("ready", None))

        assert outcomes[0].status is CallbackStatus.COMPLETED
        assert outcomes[0].value == "done"

    def test_fail_safe_start_failure_is_warning(self, registry, pipeline, caplog):
        plugin = make_plugin("plugin-audit", fail_safe=True)

        def broken(client, options):
            raise RuntimeError("no database")

        registry.register_event(START_EVENT, make_handler(run=broken), plugin=PluginRef(plugin.name))
        fanout = EventFanout(registry, pipeline, plugins={plugin.name: plugin})

        asyncio.run(fanout.emit(START_EVENT, None))

        assert "plugin-audit plugin failed to start: no database" in caplog.text
        assert errors(caplog) == []

    def test_strict_plugin_failure_is_error(self, registry, pipeline, caplog):
        plugin = make_plugin("plugin-audit")

        def broken(client, options):
            raise RuntimeError("no database")

        registry.register_event(START_EVENT, make_handler(run=broken), plugin=PluginRef(plugin.name))
        fanout = EventFanout(registry, pipeline, plugins={plugin.name: plugin})

        asyncio.run(fanout.emit(START_EVENT, None))

        assert len(errors(caplog)) == 1
        assert "plugin-audit plugin error in event _start" in caplog.text
