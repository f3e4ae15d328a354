"""Tests for timeout races and abandoned tasks."""

import asyncio
import logging

import pytest

from plugkernel.timeouts import BUFFER, TIMEOUT, abandon, detached_count, race


class TestRace:

    def test_task_wins(self):
        async def scenario():
            task = asyncio.ensure_future(asyncio.sleep(0, result="value"))
            return await race(task, 0.1, TIMEOUT)

        assert asyncio.run(scenario()) == "value"

    def test_delay_wins_without_cancelling(self):
        async def scenario():
            task = asyncio.ensure_future(asyncio.sleep(0.1, result="late"))
            outcome = await race(task, 0.01, BUFFER)
            assert not task.cancelled()
            return outcome, await task

        assert asyncio.run(scenario()) == (BUFFER, "late")

    def test_unbounded_race(self):
        async def scenario():
            task = asyncio.ensure_future(asyncio.sleep(0.02, result="eventually"))
            return await race(task, None, TIMEOUT)

        assert asyncio.run(scenario()) == "eventually"

    def test_task_error_propagates(self):
        async def boom():
            raise ValueError("bad")

        async def scenario():
            return await race(asyncio.ensure_future(boom()), 0.1, TIMEOUT)

        with pytest.raises(ValueError):
            asyncio.run(scenario())


class TestAbandon:

    def test_abandoned_task_is_held_until_done(self, caplog):
        caplog.set_level(logging.DEBUG, logger="plugkernel.timeouts")

        async def fail_later():
            await asyncio.sleep(0.02)
            raise RuntimeError("late failure")

        before = detached_count()

        async def scenario():
            task = asyncio.ensure_future(fail_later())
            abandon(task, "slow handler")
            abandon(task, "slow handler")
            held = detached_count()
            await asyncio.sleep(0.05)
            return held

        assert asyncio.run(scenario()) == before + 1
        assert detached_count() == before
        assert "Abandoned slow handler failed after its timeout" in caplog.text

    def test_abandon_finished_task(self, caplog):
        caplog.set_level(logging.DEBUG, logger="plugkernel.timeouts")

        async def scenario():
            task = asyncio.ensure_future(asyncio.sleep(0))
            await task
            abandon(task, "quick handler")

        before = detached_count()
        asyncio.run(scenario())

        assert detached_count() == before
        assert "Abandoned quick handler finished after its timeout" in caplog.text
