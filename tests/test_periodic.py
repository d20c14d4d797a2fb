"""Tests for barbe.services.periodic."""

from __future__ import annotations

import asyncio

from barbe.services.periodic import PeriodicTask


async def test_runs_until_stopped():
    ticks = []

    async def tick():
        ticks.append(1)

    task = PeriodicTask("test", 0.01, tick)
    task.start()
    await asyncio.sleep(0.1)
    await task.stop()

    count = len(ticks)
    assert count >= 2
    assert not task.running
    await asyncio.sleep(0.05)
    assert len(ticks) == count


async def test_run_on_start_ticks_immediately():
    ticks = []

    async def tick():
        ticks.append(1)

    task = PeriodicTask("test", 60, tick, run_on_start=True)
    task.start()
    await asyncio.sleep(0.01)
    await task.stop()

    assert ticks == [1]


async def test_failing_tick_keeps_the_loop_alive():
    ticks = []

    async def tick():
        ticks.append(1)
        raise RuntimeError("store down")

    task = PeriodicTask("test", 0.01, tick)
    task.start()
    await asyncio.sleep(0.1)

    assert task.running
    await task.stop()
    assert len(ticks) >= 2


async def test_start_twice_keeps_one_loop():
    async def tick():
        pass

    task = PeriodicTask("test", 60, tick)
    task.start()
    first = task._task
    task.start()

    assert task._task is first
    await task.stop()
