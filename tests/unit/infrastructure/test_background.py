import asyncio

import pytest

from shiplink.infrastructure.background import PeriodicTask


def test_start_without_loop_is_deferred():
    task = PeriodicTask("sweep", 1, lambda: None)

    assert task.start() is False
    assert task.running is False


async def test_runs_periodically_until_stopped():
    ticks = []
    task = PeriodicTask("sweep", 0.01, lambda: ticks.append(1))

    assert task.start() is True
    assert task.start() is True
    await asyncio.sleep(0.05)
    await task.stop()

    count = len(ticks)
    assert count >= 2
    await asyncio.sleep(0.03)
    assert len(ticks) == count
    assert task.running is False


async def test_failing_callback_keeps_the_loop_alive():
    calls = []

    def flaky():
        calls.append(1)
        raise RuntimeError("sweep failed")

    task = PeriodicTask("flaky", 0.01, flaky)
    task.start()
    await asyncio.sleep(0.05)
    await task.stop()

    assert len(calls) >= 2


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, lambda: None)
