"""Tests for named one-shot and repeating timers."""

import pytest

from roomshare.services.timers import Timers

pytestmark = pytest.mark.anyio


class TestTimers:
    async def test_schedule_replaces_pending_timer(self, clock) -> None:
        timers = Timers(clock)
        fired: list[float] = []

        async def record() -> None:
            fired.append(clock.now)

        timers.schedule("typing", 1.5, record)
        clock.advance_to(1.0)
        timers.schedule("typing", 1.5, record)
        assert len(clock.pending()) == 1

        clock.advance_to(1.5)
        await timers.drain()
        assert fired == []

        clock.advance_to(2.5)
        await timers.drain()
        assert fired == [2.5]
        assert not timers.pending("typing")

    async def test_repeat_rearms_until_cancelled(self, clock) -> None:
        timers = Timers(clock)
        fired: list[float] = []

        async def record() -> None:
            fired.append(clock.now)

        timers.repeat("heartbeat", 30, record)
        for now in (30, 60, 90, 95):
            clock.advance_to(now)
            await timers.drain()
        assert fired == [30, 60, 90]

        timers.cancel_all()
        clock.advance_to(200)
        await timers.drain()
        assert fired == [30, 60, 90]
        assert clock.pending() == []

    async def test_failing_callback_is_logged(self, clock, caplog) -> None:
        timers = Timers(clock)

        async def boom() -> None:
            raise RuntimeError("boom")

        timers.schedule("x", 1, boom)
        clock.advance_to(1)
        await timers.drain()
        assert "boom" in caplog.text
