"""
Unit tests for cooperative timers.
"""

import pytest
from automix.live.timers import ManualClock, RealtimeClock


@pytest.fixture
def clock():
    return ManualClock()


class TestManualClock:
    def test_call_later_fires_once(self, clock):
        calls = []
        handle = clock.call_later(0.5, lambda: calls.append(clock.now()))

        clock.advance(0.4)
        assert calls == []
        clock.advance(0.2)
        assert calls == [0.5]
        clock.advance(5.0)
        assert calls == [0.5]
        assert not handle.active

    def test_call_every_repeats(self, clock):
        calls = []
        clock.call_every(0.1, lambda: calls.append(1))
        clock.advance(1.0)
        assert len(calls) == 10

    def test_accumulated_float_steps(self, clock):
        """Many small advances still fire every tick."""
        calls = []
        clock.call_every(0.1, lambda: calls.append(1))
        for _ in range(100):
            clock.advance(0.1)
        assert len(calls) == 100

    def test_cancel(self, clock):
        calls = []
        handle = clock.call_every(0.5, lambda: calls.append(1))
        clock.advance(1.0)
        handle.cancel()
        handle.cancel()
        clock.advance(2.0)
        assert len(calls) == 2
        assert clock.pending == []

    def test_cancel_from_own_callback(self, clock):
        calls = []

        def tick():
            calls.append(1)
            if len(calls) == 3:
                handle.cancel()

        handle = clock.call_every(0.1, tick)
        clock.advance(1.0)
        assert len(calls) == 3

    def test_order_by_due_time(self, clock):
        order = []
        clock.call_later(0.3, lambda: order.append("slow"))
        clock.call_later(0.1, lambda: order.append("fast"))
        clock.advance(1.0)
        assert order == ["fast", "slow"]

    def test_callback_can_schedule(self, clock):
        order = []
        clock.call_later(0.1, lambda: clock.call_later(0.1, lambda: order.append(clock.now())))
        clock.advance(1.0)
        assert order == [pytest.approx(0.2)]
        assert clock.now() == pytest.approx(1.0)

    def test_invalid_interval(self, clock):
        with pytest.raises(ValueError):
            clock.call_every(0, lambda: None)


class TestRealtimeClock:
    def test_runs_until_timers_exhausted(self):
        clock = RealtimeClock()
        calls = []
        clock.call_later(0.01, lambda: calls.append(1))
        clock.run(duration=1.0)
        assert calls == [1]

    def test_stop_from_callback(self):
        clock = RealtimeClock()
        calls = []

        def tick():
            calls.append(1)
            if len(calls) == 3:
                clock.stop()

        clock.call_every(0.01, tick)
        clock.run(duration=2.0)
        assert len(calls) == 3

    def test_cancelled_timer_never_runs(self):
        clock = RealtimeClock()
        calls = []
        handle = clock.call_later(0.01, lambda: calls.append(1))
        handle.cancel()
        clock.run(duration=0.1)
        assert calls == []
