import logging
import time

import pytest

import gym_auth as m
from gym_auth import refresh_gate


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_refresh_gate_allows_first():
    """First call to allow() returns True, subsequent calls return False."""
    gate = m.RefreshGate(min_interval=10.0, clock=FakeClock())

    assert gate.allow() is True
    assert gate.allow() is False  # same time -> blocked


def test_refresh_gate_allows_first_at_clock_zero():
    """A monotonic clock may start near zero; the first fetch is still allowed."""
    gate = m.RefreshGate(min_interval=10.0, clock=FakeClock(0.0))

    assert gate.allow() is True


def test_refresh_gate_allows_after_interval():
    """After min_interval passes, allow() returns True again."""
    clock = FakeClock()
    gate = m.RefreshGate(min_interval=10.0, clock=clock)

    assert gate.allow() is True

    clock.now = 1009.0
    assert gate.allow() is False

    clock.now = 1010.0
    assert gate.allow() is True


def test_refresh_gate_counts_denials():
    """Denials accumulate until the next allowed fetch resets them."""
    clock = FakeClock()
    gate = m.RefreshGate(min_interval=10.0, clock=clock)

    assert gate.allow() is True
    gate.allow()
    gate.allow()
    assert gate.denied == 2

    clock.now = 1010.0
    assert gate.allow() is True
    assert gate.denied == 0


def test_refresh_gate_warns_at_alert_threshold(caplog: pytest.LogCaptureFixture):
    """A warning is logged once denials reach alert_threshold."""
    gate = m.RefreshGate(min_interval=10.0, alert_threshold=3, clock=FakeClock())

    with caplog.at_level(logging.WARNING, logger="gym_auth.refresh_gate"):
        assert gate.allow() is True
        assert gate.allow() is False
        assert gate.allow() is False
        assert not caplog.records

        assert gate.allow() is False

    assert len(caplog.records) == 1
    assert "3 denials" in caplog.records[0].getMessage()


def test_refresh_gate_ignores_wall_clock_steps(monkeypatch: pytest.MonkeyPatch):
    """Setting the wall clock back does not extend the denial window."""
    clock = FakeClock()
    gate = m.RefreshGate(min_interval=10.0, clock=clock)

    assert gate.allow() is True

    monkeypatch.setattr(refresh_gate.time, "time", lambda: 0.0)
    clock.now = 1010.0

    assert gate.allow() is True


def test_refresh_gate_defaults_to_monotonic_clock():
    assert m.RefreshGate()._clock is time.monotonic


@pytest.mark.parametrize(
    ("min_interval", "alert_threshold"),
    [(0, 5), (-1, 5), (10, 0)],
)
def test_refresh_gate_rejects_invalid_arguments(min_interval, alert_threshold):
    with pytest.raises(ValueError):
        m.RefreshGate(min_interval=min_interval, alert_threshold=alert_threshold)
