import time

import pytest

from utilkit.spin import MAX_SLEEP_NS, SPINS, Sleeper


@pytest.fixture
def recorded(monkeypatch):
    calls = []
    monkeypatch.setattr(time, "sleep", calls.append)
    return calls


def test_spin_phase_only_yields(recorded):
    sleeper = Sleeper()
    for _ in range(SPINS):
        sleeper.sleep()
    assert sleeper.loop == 65535
    assert set(recorded) == {0}
    assert len(recorded) == SPINS
    assert sleeper.at_ns == 0


def test_first_real_sleep_is_one_nanosecond(recorded):
    sleeper = Sleeper(loop=SPINS)
    sleeper.sleep()
    assert recorded == [pytest.approx(1e-9)]
    assert sleeper.loop == SPINS


def test_backoff_grows_and_caps_at_one_second(recorded):
    sleeper = Sleeper(loop=SPINS)
    for _ in range(20):
        sleeper.sleep()
    assert sleeper.at_ns == MAX_SLEEP_NS
    assert len(recorded) == 20
    assert recorded == sorted(recorded)
    assert recorded[0] == pytest.approx(1e-9)
    assert recorded[9] == pytest.approx(1.0)
    assert recorded[-1] == pytest.approx(1.0)
    for before, after in zip(recorded, recorded[1:]):
        assert after <= before * 10 + 1e-12


def test_period_never_exceeds_maximum(recorded):
    sleeper = Sleeper(loop=SPINS)
    for _ in range(30):
        sleeper.sleep()
        assert sleeper.at_ns <= MAX_SLEEP_NS
    assert sleeper.at_ns == MAX_SLEEP_NS