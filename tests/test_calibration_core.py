from __future__ import annotations

from dataclasses import dataclass

import pytest

from cpt_engine.calibration import CalibrationConfig, CalibrationEngine, CatchTrialStatus
from cpt_engine.clock import TimerQueue


@dataclass
class FakeClock:
    t: float = 0.0

    def now_ms(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def _build(seed: int = 11) -> tuple[FakeClock, TimerQueue, CalibrationEngine]:
    clock = FakeClock()
    timers = TimerQueue(clock)
    engine = CalibrationEngine(clock=clock, timers=timers, seed=seed)
    return clock, timers, engine


def _show_cue(clock: FakeClock, timers: TimerQueue) -> None:
    due = timers.next_due_ms()
    assert due is not None
    clock.t = due
    timers.pump()


def _sample(clock: FakeClock, timers: TimerQueue, engine: CalibrationEngine, rt_ms: float) -> None:
    engine.start_catch_trial()
    _show_cue(clock, timers)
    assert engine.cue_visible
    clock.advance(rt_ms)
    engine.on_discrete_input(clock.now_ms())


def test_catch_trial_delay_is_within_bounds() -> None:
    clock, timers, engine = _build()
    for _ in range(20):
        start = clock.now_ms()
        engine.start_catch_trial()
        due = timers.next_due_ms()
        assert due is not None
        assert 1000.0 <= due - start < 3000.0
        engine.cancel()
        clock.advance(5.0)


def test_same_seed_gives_same_cue_delays() -> None:
    delays = []
    for _ in range(2):
        clock, timers, engine = _build(seed=77)
        seq = []
        for _ in range(5):
            engine.start_catch_trial()
            seq.append(timers.next_due_ms())
            engine.cancel()
        delays.append(seq)
    assert delays[0] == delays[1]


def test_scenario_offset_of_five_samples() -> None:
    clock, timers, engine = _build()

    for rt in (200, 210, 190, 205):
        _sample(clock, timers, engine, rt)
        assert engine.state.complete is False

    _sample(clock, timers, engine, 195)
    state = engine.state
    assert len(state.samples) == 5
    assert state.offset_ms == 200
    assert state.mean_ms == pytest.approx(200.0)
    assert state.complete is True


def test_offset_tracks_rounded_mean_after_every_sample() -> None:
    clock, timers, engine = _build()
    for rt in (180, 251, 199):
        _sample(clock, timers, engine, rt)
        samples = engine.state.samples
        assert engine.state.mean_ms == sum(samples) / len(samples)
        assert engine.state.offset_ms == int(engine.state.mean_ms + 0.5)
    # 630 / 3 = 210
    assert engine.state.offset_ms == 210


def test_press_before_cue_is_too_early_and_records_nothing() -> None:
    clock, timers, engine = _build()
    _sample(clock, timers, engine, 240)
    before = engine.state

    engine.start_catch_trial()
    clock.advance(500.0)
    engine.on_discrete_input(clock.now_ms())

    assert engine.status is CatchTrialStatus.TOO_EARLY
    assert engine.state == before
    assert timers.pending() == 0

    # The cancelled cue never appears.
    clock.advance(5000.0)
    timers.pump()
    assert not engine.cue_visible

    # Retry is allowed.
    _sample(clock, timers, engine, 260)
    assert len(engine.state.samples) == 2


def test_press_while_idle_is_a_no_op() -> None:
    clock, _, engine = _build()
    engine.on_discrete_input(clock.now_ms())
    assert engine.status is CatchTrialStatus.IDLE
    assert engine.state.samples == ()


def test_complete_is_monotonic_and_further_trials_are_disabled() -> None:
    clock, timers, engine = _build()
    for rt in (200, 200, 200, 200, 200):
        _sample(clock, timers, engine, rt)

    assert engine.state.complete is True
    assert engine.can_start_catch_trial() is False

    engine.start_catch_trial()
    assert timers.pending() == 0
    assert engine.state.complete is True
    assert len(engine.state.samples) == 5


def test_ready_needs_checklist_and_calibration() -> None:
    clock, timers, engine = _build()
    for rt in (200, 200, 200, 200, 200):
        _sample(clock, timers, engine, rt)
    assert engine.state.ready is False

    engine.confirm_power()
    assert engine.state.ready is False
    engine.confirm_focus_mode()
    assert engine.state.ready is True

    engine.confirm_power(False)
    assert engine.state.ready is False


def test_invalid_config_rejected() -> None:
    clock = FakeClock()
    timers = TimerQueue(clock)
    with pytest.raises(ValueError):
        CalibrationEngine(
            clock=clock,
            timers=timers,
            seed=1,
            config=CalibrationConfig(min_delay_ms=3000.0, max_delay_ms=1000.0),
        )
    with pytest.raises(ValueError):
        CalibrationEngine(clock=clock, timers=timers, seed=1, config=CalibrationConfig(required_samples=0))
