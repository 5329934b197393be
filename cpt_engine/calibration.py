from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum

from .clock import Clock, TimerScheduler, TimerToken
from .cpt_core import SeededRng, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CalibrationConfig:
    min_delay_ms: float = 1000.0
    max_delay_ms: float = 3000.0
    required_samples: int = 5


class CatchTrialStatus(StrEnum):
    IDLE = "idle"
    WAITING = "waiting"
    CUE_SHOWN = "cue_shown"
    TOO_EARLY = "too_early"


@dataclass(frozen=True, slots=True)
class CalibrationState:
    samples: tuple[float, ...] = ()
    offset_ms: int = 0
    complete: bool = False
    power_confirmed: bool = False
    focus_mode_confirmed: bool = False

    @property
    def mean_ms(self) -> float:
        if not self.samples:
            return 0.0
        return sum(self.samples) / len(self.samples)

    @property
    def ready(self) -> bool:
        return self.complete and self.power_confirmed and self.focus_mode_confirmed


class CalibrationEngine:
    """Catch-trial reaction test that measures the systemic input/display latency.

    The offset is a plain mean of the samples. It models the pipeline delay, not
    the subject, so outliers are kept.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        timers: TimerScheduler,
        seed: int,
        config: CalibrationConfig | None = None,
    ) -> None:
        config = config or CalibrationConfig()
        if config.min_delay_ms < 0.0:
            raise ValueError("min_delay_ms must be >= 0")
        if config.max_delay_ms <= config.min_delay_ms:
            raise ValueError("max_delay_ms must be > min_delay_ms")
        if config.required_samples <= 0:
            raise ValueError("required_samples must be > 0")

        self._clock = clock
        self._timers = timers
        self._seed = int(seed)
        self._rng = SeededRng(self._seed)
        self._config = config

        self._state = CalibrationState()
        self._status = CatchTrialStatus.IDLE
        self._token: TimerToken | None = None
        self._cue_onset_ms: float | None = None
        self._last_sample_ms: float | None = None

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def config(self) -> CalibrationConfig:
        return self._config

    @property
    def state(self) -> CalibrationState:
        return self._state

    @property
    def status(self) -> CatchTrialStatus:
        return self._status

    @property
    def cue_visible(self) -> bool:
        return self._status is CatchTrialStatus.CUE_SHOWN

    @property
    def last_sample_ms(self) -> float | None:
        return self._last_sample_ms

    def can_start_catch_trial(self) -> bool:
        if self._state.complete:
            return False
        return self._status in (CatchTrialStatus.IDLE, CatchTrialStatus.TOO_EARLY)

    def start_catch_trial(self) -> None:
        if not self.can_start_catch_trial():
            return
        span = self._config.max_delay_ms - self._config.min_delay_ms
        delay = self._config.min_delay_ms + self._rng.random() * span
        self._status = CatchTrialStatus.WAITING
        self._cue_onset_ms = None
        self._token = self._timers.after(delay, self._show_cue)
        logger.debug("catch-trial armed, cue in %.1f ms", delay)

    def on_discrete_input(self, now_ms: float) -> None:
        if self._status is CatchTrialStatus.WAITING:
            self._cancel_timer()
            self._status = CatchTrialStatus.TOO_EARLY
            logger.info("calibration press before cue; catch-trial void")
            return

        if self._status is not CatchTrialStatus.CUE_SHOWN:
            return

        assert self._cue_onset_ms is not None
        sample = max(0.0, float(now_ms) - self._cue_onset_ms)
        self._add_sample(sample)
        self._status = CatchTrialStatus.IDLE
        self._cue_onset_ms = None

    def cancel(self) -> None:
        self._cancel_timer()
        self._cue_onset_ms = None
        if self._status in (CatchTrialStatus.WAITING, CatchTrialStatus.CUE_SHOWN):
            self._status = CatchTrialStatus.IDLE

    def confirm_power(self, confirmed: bool = True) -> None:
        self._state = replace(self._state, power_confirmed=bool(confirmed))

    def confirm_focus_mode(self, confirmed: bool = True) -> None:
        self._state = replace(self._state, focus_mode_confirmed=bool(confirmed))

    def _show_cue(self) -> None:
        self._token = None
        self._cue_onset_ms = self._clock.now_ms()
        self._status = CatchTrialStatus.CUE_SHOWN

    def _add_sample(self, sample_ms: float) -> None:
        samples = self._state.samples + (sample_ms,)
        mean = sum(samples) / len(samples)
        complete = self._state.complete or len(samples) >= self._config.required_samples
        self._state = replace(
            self._state,
            samples=samples,
            offset_ms=round_half_up(mean),
            complete=complete,
        )
        self._last_sample_ms = sample_ms
        logger.debug("calibration sample %d: %.1f ms", len(samples), sample_ms)
        if complete and len(samples) == self._config.required_samples:
            logger.info("calibration complete, offset %d ms", self._state.offset_ms)

    def _cancel_timer(self) -> None:
        if self._token is not None:
            self._timers.cancel(self._token)
            self._token = None

