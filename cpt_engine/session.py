from __future__ import annotations

import logging

from .calibration import CalibrationConfig, CalibrationEngine
from .clock import Clock, TimerScheduler
from .cpt_core import CptConfig, Phase, SeededRng, SessionLog, TrialGenerator
from .errors import InvalidStateError
from .scheduler import CptSnapshot, TrialScheduler
from .scoring import SessionResult

logger = logging.getLogger(__name__)

_SUB_SEED_MAX = 2**31 - 1


class CptSession:
    """One subject's test session: calibration, trial scheduler and session log.

    Components receive the session's clock, timers and seed explicitly; nothing
    is shared through module state.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        timers: TimerScheduler,
        seed: int,
        config: CptConfig | None = None,
        calibration_config: CalibrationConfig | None = None,
    ) -> None:
        self._clock = clock
        self._timers = timers
        self._seed = int(seed)
        self._config = config or CptConfig()
        # Calibration and each run get their own stream, all derived from one seed.
        self._seeds = SeededRng(self._seed)
        self._calibration = CalibrationEngine(
            clock=clock,
            timers=timers,
            seed=self._seeds.randint(1, _SUB_SEED_MAX),
            config=calibration_config,
        )
        self._log = SessionLog()
        self._scheduler: TrialScheduler | None = None
        self._run_seed: int | None = None

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def run_seed(self) -> int | None:
        """Seed of the current run's trial generator, once a test has started."""
        return self._run_seed

    @property
    def config(self) -> CptConfig:
        return self._config

    @property
    def calibration(self) -> CalibrationEngine:
        return self._calibration

    @property
    def log(self) -> SessionLog:
        return self._log

    @property
    def scheduler(self) -> TrialScheduler | None:
        return self._scheduler

    @property
    def phase(self) -> Phase:
        return Phase.IDLE if self._scheduler is None else self._scheduler.phase

    def start_test(self) -> TrialScheduler:
        if self._scheduler is not None:
            raise InvalidStateError("start_test", str(self._scheduler.phase))
        state = self._calibration.state
        if not state.ready:
            raise InvalidStateError("start_test", "calibration not ready")

        self._calibration.cancel()
        self._run_seed = self._seeds.randint(1, _SUB_SEED_MAX)
        generator = TrialGenerator(
            SeededRng(self._run_seed),
            target_probability=self._config.target_probability,
            distractor_probability=self._config.distractor_probability,
        )
        self._scheduler = TrialScheduler(
            clock=self._clock,
            timers=self._timers,
            generator=generator,
            log=self._log,
            calibration_offset_ms=float(state.offset_ms),
            config=self._config,
        )
        logger.info("test started, run seed %d, offset %d ms", self._run_seed, state.offset_ms)
        self._scheduler.start()
        return self._scheduler

    def on_discrete_input(self, now_ms: float) -> None:
        if self._scheduler is None:
            raise InvalidStateError("on_discrete_input", str(Phase.IDLE))
        self._scheduler.on_discrete_input(now_ms)

    def resume_from_break(self) -> None:
        if self._scheduler is not None:
            self._scheduler.resume_from_break()

    def exit(self) -> None:
        if self._scheduler is not None:
            self._scheduler.exit()

    def snapshot(self) -> CptSnapshot | None:
        return None if self._scheduler is None else self._scheduler.snapshot()

    def get_result(self) -> SessionResult:
        if self._scheduler is None:
            raise InvalidStateError("get_result", str(Phase.IDLE))
        return self._scheduler.get_result()

    def reset(self) -> None:
        """Abandon the current run and clear the log. Calibration is kept."""

        if self._scheduler is not None:
            self._scheduler.exit()
        self._scheduler = None
        self._run_seed = None
        self._log.clear()
        logger.info("session reset")
