"""Trial/block scheduler for the CPT.

The protocol is an explicit state machine. ``transition`` is a pure function of
(state, event) returning the next state and a tuple of effects; the
``TrialScheduler`` shell applies those effects against a clock, a timer queue,
the trial generator and the session log. At most one timer is pending at a time.

Phases: IDLE -> COUNTDOWN -> RUNNING -> BREAK -> COUNTDOWN ... -> COMPLETE,
with EXITED reachable from anywhere via ``exit()``.

A trial inside RUNNING passes through three stages:

    STIMULUS  stimulus (and optional distractor) visible
    WINDOW    stimulus hidden, response window open
    INTERVAL  inter-stimulus gap before the next trial
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum

from .classifier import ResponseClassifier
from .clock import Clock, TimerScheduler, TimerToken
from .cpt_core import (
    BLOCK_SPEC,
    CptConfig,
    DistractorKind,
    Phase,
    ResponseRecord,
    SessionLog,
    TrialContext,
    TrialDraw,
    TrialGenerator,
    condition_for_block,
)
from .errors import InvalidStateError
from .scoring import SessionResult, score_session

logger = logging.getLogger(__name__)


class TrialStage(StrEnum):
    STIMULUS = "stimulus"
    WINDOW = "window"
    INTERVAL = "interval"


@dataclass(frozen=True, slots=True)
class SchedulerState:
    phase: Phase = Phase.IDLE
    block_number: int = 1
    trial_number: int = 0
    countdown: int = 0
    stage: TrialStage | None = None
    # During INTERVAL this is the trial that just closed; late presses land on it.
    trial: TrialContext | None = None


# Events


@dataclass(frozen=True, slots=True)
class StartRequested:
    pass


@dataclass(frozen=True, slots=True)
class ResumeRequested:
    pass


@dataclass(frozen=True, slots=True)
class ExitRequested:
    pass


@dataclass(frozen=True, slots=True)
class TimerElapsed:
    now_ms: float


@dataclass(frozen=True, slots=True)
class TrialDrawn:
    draw: TrialDraw
    now_ms: float


@dataclass(frozen=True, slots=True)
class InputReceived:
    now_ms: float


Event = StartRequested | ResumeRequested | ExitRequested | TimerElapsed | TrialDrawn | InputReceived


# Effects


@dataclass(frozen=True, slots=True)
class ArmTimer:
    delay_ms: float


@dataclass(frozen=True, slots=True)
class CancelTimer:
    pass


@dataclass(frozen=True, slots=True)
class DrawTrial:
    block_number: int


@dataclass(frozen=True, slots=True)
class AppendRecord:
    record: ResponseRecord


@dataclass(frozen=True, slots=True)
class SessionCompleted:
    pass


Effect = ArmTimer | CancelTimer | DrawTrial | AppendRecord | SessionCompleted

Transition = tuple[SchedulerState, tuple[Effect, ...]]


def transition(
    state: SchedulerState,
    event: Event,
    *,
    config: CptConfig,
    classifier: ResponseClassifier,
) -> Transition:
    if isinstance(event, StartRequested):
        if state.phase is not Phase.IDLE:
            return state, ()
        return _enter_countdown(state, config)

    if isinstance(event, ResumeRequested):
        if state.phase is not Phase.BREAK:
            return state, ()
        return _enter_countdown(state, config)

    if isinstance(event, ExitRequested):
        if state.phase in (Phase.COMPLETE, Phase.EXITED):
            return state, ()
        # The trial in flight is dropped without a record.
        return replace(state, phase=Phase.EXITED, stage=None, trial=None, countdown=0), (CancelTimer(),)

    if isinstance(event, TimerElapsed):
        return _on_timer(state, config=config, classifier=classifier)

    if isinstance(event, TrialDrawn):
        if state.phase is not Phase.RUNNING or state.stage is not None:
            return state, ()
        trial = TrialContext(
            block_number=state.block_number,
            trial_number=state.trial_number,
            is_target=event.draw.is_target,
            stimulus_onset_ms=float(event.now_ms),
            distractor=event.draw.distractor,
        )
        return replace(state, stage=TrialStage.STIMULUS, trial=trial), (ArmTimer(config.stimulus_ms),)

    if isinstance(event, InputReceived):
        return _on_input(state, event.now_ms, classifier=classifier)

    raise TypeError(f"unknown scheduler event: {event!r}")


def _enter_countdown(state: SchedulerState, config: CptConfig) -> Transition:
    next_state = replace(
        state,
        phase=Phase.COUNTDOWN,
        countdown=config.countdown_steps,
        stage=None,
        trial=None,
    )
    if config.countdown_steps <= 0:
        return _enter_running(next_state)
    return next_state, (ArmTimer(config.countdown_step_ms),)


def _enter_running(state: SchedulerState) -> Transition:
    return replace(state, phase=Phase.RUNNING, countdown=0, stage=None, trial=None), (
        DrawTrial(state.block_number),
    )


def _on_timer(state: SchedulerState, *, config: CptConfig, classifier: ResponseClassifier) -> Transition:
    if state.phase is Phase.COUNTDOWN:
        remaining = state.countdown - 1
        if remaining > 0:
            return replace(state, countdown=remaining), (ArmTimer(config.countdown_step_ms),)
        return _enter_running(state)

    if state.phase is not Phase.RUNNING:
        return state, ()

    if state.stage is TrialStage.STIMULUS:
        return replace(state, stage=TrialStage.WINDOW), (ArmTimer(config.response_window_ms),)

    if state.stage is TrialStage.WINDOW:
        return _close_window(state, config=config, classifier=classifier)

    if state.stage is TrialStage.INTERVAL:
        return replace(state, stage=None, trial=None), (DrawTrial(state.block_number),)

    return state, ()


def _close_window(state: SchedulerState, *, config: CptConfig, classifier: ResponseClassifier) -> Transition:
    assert state.trial is not None
    trial = state.trial
    effects: list[Effect] = []
    if trial.is_target and not trial.logged:
        effects.append(AppendRecord(classifier.omission(trial)))
        trial = replace(trial, logged=True)
    # Silent correct rejections are not logged.

    next_trial = state.trial_number + 1
    if next_trial < config.trials_per_block:
        effects.append(ArmTimer(config.inter_stimulus_ms))
        next_state = replace(state, trial_number=next_trial, stage=TrialStage.INTERVAL, trial=trial)
        return next_state, tuple(effects)

    if state.block_number >= config.total_blocks:
        effects.append(SessionCompleted())
        return replace(state, phase=Phase.COMPLETE, stage=None, trial=None), tuple(effects)

    next_state = replace(
        state,
        phase=Phase.BREAK,
        block_number=state.block_number + 1,
        trial_number=0,
        stage=None,
        trial=None,
    )
    return next_state, tuple(effects)


def _on_input(state: SchedulerState, now_ms: float, *, classifier: ResponseClassifier) -> Transition:
    if state.phase is not Phase.RUNNING:
        raise InvalidStateError("on_discrete_input", str(state.phase))
    trial = state.trial
    if trial is None or trial.logged:
        return state, ()
    record = classifier.classify(phase=state.phase, trial=trial, now_ms=now_ms)
    return replace(state, trial=replace(trial, logged=True)), (AppendRecord(record),)


@dataclass(frozen=True, slots=True)
class CptSnapshot:
    """View model for the renderer. Not to be used for classification."""

    phase: Phase
    block_number: int
    total_blocks: int
    trial_number: int
    trials_per_block: int
    countdown: int
    stimulus_visible: bool
    is_target: bool | None
    distractor: DistractorKind
    visual_condition: bool
    auditory_condition: bool
    block_progress: float
    overall_progress: float


class TrialScheduler:
    def __init__(
        self,
        *,
        clock: Clock,
        timers: TimerScheduler,
        generator: TrialGenerator,
        log: SessionLog,
        calibration_offset_ms: float = 0.0,
        config: CptConfig | None = None,
    ) -> None:
        config = config or CptConfig()
        if config.stimulus_ms <= 0.0:
            raise ValueError("stimulus_ms must be > 0")
        if config.response_window_ms < 0.0:
            raise ValueError("response_window_ms must be >= 0")
        if config.inter_stimulus_ms < 0.0:
            raise ValueError("inter_stimulus_ms must be >= 0")
        if config.trials_per_block <= 0:
            raise ValueError("trials_per_block must be > 0")
        if not (1 <= config.total_blocks <= len(BLOCK_SPEC)):
            raise ValueError(f"total_blocks must be in [1, {len(BLOCK_SPEC)}]")
        if config.countdown_steps < 0:
            raise ValueError("countdown_steps must be >= 0")

        self._clock = clock
        self._timers = timers
        self._generator = generator
        self._log = log
        self._config = config
        self._classifier = ResponseClassifier(config=config, calibration_offset_ms=calibration_offset_ms)

        self._state = SchedulerState()
        self._token: TimerToken | None = None
        self._result: SessionResult | None = None

    @property
    def config(self) -> CptConfig:
        return self._config

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def block_number(self) -> int:
        return self._state.block_number

    @property
    def trial_number(self) -> int:
        return self._state.trial_number

    @property
    def countdown(self) -> int:
        return self._state.countdown

    @property
    def calibration_offset_ms(self) -> float:
        return self._classifier.calibration_offset_ms

    @property
    def stimulus_visible(self) -> bool:
        return self._state.phase is Phase.RUNNING and self._state.stage is TrialStage.STIMULUS

    @property
    def distractor(self) -> DistractorKind:
        if not self.stimulus_visible or self._state.trial is None:
            return DistractorKind.NONE
        return self._state.trial.distractor

    def start(self) -> None:
        self._dispatch(StartRequested())

    def resume_from_break(self) -> None:
        self._dispatch(ResumeRequested())

    def exit(self) -> None:
        self._dispatch(ExitRequested())

    def on_discrete_input(self, now_ms: float) -> None:
        self._dispatch(InputReceived(now_ms=float(now_ms)))

    def get_result(self) -> SessionResult:
        """Score the session log once the test has finished or been exited.

        An exited test scores whatever was logged before the exit, which may be
        nothing at all.
        """
        if self._state.phase not in (Phase.COMPLETE, Phase.EXITED):
            raise InvalidStateError("get_result", str(self._state.phase))
        if self._result is None:
            self._result = score_session(self._log.records(), self._classifier.calibration_offset_ms)
        return self._result

    def snapshot(self) -> CptSnapshot:
        s = self._state
        condition = condition_for_block(min(s.block_number, self._config.total_blocks))
        per_block = self._config.trials_per_block
        done_trials = (s.block_number - 1) * per_block + s.trial_number
        if s.phase is Phase.COMPLETE:
            done_trials = self._config.total_blocks * per_block
        visible = self.stimulus_visible
        return CptSnapshot(
            phase=s.phase,
            block_number=s.block_number,
            total_blocks=self._config.total_blocks,
            trial_number=s.trial_number,
            trials_per_block=per_block,
            countdown=s.countdown,
            stimulus_visible=visible,
            is_target=(s.trial.is_target if visible and s.trial is not None else None),
            distractor=self.distractor,
            visual_condition=condition.visual_distractor,
            auditory_condition=condition.auditory_distractor,
            block_progress=100.0 * s.trial_number / per_block,
            overall_progress=100.0 * done_trials / (self._config.total_blocks * per_block),
        )

    def _dispatch(self, event: Event) -> None:
        prev_phase = self._state.phase
        self._state, effects = transition(
            self._state,
            event,
            config=self._config,
            classifier=self._classifier,
        )
        if self._state.phase is not prev_phase:
            logger.debug("phase %s -> %s (block %d)", prev_phase, self._state.phase, self._state.block_number)
        if self._state.phase is Phase.BREAK and prev_phase is Phase.RUNNING:
            logger.info("block %d complete", self._state.block_number - 1)
        for effect in effects:
            self._apply(effect)

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, ArmTimer):
            self._cancel_timer()
            self._token = self._timers.after(effect.delay_ms, self._on_timer)
        elif isinstance(effect, CancelTimer):
            self._cancel_timer()
            logger.info("test exited at block %d trial %d", self._state.block_number, self._state.trial_number)
        elif isinstance(effect, DrawTrial):
            draw = self._generator.next_trial(condition_for_block(effect.block_number))
            self._dispatch(TrialDrawn(draw=draw, now_ms=self._clock.now_ms()))
        elif isinstance(effect, AppendRecord):
            self._log.append(effect.record)
            logger.debug(
                "block %d trial %d: %s",
                effect.record.block_number,
                effect.record.trial_number,
                effect.record.classification,
            )
        elif isinstance(effect, SessionCompleted):
            self._result = score_session(self._log.records(), self._classifier.calibration_offset_ms)
            logger.info("test complete: %d records logged", len(self._log))

    def _on_timer(self) -> None:
        self._token = None
        self._dispatch(TimerElapsed(now_ms=self._clock.now_ms()))

    def _cancel_timer(self) -> None:
        if self._token is not None:
            self._timers.cancel(self._token)
            self._token = None
