"""Pygame host for the CPT engine.

The host owns the window, the keyboard input channel and the per-frame timer
pump. Deterministic timing/scoring/RNG/state lives in cpt_engine/* (core
modules); nothing here classifies responses.

Keys: SPACE responds, ENTER advances (catch-trial, start, resume), P/F confirm
the pre-test checklist, ESC exits the running test or quits.
"""

from __future__ import annotations

import logging
import os
import random
from collections.abc import Callable
from enum import Enum
from typing import Protocol

import pygame

from .calibration import CatchTrialStatus
from .clock import Clock, RealClock, TimerQueue
from .cpt_core import DistractorKind, Phase
from .results import summary_lines
from .session import CptSession

logger = logging.getLogger(__name__)

SEED_ENV = "CPT_SEED"
WINDOW_SIZE = (960, 540)
TARGET_FPS = 120

_BG = (10, 10, 14)
_FG = (235, 235, 245)
_DIM = (150, 150, 165)
_OK = (90, 200, 120)
_WARN = (230, 90, 80)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class _Stage(str, Enum):
    CALIBRATION = "calibration"
    TEST = "test"


class CptScreen:
    def __init__(self, app: App, *, session: CptSession, clock: Clock) -> None:
        self._app = app
        self._session = session
        self._clock = clock
        self._stage = _Stage.CALIBRATION
        self._big_font = pygame.font.Font(None, 160)
        self._small_font = pygame.font.Font(None, 26)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if self._stage is _Stage.CALIBRATION:
            self._handle_calibration_key(event.key)
        else:
            self._handle_test_key(event.key)

    def _handle_calibration_key(self, key: int) -> None:
        calibration = self._session.calibration
        if key == pygame.K_SPACE:
            calibration.on_discrete_input(self._clock.now_ms())
        elif key == pygame.K_p:
            calibration.confirm_power(not calibration.state.power_confirmed)
        elif key == pygame.K_f:
            calibration.confirm_focus_mode(not calibration.state.focus_mode_confirmed)
        elif key == pygame.K_RETURN:
            if calibration.state.ready:
                self._session.start_test()
                self._stage = _Stage.TEST
            else:
                calibration.start_catch_trial()
        elif key == pygame.K_ESCAPE:
            calibration.cancel()
            self._app.quit()

    def _handle_test_key(self, key: int) -> None:
        phase = self._session.phase
        if key == pygame.K_SPACE:
            # Presses outside RUNNING are host noise, not subject responses.
            if phase is Phase.RUNNING:
                self._session.on_discrete_input(self._clock.now_ms())
        elif key == pygame.K_RETURN:
            if phase is Phase.BREAK:
                self._session.resume_from_break()
            elif phase in (Phase.COMPLETE, Phase.EXITED):
                self._session.reset()
                self._stage = _Stage.CALIBRATION
        elif key == pygame.K_ESCAPE:
            if phase in (Phase.COMPLETE, Phase.EXITED):
                self._app.quit()
            else:
                self._session.exit()

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(_BG)
        if self._stage is _Stage.CALIBRATION:
            self._render_calibration(surface)
        else:
            self._render_test(surface)

    def _render_calibration(self, surface: pygame.Surface) -> None:
        calibration = self._session.calibration
        state = calibration.state
        lines = [
            "System calibration",
            "",
            f"[P] Charger connected: {'yes' if state.power_confirmed else 'no'}",
            f"[F] Do-not-disturb on: {'yes' if state.focus_mode_confirmed else 'no'}",
            f"Reaction samples: {len(state.samples)}/{calibration.config.required_samples}",
        ]
        if state.complete:
            lines.append(f"Calibrated offset: {state.offset_ms} ms")
        if calibration.status is CatchTrialStatus.TOO_EARLY:
            lines.append("Too early! Press ENTER to retry.")
        elif calibration.last_sample_ms is not None and calibration.status is CatchTrialStatus.IDLE:
            lines.append(f"Last reaction: {calibration.last_sample_ms:.0f} ms")
        lines.append("")
        lines.append("ENTER to start the test" if state.ready else "ENTER for a catch-trial, SPACE when the cue shows")
        self._blit_lines(surface, lines, top=40)

        if calibration.status is CatchTrialStatus.WAITING:
            self._blit_center(surface, "...", color=_DIM)
        elif calibration.cue_visible:
            w, h = surface.get_size()
            pygame.draw.circle(surface, _OK, (w // 2, int(h * 0.7)), 40)

    def _render_test(self, surface: pygame.Surface) -> None:
        snap = self._session.snapshot()
        if snap is None:
            return

        if snap.phase is Phase.COUNTDOWN:
            self._blit_center(surface, str(snap.countdown), color=_OK)
        elif snap.phase is Phase.RUNNING:
            self._blit_lines(
                surface,
                [f"Block {snap.block_number}/{snap.total_blocks}"],
                top=12,
                font=self._small_font,
            )
            w, _ = surface.get_size()
            pygame.draw.rect(surface, _DIM, pygame.Rect(160, 18, w - 200, 6), 1)
            pygame.draw.rect(surface, _OK, pygame.Rect(160, 18, int((w - 200) * snap.block_progress / 100.0), 6))
            if snap.stimulus_visible:
                self._blit_center(surface, ":)" if snap.is_target else ":|", color=_FG)
            else:
                self._blit_center(surface, "+", color=_DIM)
            self._render_distractor(surface, snap.distractor)
        elif snap.phase is Phase.BREAK:
            self._blit_lines(
                surface,
                [
                    "Short break",
                    f"Finished block {snap.block_number - 1} of {snap.total_blocks}",
                    "",
                    "Press ENTER to continue",
                ],
                top=120,
            )
        elif snap.phase is Phase.COMPLETE:
            lines = summary_lines(self._session.get_result())
            self._blit_lines(surface, lines + ["", "ENTER for a new run, ESC to quit"], top=40, font=self._small_font)
        elif snap.phase is Phase.EXITED:
            self._blit_lines(surface, ["Test stopped.", "", "ENTER to return to calibration"], top=120)

    def _render_distractor(self, surface: pygame.Surface, distractor: DistractorKind) -> None:
        w, h = surface.get_size()
        if distractor is DistractorKind.VISUAL_A:
            pygame.draw.polygon(surface, _WARN, [(60, 110), (120, 80), (110, 130)])
        elif distractor is DistractorKind.VISUAL_B:
            pygame.draw.circle(surface, _FG, (w - 90, h - 90), 30, 3)

    def _blit_lines(
        self,
        surface: pygame.Surface,
        lines: list[str],
        *,
        top: int,
        font: pygame.font.Font | None = None,
    ) -> None:
        font = font or self._app.font
        y = top
        for line in lines:
            surface.blit(font.render(line, True, _FG), (40, y))
            y += font.get_linesize()

    def _blit_center(self, surface: pygame.Surface, text: str, *, color: tuple[int, int, int]) -> None:
        img = self._big_font.render(text, True, color)
        rect = img.get_rect(center=surface.get_rect().center)
        surface.blit(img, rect)


def _new_seed() -> int:
    raw = os.environ.get(SEED_ENV, "").strip()
    if raw:
        try:
            return int(raw)
        except ValueError:
            logger.warning("ignoring non-integer %s=%r", SEED_ENV, raw)
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    clock: Clock | None = None,
) -> int:
    pygame.init()

    pygame.display.set_caption("CPT Attention Test")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    frame_clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    clock = clock or RealClock()
    timers = TimerQueue(clock)
    session = CptSession(clock=clock, timers=timers, seed=_new_seed())
    logger.info("session seed %d", session.seed)
    app.push(CptScreen(app, session=session, clock=clock))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            # Input before timers: a press at a window deadline counts as in-window.
            for event in pygame.event.get():
                app.handle_event(event)
            timers.pump()

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            frame_clock.tick(TARGET_FPS)
    finally:
        session.reset()
        timers.clear()
        pygame.quit()

    return 0
