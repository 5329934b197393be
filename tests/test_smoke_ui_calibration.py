from __future__ import annotations

import os


def test_ui_smoke_checklist_catch_trial_and_exit(monkeypatch) -> None:
    # Headless SDL for CI.
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
    monkeypatch.setenv("CPT_SEED", "42")

    import pygame

    from cpt_engine.app import run

    def key(k: int) -> None:
        pygame.event.post(pygame.event.Event(pygame.KEYDOWN, {"key": k, "unicode": ""}))

    def inject(frame: int) -> None:
        # Checklist, arm a catch-trial, press too early, retry, then quit.
        if frame == 1:
            key(pygame.K_p)
        elif frame == 2:
            key(pygame.K_f)
        elif frame == 3:
            key(pygame.K_RETURN)
        elif frame == 4:
            key(pygame.K_SPACE)
        elif frame == 5:
            key(pygame.K_RETURN)
        elif frame == 8:
            key(pygame.K_ESCAPE)

    assert run(max_frames=30, event_injector=inject) == 0


def test_ui_ignores_bad_seed_env(monkeypatch) -> None:
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
    monkeypatch.setenv("CPT_SEED", "not-a-number")

    from cpt_engine.app import run

    assert run(max_frames=2) == 0
