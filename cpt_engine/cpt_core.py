from __future__ import annotations

import math
import random
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

T = TypeVar("T")


class Phase(StrEnum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RUNNING = "running"
    BREAK = "break"
    COMPLETE = "complete"
    EXITED = "exited"


class StimulusType(StrEnum):
    TARGET = "target"
    NON_TARGET = "non_target"


class Classification(StrEnum):
    HIT = "hit"
    MISS = "miss"
    COMMISSION = "commission"
    TIMING_ERROR = "timing_error"


class DistractorKind(StrEnum):
    NONE = "none"
    VISUAL_A = "visual_a"
    VISUAL_B = "visual_b"


@dataclass(frozen=True, slots=True)
class BlockCondition:
    visual_distractor: bool
    auditory_distractor: bool

    @property
    def label(self) -> str:
        if self.visual_distractor and self.auditory_distractor:
            return "combo"
        if self.visual_distractor:
            return "visual"
        if self.auditory_distractor:
            return "auditory"
        return "clean"


_CLEAN = BlockCondition(visual_distractor=False, auditory_distractor=False)
_VISUAL = BlockCondition(visual_distractor=True, auditory_distractor=False)
_AUDITORY = BlockCondition(visual_distractor=False, auditory_distractor=True)
_COMBO = BlockCondition(visual_distractor=True, auditory_distractor=True)

# Index 0 is block 1. The final clean block doubles as a fatigue check.
BLOCK_SPEC: tuple[BlockCondition, ...] = (
    _CLEAN,
    _VISUAL,
    _AUDITORY,
    _COMBO,
    _VISUAL,
    _AUDITORY,
    _COMBO,
    _CLEAN,
)


def condition_for_block(block_number: int) -> BlockCondition:
    if not (1 <= block_number <= len(BLOCK_SPEC)):
        raise ValueError(f"block_number must be in [1, {len(BLOCK_SPEC)}], got {block_number}")
    return BLOCK_SPEC[block_number - 1]


@dataclass(frozen=True, slots=True)
class CptConfig:
    stimulus_ms: float = 500.0
    response_window_ms: float = 1000.0
    inter_stimulus_ms: float = 1500.0
    trials_per_block: int = 10
    total_blocks: int = 8
    countdown_steps: int = 3
    countdown_step_ms: float = 1000.0
    target_probability: float = 0.7
    distractor_probability: float = 0.3

    @property
    def valid_response_ms(self) -> float:
        """Latest reaction time (inclusive) that still counts as a response."""
        return self.stimulus_ms + self.response_window_ms


@dataclass(frozen=True, slots=True)
class TrialDraw:
    is_target: bool
    distractor: DistractorKind


@dataclass(frozen=True, slots=True)
class TrialContext:
    block_number: int
    trial_number: int
    is_target: bool
    stimulus_onset_ms: float
    distractor: DistractorKind = DistractorKind.NONE
    logged: bool = False

    @property
    def stimulus_type(self) -> StimulusType:
        return StimulusType.TARGET if self.is_target else StimulusType.NON_TARGET


@dataclass(frozen=True, slots=True)
class ResponseRecord:
    block_number: int
    trial_number: int
    stimulus_type: StimulusType
    stimulus_onset_ms: float
    response_ms: float | None
    classification: Classification
    corrected_rt_ms: float | None
    has_visual_distractor: bool
    has_auditory_distractor: bool

    @property
    def raw_rt_ms(self) -> float | None:
        if self.response_ms is None:
            return None
        return self.response_ms - self.stimulus_onset_ms


class SessionLog:
    """Append-only, ordered record of classified responses for one run."""

    def __init__(self) -> None:
        self._records: list[ResponseRecord] = []

    def append(self, record: ResponseRecord) -> None:
        self._records.append(record)

    def records(self) -> tuple[ResponseRecord, ...]:
        return tuple(self._records)

    def clear(self) -> None:
        self._records = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ResponseRecord]:
        return iter(tuple(self._records))


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)


class TrialGenerator:
    """Deterministic stream of trial contents for a given seed."""

    DISTRACTORS: tuple[DistractorKind, ...] = (DistractorKind.VISUAL_A, DistractorKind.VISUAL_B)

    def __init__(
        self,
        rng: SeededRng,
        *,
        target_probability: float = 0.7,
        distractor_probability: float = 0.3,
    ) -> None:
        if not (0.0 <= target_probability <= 1.0):
            raise ValueError("target_probability must be in [0.0, 1.0]")
        if not (0.0 <= distractor_probability <= 1.0):
            raise ValueError("distractor_probability must be in [0.0, 1.0]")
        self._rng = rng
        self._target_probability = float(target_probability)
        self._distractor_probability = float(distractor_probability)

    def next_trial(self, condition: BlockCondition) -> TrialDraw:
        is_target = self._rng.random() < self._target_probability
        distractor = DistractorKind.NONE
        # Distractor presence is independent of target status.
        if condition.visual_distractor and self._rng.random() < self._distractor_probability:
            distractor = self._rng.choice(self.DISTRACTORS)
        return TrialDraw(is_target=is_target, distractor=distractor)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))
