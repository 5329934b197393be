from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .cpt_core import round_half_up
from .scoring import SessionResult

# Reference latency for the 0..100 timing score: a 500 ms mean scores 100.
TIMING_REFERENCE_MS = 500.0


class AttentionBand(StrEnum):
    NORMAL = "normal"
    MODERATE = "moderate"
    LOW = "low"


class ImpulsivityBand(StrEnum):
    NONE = "none"
    MILD = "mild"
    SIGNIFICANT = "significant"


class SpeedBand(StrEnum):
    EXCELLENT = "excellent"
    NORMAL = "normal"
    SLOW = "slow"


@dataclass(frozen=True, slots=True)
class DisplayScores:
    """Four 0..100 scores where higher is always better."""

    attention: int
    timing: int
    impulse_control: int
    activity_control: int


@dataclass(frozen=True, slots=True)
class Interpretation:
    attention: AttentionBand
    impulsivity: ImpulsivityBand
    speed: SpeedBand


def display_scores(result: SessionResult) -> DisplayScores:
    timing = 0
    if result.timeliness > 0.0:
        timing = min(100, round_half_up((TIMING_REFERENCE_MS / result.timeliness) * 100.0))
    return DisplayScores(
        attention=round_half_up(result.attentiveness),
        timing=int(timing),
        impulse_control=round_half_up(100.0 - result.impulsivity),
        activity_control=round_half_up(100.0 - result.hyperactivity),
    )


def interpret(result: SessionResult) -> Interpretation:
    if result.attentiveness >= 80.0:
        attention = AttentionBand.NORMAL
    elif result.attentiveness >= 60.0:
        attention = AttentionBand.MODERATE
    else:
        attention = AttentionBand.LOW

    if result.impulsivity <= 20.0:
        impulsivity = ImpulsivityBand.NONE
    elif result.impulsivity <= 40.0:
        impulsivity = ImpulsivityBand.MILD
    else:
        impulsivity = ImpulsivityBand.SIGNIFICANT

    # A timeliness of 0 means "no hits"; it reads as excellent, same as the report screen.
    if result.timeliness < 300.0:
        speed = SpeedBand.EXCELLENT
    elif result.timeliness < 500.0:
        speed = SpeedBand.NORMAL
    else:
        speed = SpeedBand.SLOW

    return Interpretation(attention=attention, impulsivity=impulsivity, speed=speed)


def summary_lines(result: SessionResult) -> list[str]:
    """Plain-text result block for hosts that only render text."""

    scores = display_scores(result)
    reading = interpret(result)
    return [
        "Results",
        "",
        f"Attentiveness: {result.attentiveness:.1f}%  ({reading.attention})",
        f"Timeliness:    {result.timeliness:.0f} ms  ({reading.speed})",
        f"Impulsivity:   {result.impulsivity:.1f}%  ({reading.impulsivity})",
        f"Hyperactivity: {result.hyperactivity:.1f}%",
        f"Calibration:   {result.calibration_offset_ms:.0f} ms",
        "",
        (
            f"Scores  attention {scores.attention}  timing {scores.timing}  "
            f"impulse control {scores.impulse_control}  activity control {scores.activity_control}"
        ),
    ]
