from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .cpt_core import BlockCondition, Classification, ResponseRecord, StimulusType, condition_for_block


@dataclass(frozen=True, slots=True)
class SessionResult:
    attentiveness: float
    timeliness: float
    impulsivity: float
    hyperactivity: float
    raw_log: tuple[ResponseRecord, ...]
    calibration_offset_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class BlockSummary:
    block_number: int
    condition: BlockCondition
    hits: int
    misses: int
    commissions: int
    timing_errors: int
    mean_corrected_rt_ms: float | None


def _pct(numerator: int, denominator: int) -> float:
    return 0.0 if denominator == 0 else 100.0 * numerator / denominator


def score_session(records: Iterable[ResponseRecord], calibration_offset_ms: float) -> SessionResult:
    """Aggregate a finished session log into the four CPT metrics.

    attentiveness  hits / (hits + misses), percent
    timeliness     mean corrected RT over hits, ms (lower is better)
    impulsivity    commissions / logged non-target records, percent
    hyperactivity  timing errors / all logged records, percent

    Each metric is 0.0 when its denominator is empty. Silent correct rejections
    are never logged, so they are not part of any denominator. Records already
    carry the offset in ``corrected_rt_ms``; it is not subtracted again.
    """

    log = tuple(records)

    hits = [r for r in log if r.classification is Classification.HIT]
    misses = sum(1 for r in log if r.classification is Classification.MISS)
    commissions = sum(1 for r in log if r.classification is Classification.COMMISSION)
    timing_errors = sum(1 for r in log if r.classification is Classification.TIMING_ERROR)
    non_target_count = sum(1 for r in log if r.stimulus_type is StimulusType.NON_TARGET)

    hit_rts = [r.corrected_rt_ms for r in hits if r.corrected_rt_ms is not None]
    timeliness = 0.0 if not hit_rts else sum(hit_rts) / len(hit_rts)

    return SessionResult(
        attentiveness=_pct(len(hits), len(hits) + misses),
        timeliness=float(timeliness),
        impulsivity=_pct(commissions, non_target_count),
        hyperactivity=_pct(timing_errors, len(log)),
        raw_log=log,
        calibration_offset_ms=float(calibration_offset_ms),
    )


def block_breakdown(records: Iterable[ResponseRecord], *, total_blocks: int = 8) -> list[BlockSummary]:
    by_block: dict[int, list[ResponseRecord]] = {n: [] for n in range(1, total_blocks + 1)}
    for r in records:
        by_block.setdefault(r.block_number, []).append(r)

    out: list[BlockSummary] = []
    for block_number in sorted(by_block):
        rows = by_block[block_number]
        hit_rts = [
            r.corrected_rt_ms
            for r in rows
            if r.classification is Classification.HIT and r.corrected_rt_ms is not None
        ]
        out.append(
            BlockSummary(
                block_number=block_number,
                condition=condition_for_block(block_number),
                hits=sum(1 for r in rows if r.classification is Classification.HIT),
                misses=sum(1 for r in rows if r.classification is Classification.MISS),
                commissions=sum(1 for r in rows if r.classification is Classification.COMMISSION),
                timing_errors=sum(1 for r in rows if r.classification is Classification.TIMING_ERROR),
                mean_corrected_rt_ms=None if not hit_rts else sum(hit_rts) / len(hit_rts),
            )
        )
    return out
