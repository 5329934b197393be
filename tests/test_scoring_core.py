from __future__ import annotations

import pytest

from cpt_engine.cpt_core import Classification, ResponseRecord, SeededRng, StimulusType
from cpt_engine.scoring import SessionResult, block_breakdown, score_session


def _rec(
    kind: Classification,
    *,
    target: bool,
    corrected: float | None = None,
    block: int = 1,
    trial: int = 0,
) -> ResponseRecord:
    responded = kind is not Classification.MISS
    onset = 1000.0
    return ResponseRecord(
        block_number=block,
        trial_number=trial,
        stimulus_type=StimulusType.TARGET if target else StimulusType.NON_TARGET,
        stimulus_onset_ms=onset,
        response_ms=(onset + 300.0) if responded else None,
        classification=kind,
        corrected_rt_ms=(corrected if corrected is not None else 100.0) if responded else None,
        has_visual_distractor=False,
        has_auditory_distractor=False,
    )


def test_empty_log_scores_all_zero() -> None:
    result = score_session([], 0.0)
    assert result == SessionResult(
        attentiveness=0.0,
        timeliness=0.0,
        impulsivity=0.0,
        hyperactivity=0.0,
        raw_log=(),
        calibration_offset_ms=0.0,
    )


def test_attentiveness_fifty_of_fifty_six() -> None:
    log = [_rec(Classification.HIT, target=True) for _ in range(50)]
    log += [_rec(Classification.MISS, target=True) for _ in range(6)]
    result = score_session(log, 200.0)
    assert result.attentiveness == pytest.approx(100.0 * 50 / 56)
    assert round(result.attentiveness, 1) == 89.3
    assert result.calibration_offset_ms == 200.0


def test_timeliness_is_mean_corrected_rt_over_hits_only() -> None:
    log = [
        _rec(Classification.HIT, target=True, corrected=100.0),
        _rec(Classification.HIT, target=True, corrected=-20.0),
        _rec(Classification.COMMISSION, target=False, corrected=5.0),
        _rec(Classification.TIMING_ERROR, target=True, corrected=2000.0),
        _rec(Classification.MISS, target=True),
    ]
    result = score_session(log, 200.0)
    assert result.timeliness == pytest.approx(40.0)


def test_impulsivity_counts_commissions_over_logged_non_targets() -> None:
    log = [
        _rec(Classification.COMMISSION, target=False),
        _rec(Classification.COMMISSION, target=False),
        _rec(Classification.COMMISSION, target=False),
        _rec(Classification.TIMING_ERROR, target=False),
        _rec(Classification.HIT, target=True),
    ]
    result = score_session(log, 0.0)
    assert result.impulsivity == pytest.approx(75.0)
    assert result.hyperactivity == pytest.approx(20.0)


def test_target_timing_errors_stay_out_of_attentiveness() -> None:
    log = [
        _rec(Classification.HIT, target=True),
        _rec(Classification.MISS, target=True),
        _rec(Classification.TIMING_ERROR, target=True),
    ]
    result = score_session(log, 0.0)
    assert result.attentiveness == pytest.approx(50.0)
    assert result.hyperactivity == pytest.approx(100.0 / 3.0)
    # No non-target records at all.
    assert result.impulsivity == 0.0


def test_each_metric_is_zero_when_its_denominator_is_empty() -> None:
    only_commissions = score_session([_rec(Classification.COMMISSION, target=False)], 0.0)
    assert only_commissions.attentiveness == 0.0
    assert only_commissions.timeliness == 0.0
    assert only_commissions.impulsivity == 100.0
    assert only_commissions.hyperactivity == 0.0

    only_misses = score_session([_rec(Classification.MISS, target=True)], 0.0)
    assert only_misses.attentiveness == 0.0
    assert only_misses.timeliness == 0.0
    assert only_misses.impulsivity == 0.0


def test_percent_metrics_stay_in_range_for_arbitrary_logs() -> None:
    rng = SeededRng(2024)
    kinds = [
        (Classification.HIT, True),
        (Classification.MISS, True),
        (Classification.COMMISSION, False),
        (Classification.TIMING_ERROR, True),
        (Classification.TIMING_ERROR, False),
    ]
    for _ in range(200):
        n = rng.randint(0, 40)
        log = []
        for _ in range(n):
            kind, target = rng.choice(kinds)
            log.append(_rec(kind, target=target, corrected=rng.uniform(-200.0, 900.0)))
        result = score_session(log, 0.0)
        for value in (result.attentiveness, result.impulsivity, result.hyperactivity):
            assert 0.0 <= value <= 100.0

        hits = sum(1 for r in log if r.classification is Classification.HIT)
        misses = sum(1 for r in log if r.classification is Classification.MISS)
        commissions = sum(1 for r in log if r.classification is Classification.COMMISSION)
        nt_timing = sum(
            1
            for r in log
            if r.classification is Classification.TIMING_ERROR and r.stimulus_type is StimulusType.NON_TARGET
        )
        non_targets = sum(1 for r in log if r.stimulus_type is StimulusType.NON_TARGET)
        assert commissions + nt_timing <= non_targets
        if hits + misses:
            assert result.attentiveness == pytest.approx(100.0 * hits / (hits + misses))


def test_scoring_is_pure() -> None:
    log = [
        _rec(Classification.HIT, target=True, corrected=120.0),
        _rec(Classification.COMMISSION, target=False),
        _rec(Classification.MISS, target=True),
    ]
    first = score_session(log, 150.0)
    second = score_session(log, 150.0)
    assert first == second
    assert len(log) == 3


def test_block_breakdown_counts_per_block() -> None:
    log = [
        _rec(Classification.HIT, target=True, corrected=100.0, block=1),
        _rec(Classification.HIT, target=True, corrected=200.0, block=1, trial=1),
        _rec(Classification.MISS, target=True, block=4),
        _rec(Classification.COMMISSION, target=False, block=4, trial=2),
        _rec(Classification.TIMING_ERROR, target=False, block=8),
    ]
    blocks = block_breakdown(log)
    assert [b.block_number for b in blocks] == list(range(1, 9))

    b1, b4, b8 = blocks[0], blocks[3], blocks[7]
    assert (b1.hits, b1.misses, b1.mean_corrected_rt_ms) == (2, 0, pytest.approx(150.0))
    assert (b4.misses, b4.commissions, b4.mean_corrected_rt_ms) == (1, 1, None)
    assert b4.condition.label == "combo"
    assert b8.timing_errors == 1
    assert blocks[1].hits == 0
