from __future__ import annotations

from .cpt_core import (
    Classification,
    CptConfig,
    Phase,
    ResponseRecord,
    TrialContext,
    condition_for_block,
)
from .errors import InvalidStateError


class ResponseClassifier:
    """Turns one press (or a closed window) into a ResponseRecord.

    Window boundary: a press with reaction time <= stimulus + response window
    (1500 ms by default) is a response; anything later is a timing error.
    """

    def __init__(self, *, config: CptConfig, calibration_offset_ms: float) -> None:
        self._config = config
        self._offset_ms = float(calibration_offset_ms)

    @property
    def calibration_offset_ms(self) -> float:
        return self._offset_ms

    def classify(self, *, phase: Phase, trial: TrialContext, now_ms: float) -> ResponseRecord:
        if phase is not Phase.RUNNING:
            raise InvalidStateError("classify", str(phase))
        if trial.logged:
            raise InvalidStateError(
                "classify", f"trial {trial.block_number}.{trial.trial_number} already classified"
            )

        rt = float(now_ms) - trial.stimulus_onset_ms
        if rt <= self._config.valid_response_ms:
            kind = Classification.HIT if trial.is_target else Classification.COMMISSION
        else:
            kind = Classification.TIMING_ERROR

        # Negative corrected RTs mean anticipation and are kept as-is.
        return self._record(trial, kind=kind, response_ms=float(now_ms), corrected_rt_ms=rt - self._offset_ms)

    def omission(self, trial: TrialContext) -> ResponseRecord:
        if trial.logged:
            raise InvalidStateError(
                "omission", f"trial {trial.block_number}.{trial.trial_number} already classified"
            )
        if not trial.is_target:
            raise ValueError("only target trials produce a miss")
        return self._record(trial, kind=Classification.MISS, response_ms=None, corrected_rt_ms=None)

    def _record(
        self,
        trial: TrialContext,
        *,
        kind: Classification,
        response_ms: float | None,
        corrected_rt_ms: float | None,
    ) -> ResponseRecord:
        condition = condition_for_block(trial.block_number)
        return ResponseRecord(
            block_number=trial.block_number,
            trial_number=trial.trial_number,
            stimulus_type=trial.stimulus_type,
            stimulus_onset_ms=trial.stimulus_onset_ms,
            response_ms=response_ms,
            classification=kind,
            corrected_rt_ms=corrected_rt_ms,
            has_visual_distractor=condition.visual_distractor,
            has_auditory_distractor=condition.auditory_distractor,
        )
