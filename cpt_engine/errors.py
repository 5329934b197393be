"""Exception types raised by the CPT engine.

User-timing deviations (too-early calibration presses, timing errors, silent
correct rejections) are ordinary states and never raise.
"""

from __future__ import annotations


class CptError(Exception):
    """Base class for engine errors."""


class InvalidStateError(CptError, RuntimeError):
    """The host called an operation the engine's current state does not allow.

    Raised when input reaches the scheduler outside RUNNING, when a trial is
    classified twice, when a result is requested before completion, or when a
    test is started before calibration is ready.
    """

    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"{operation} is not allowed in state {state!r}")
