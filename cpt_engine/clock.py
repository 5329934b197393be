from __future__ import annotations

import heapq
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now_ms(self) -> float:
        """Return monotonic milliseconds since an arbitrary epoch."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0


@dataclass(frozen=True, slots=True)
class TimerToken:
    timer_id: int
    due_ms: float


class TimerScheduler(Protocol):
    def after(self, duration_ms: float, callback: Callable[[], None]) -> TimerToken: ...

    def cancel(self, token: TimerToken) -> None: ...


class TimerQueue:
    """Single-threaded one-shot timers, fired by `pump()` from the host loop.

    Timers due at the same instant fire in the order they were armed. A callback
    may arm further timers; those fire in the same pump if already due.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self._heap: list[tuple[float, int, Callable[[], None]]] = []
        self._live: set[int] = set()

    def after(self, duration_ms: float, callback: Callable[[], None]) -> TimerToken:
        if duration_ms < 0:
            raise ValueError("duration_ms must be >= 0")
        timer_id = next(self._ids)
        due = self._clock.now_ms() + float(duration_ms)
        heapq.heappush(self._heap, (due, timer_id, callback))
        self._live.add(timer_id)
        return TimerToken(timer_id=timer_id, due_ms=due)

    def cancel(self, token: TimerToken) -> None:
        # Lazy deletion: the heap entry is skipped when popped.
        self._live.discard(token.timer_id)

    def pending(self) -> int:
        return len(self._live)

    def next_due_ms(self) -> float | None:
        self._drop_cancelled_head()
        if not self._heap:
            return None
        return self._heap[0][0]

    def pump(self) -> int:
        """Fire every live timer due at or before now. Returns the number fired."""

        fired = 0
        while True:
            self._drop_cancelled_head()
            if not self._heap or self._heap[0][0] > self._clock.now_ms():
                return fired
            _, timer_id, callback = heapq.heappop(self._heap)
            self._live.discard(timer_id)
            callback()
            fired += 1

    def clear(self) -> None:
        self._heap.clear()
        self._live.clear()

    def _drop_cancelled_head(self) -> None:
        while self._heap and self._heap[0][1] not in self._live:
            heapq.heappop(self._heap)
