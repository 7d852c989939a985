from __future__ import annotations

import threading

from job_harvest.errors import CycleCancelled


class StopSignal:
    """Cancellable delay shared by every pacing point of a cycle.

    ``sleep`` returns after ``seconds`` or raises ``CycleCancelled`` as soon
    as ``set`` is called from another thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def sleep(self, seconds: float) -> None:
        if self._event.is_set():
            raise CycleCancelled("stop requested")
        if seconds <= 0:
            return
        if self._event.wait(seconds):
            raise CycleCancelled(f"stop requested during {seconds:g}s delay")

    def wait(self, seconds: float) -> bool:
        """Plain wait used by the scheduler loop; True when stop was requested."""
        return self._event.wait(seconds)


class ReasoningPacer:
    """Spaces reasoning-service calls within one batch.

    The first call of a batch goes out immediately; every later call, across
    messages and across stages of the same message, waits ``delay_seconds``
    on the stop signal first.
    """

    def __init__(self, delay_seconds: float, stop: StopSignal) -> None:
        self.delay_seconds = delay_seconds
        self.stop = stop
        self.calls = 0

    def wait_turn(self) -> None:
        if self.calls > 0:
            self.stop.sleep(self.delay_seconds)
        elif self.stop.is_set():
            raise CycleCancelled("stop requested")
        self.calls += 1
