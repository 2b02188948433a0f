from __future__ import annotations

import heapq
import itertools
import logging
import time
from collections.abc import Callable, Hashable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Single-threaded timer source: callbacks run on the caller's event loop."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class _LoopTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class LoopScheduler:
    """Scheduler for plain polling loops (CLI, tests).

    Nothing runs on its own: the owning loop calls `run_pending()` between
    reads from the transport.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._queue: list[tuple[float, int, _LoopTimer]] = []
        self._counter = itertools.count()
        self._logger = logging.getLogger(self.__class__.__name__)

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _LoopTimer:
        timer = _LoopTimer(self._clock() + max(0.0, delay_s), callback)
        heapq.heappush(self._queue, (timer.due, next(self._counter), timer))
        return timer

    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled)

    def next_due(self) -> float | None:
        for due, _, timer in sorted(self._queue):
            if not timer.cancelled:
                return due
        return None

    def run_pending(self) -> int:
        """Run every callback that is due; returns how many ran."""

        ran = 0
        now = self._clock()
        while self._queue and self._queue[0][0] <= now:
            _, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            ran += 1
            try:
                timer.callback()
            except Exception:
                self._logger.exception("Scheduled callback failed")
        return ran


TaskKey = tuple[str, str]


class DeferredTasks:
    """Named one-shot tasks keyed by `(key, operation)`.

    Scheduling a task under a key that is already pending replaces it.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: dict[Hashable, TimerHandle] = {}

    def schedule(self, task_key: TaskKey, delay_s: float, callback: Callable[[], None]) -> None:
        self.cancel(task_key)

        def _run() -> None:
            self._handles.pop(task_key, None)
            callback()

        self._handles[task_key] = self._scheduler.call_later(delay_s, _run)

    def cancel(self, task_key: TaskKey) -> bool:
        handle = self._handles.pop(task_key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_operation(self, operation: str) -> int:
        """Cancel every pending task for `operation`, whatever its key."""

        keys = [k for k in self._handles if isinstance(k, tuple) and k[1] == operation]
        for k in keys:
            self.cancel(k)
        return len(keys)

    def is_pending(self, task_key: TaskKey) -> bool:
        return task_key in self._handles

    def cancel_all(self) -> None:
        for k in list(self._handles):
            self.cancel(k)
