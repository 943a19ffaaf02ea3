from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol


TimerCallback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Timer capability used by the round ticker and the demo script.

    Contract:
      - `schedule(fn, delay_ms)` runs `fn` once after the delay and returns a handle.
      - `cancel(handle)` guarantees `fn` will not run afterwards. Cancelling twice is fine.
      - `now_ms()` is the clock the placement timer reads.
    """

    def schedule(self, fn: TimerCallback, delay_ms: float) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle) -> None: ...

    def now_ms(self) -> float: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop (`loop.call_later`)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, fn: TimerCallback, delay_ms: float) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(0.0, delay_ms) / 1000, fn)

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()

    def now_ms(self) -> float:
        return time.monotonic() * 1000


@dataclass(slots=True)
class ManualTimer:
    due_ms: float
    seq: int
    fn: TimerCallback = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: ManualTimer) -> bool:
        return (self.due_ms, self.seq) < (other.due_ms, other.seq)


class ManualScheduler:
    """Deterministic fake clock; nothing runs until `advance()` is called."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = start_ms
        self._queue: list[ManualTimer] = []
        self._seq = itertools.count()

    def schedule(self, fn: TimerCallback, delay_ms: float) -> ManualTimer:
        timer = ManualTimer(due_ms=self._now + max(0.0, delay_ms), seq=next(self._seq), fn=fn)
        heapq.heappush(self._queue, timer)
        return timer

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()

    def now_ms(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for t in self._queue if not t.cancelled)

    def advance(self, ms: float) -> None:
        """Move the clock forward, firing due timers in order (including ones they schedule)."""

        target = self._now + ms
        while self._queue and self._queue[0].due_ms <= target:
            timer = heapq.heappop(self._queue)
            self._now = timer.due_ms
            if not timer.cancelled:
                timer.fn()
        self._now = target

    def run_until_idle(self, *, max_ms: float = 600_000) -> None:
        """Fire timers until none remain pending (bounded, so repeating tickers stop)."""

        limit = self._now + max_ms
        while self._queue and self._now < limit:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, timer.due_ms)
            timer.fn()
