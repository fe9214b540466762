"""Cooperative fixed-delay timers.

Replaces setTimeout-style callbacks in a single-threaded loop. The owner
calls run_due() between host pumps; nothing here spawns threads, so the
callbacks run on the same thread as every other handler.
"""

import heapq
import itertools
import logging
import time
from typing import Callable, List, Optional, Tuple


class Timer:
    """Handle for a scheduled callback."""
    
    __slots__ = ("deadline", "callback", "cancelled")
    
    def __init__(self, deadline: float, callback: Callable[[], object]):
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False
    
    def cancel(self) -> None:
        self.cancelled = True


class TimerQueue:
    """Deadline-ordered queue of one-shot callbacks.
    
    Usage:
        timers = TimerQueue()
        timers.call_later(0.5, recheck)
        ...
        timers.run_due()   # from the pump loop
    """
    
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._heap: List[Tuple[float, int, Timer]] = []
        self._counter = itertools.count()
    
    def call_later(self, delay: float, callback: Callable[[], object]) -> Timer:
        """Schedule callback to run once, delay seconds from now."""
        timer = Timer(self._clock() + max(0.0, delay), callback)
        heapq.heappush(self._heap, (timer.deadline, next(self._counter), timer))
        return timer
    
    def run_due(self) -> int:
        """Run every expired callback in deadline order. Returns how many ran.
        
        Callbacks scheduled while running are picked up in the same call
        if they are already due.
        """
        ran = 0
        while self._heap and self._heap[0][0] <= self._clock():
            _, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            try:
                timer.callback()
            except Exception as e:
                logging.error(f"Timer callback {getattr(timer.callback, '__name__', timer.callback)!r} failed: {e}")
            ran += 1
        return ran
    
    def next_delay(self) -> Optional[float]:
        """Seconds until the next live timer, or None if the queue is empty."""
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
        if not self._heap:
            return None
        return max(0.0, self._heap[0][0] - self._clock())
    
    def __len__(self) -> int:
        return sum(1 for _, _, t in self._heap if not t.cancelled)
