"""
Sliding-window quota used to cap OAuth refreshes
"""
import time
from collections import deque
from typing import Callable, Optional
import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Allows at most `max_events` within `window_seconds`.
    Uses sliding window algorithm; never sleeps, callers decide what to do
    when the window is full.
    """

    def __init__(self, max_events: int, window_seconds: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.max_events = max_events
        self.window_seconds = window_seconds
        self.event_times: deque = deque()
        self.last_event_time: Optional[float] = None
        self._clock = clock

    def _cleanup_old_events(self, current_time: float) -> None:
        while self.event_times and current_time - self.event_times[0] > self.window_seconds:
            self.event_times.popleft()

    def try_acquire(self) -> bool:
        """Record an event if the window has room. Returns False when full."""
        current_time = self._clock()
        self._cleanup_old_events(current_time)

        if len(self.event_times) >= self.max_events:
            logger.warning(
                "Quota reached: %d events in the last %.0f seconds",
                len(self.event_times),
                self.window_seconds,
            )
            return False

        self.event_times.append(current_time)
        self.last_event_time = current_time
        return True

    def retry_after(self) -> int:
        """Seconds until the oldest event leaves the window."""
        if not self.event_times:
            return 0
        remaining = self.window_seconds - (self._clock() - self.event_times[0])
        return max(0, int(remaining) + 1)

    def get_stats(self) -> dict:
        self._cleanup_old_events(self._clock())
        return {
            'events_in_window': len(self.event_times),
            'limit': self.max_events,
            'window_seconds': self.window_seconds,
        }
