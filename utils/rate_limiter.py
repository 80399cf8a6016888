"""
Rate Limiter Module

Single Responsibility: Prevent Helix rate limit violations
- Track the bucket the server reports in Ratelimit-* headers
- Fall back to a local sliding window when no headers were seen yet
- Block callers until the bucket refills

Twitch Helix grants ~800 points per minute per client/user pair.
"""

import time
from threading import Lock
from collections import deque
from typing import Callable, Mapping, Optional

from .logger import setup_logger


logger = setup_logger(__name__)


class RateLimiter:
    """
    Header-aware rate limiter.

    Thread-safe: the session loop and the token validation thread may both
    call the API.
    """

    def __init__(
        self,
        max_calls: int = 800,
        period: int = 60,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize rate limiter.

        Args:
            max_calls: Maximum number of calls allowed per window
            period: Window length in seconds
            clock: Wall clock in epoch seconds
            sleep: Sleep function
        """
        self.max_calls = max_calls
        self.period = period
        self.calls = deque()
        self.lock = Lock()
        self._clock = clock
        self._sleep = sleep
        self._remaining: Optional[int] = None
        self._reset_at: Optional[float] = None

    def _clean_old_calls(self) -> None:
        """Remove calls outside the current time window."""
        cutoff = self._clock() - self.period
        while self.calls and self.calls[0] < cutoff:
            self.calls.popleft()

    def _wait_time(self) -> float:
        now = self._clock()
        if self._remaining is not None and self._reset_at is not None:
            if self._remaining <= 0 and self._reset_at > now:
                return self._reset_at - now
            return 0.0
        self._clean_old_calls()
        if len(self.calls) >= self.max_calls:
            return self.calls[0] + self.period - now
        return 0.0

    def wait_if_needed(self) -> None:
        """Block until a call can be made without exceeding the limit."""
        with self.lock:
            wait_time = self._wait_time()
            if wait_time > 0:
                logger.warning(f"⏳ Rate limit reached. Waiting {wait_time:.1f}s...")
                self._sleep(wait_time)
                self._remaining = None
                self._reset_at = None
                self._clean_old_calls()
            self.calls.append(self._clock())

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """
        Record the bucket state reported by the server.

        Args:
            headers: Response headers (Ratelimit-Remaining, Ratelimit-Reset)
        """
        remaining = headers.get('Ratelimit-Remaining')
        reset = headers.get('Ratelimit-Reset')
        if remaining is None or reset is None:
            return
        try:
            with self.lock:
                self._remaining = int(remaining)
                self._reset_at = float(reset)
        except ValueError:
            logger.debug(f"Ignoring malformed rate limit headers: {remaining!r}/{reset!r}")

    def is_exhausted(self) -> bool:
        with self.lock:
            return self._wait_time() > 0

    def get_current_usage(self) -> dict:
        """
        Get current rate limit usage.

        Returns:
            Dict with calls_made, calls_remaining, window_reset_in
        """
        with self.lock:
            self._clean_old_calls()
            now = self._clock()
            if self._remaining is not None and self._reset_at is not None:
                return {
                    'calls_made': len(self.calls),
                    'calls_remaining': self._remaining,
                    'window_reset_in': max(0.0, self._reset_at - now),
                    'source': 'server'
                }
            window_reset_in = (self.calls[0] + self.period - now) if self.calls else self.period
            return {
                'calls_made': len(self.calls),
                'calls_remaining': self.max_calls - len(self.calls),
                'window_reset_in': max(0, window_reset_in),
                'source': 'local'
            }
