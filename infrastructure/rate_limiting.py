"""
Rate limiting primitives: the GitHub quota error and a token bucket shared
by every concurrent call against one upstream source.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class QuotaExceeded(Exception):
    """Raised when the GitHub API quota drops below the configured minimum."""
    def __init__(self, wait_seconds: float, remaining: Optional[int] = None):
        self.wait_seconds = wait_seconds
        self.remaining = remaining
        super().__init__(
            f"Rate limit reached. Waiting {wait_seconds:.1f} seconds."
        )


class TokenBucket:
    """
    Token bucket with continuous-time refill.

    Tokens are recomputed from the elapsed time on every access and capped
    at capacity. Callers of wait_for_tokens are served in the order they
    arrived; only the caller at the head of the queue may take tokens.
    """

    def __init__(
        self,
        capacity: float,
        refill_rate: float,
        initial_tokens: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            capacity: Maximum number of tokens the bucket holds
            refill_rate: Tokens added per second
            initial_tokens: Tokens available at construction (capped at capacity)
            clock: Monotonic time source in seconds
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if refill_rate < 0:
            raise ValueError("refill_rate cannot be negative")

        self.capacity = capacity
        self.refill_rate = refill_rate
        self._clock = clock
        self._tokens = min(max(initial_tokens, 0), capacity)
        self._last_refill = clock()
        self._waiters: deque = deque()
        self._condition = threading.Condition()

    def _refill(self):
        now = self._clock()
        elapsed = max(now - self._last_refill, 0)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def _time_until(self, count: float) -> Optional[float]:
        """Seconds until count tokens are available, None if never."""
        if self.refill_rate == 0:
            return None
        return max((count - self._tokens) / self.refill_rate, 0)

    @property
    def tokens_available(self) -> float:
        with self._condition:
            self._refill()
            return self._tokens

    @property
    def pending(self) -> int:
        """Number of callers currently blocked in wait_for_tokens."""
        with self._condition:
            return len(self._waiters)

    def wait_for_tokens(self, count: float = 1):
        """
        Block until count tokens are available, then take them.

        Requesting more than capacity blocks forever; callers must not do it.

        Args:
            count: Number of tokens to take
        """
        ticket = object()
        with self._condition:
            self._waiters.append(ticket)
            try:
                while True:
                    self._refill()
                    if self._waiters[0] is ticket:
                        if self._tokens >= count:
                            self._tokens -= count
                            return
                        self._condition.wait(self._time_until(count))
                    else:
                        self._condition.wait()
            finally:
                self._waiters.remove(ticket)
                self._condition.notify_all()

    def wait_for_shorter_queue(self, max_pending: int):
        """
        Block until at most max_pending callers are waiting for tokens.

        Args:
            max_pending: Queue length to wait for
        """
        with self._condition:
            if len(self._waiters) > max_pending:
                logger.info(
                    f"Waiting for rate limiter queue to drain "
                    f"({len(self._waiters)} pending, target {max_pending})"
                )
            while len(self._waiters) > max_pending:
                self._condition.wait()
