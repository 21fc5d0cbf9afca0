"""
Tests for the token bucket rate limiter.
"""

import threading
import time

import pytest

from infrastructure.rate_limiting import QuotaExceeded, TokenBucket


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def wait_until(predicate, timeout: float = 5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.005)


class TestQuotaExceeded:
    """Test QuotaExceeded error."""

    def test_carries_wait_seconds(self):
        """Test that the wait time is kept on the error."""
        error = QuotaExceeded(12.5, remaining=3)
        assert error.wait_seconds == 12.5
        assert error.remaining == 3
        assert "12.5" in str(error)


class TestTokenBucket:
    """Test TokenBucket behaviour."""

    def test_initial_tokens_capped(self):
        """Test that initial tokens never exceed capacity."""
        bucket = TokenBucket(capacity=5, refill_rate=0, initial_tokens=50)
        assert bucket.tokens_available == 5

    def test_invalid_arguments(self):
        """Test constructor validation."""
        with pytest.raises(ValueError):
            TokenBucket(capacity=0, refill_rate=1)
        with pytest.raises(ValueError):
            TokenBucket(capacity=1, refill_rate=-1)

    def test_continuous_refill(self):
        """Test that tokens accrue with elapsed time and stop at capacity."""
        clock = FakeClock()
        bucket = TokenBucket(capacity=10, refill_rate=2, initial_tokens=0, clock=clock)

        clock.now = 1.5
        assert bucket.tokens_available == pytest.approx(3)

        clock.now = 100
        assert bucket.tokens_available == 10

    def test_take_deducts_tokens(self):
        """Test that granted tokens are deducted."""
        clock = FakeClock()
        bucket = TokenBucket(capacity=10, refill_rate=1, initial_tokens=4, clock=clock)

        bucket.wait_for_tokens(3)

        assert bucket.tokens_available == pytest.approx(1)
        assert bucket.pending == 0

    def test_concurrent_callers_drain_exactly(self):
        """Test N callers against N tokens with no refill all complete."""
        count = 20
        bucket = TokenBucket(capacity=count, refill_rate=0, initial_tokens=count)
        observed = []

        def take():
            bucket.wait_for_tokens(1)
            observed.append(bucket.tokens_available)

        threads = [threading.Thread(target=take) for _ in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert not any(thread.is_alive() for thread in threads)
        assert bucket.tokens_available == 0
        assert all(0 <= tokens <= count for tokens in observed)

    def test_fifo_fairness(self):
        """Test that waiters are granted tokens in request order."""
        bucket = TokenBucket(capacity=1, refill_rate=20, initial_tokens=0)
        order = []

        def take(label):
            bucket.wait_for_tokens(1)
            order.append(label)

        threads = []
        for i, label in enumerate(["A", "B", "C"]):
            thread = threading.Thread(target=take, args=(label,))
            thread.start()
            threads.append(thread)
            wait_until(lambda: bucket.pending >= i + 1 or len(order) > i)

        for thread in threads:
            thread.join(timeout=5)

        assert order == ["A", "B", "C"]

    def test_blocks_until_refill(self):
        """Test that a caller waits for the bucket to refill."""
        bucket = TokenBucket(capacity=1, refill_rate=10, initial_tokens=0)

        start = time.monotonic()
        bucket.wait_for_tokens(1)

        assert time.monotonic() - start >= 0.05

    def test_wait_for_shorter_queue(self):
        """Test that queue waiters wake once pending callers are served."""
        bucket = TokenBucket(capacity=5, refill_rate=0, initial_tokens=0)
        threads = [
            threading.Thread(target=bucket.wait_for_tokens, args=(1,))
            for _ in range(3)
        ]
        for thread in threads:
            thread.start()
        wait_until(lambda: bucket.pending == 3)

        drained = threading.Event()

        def drain():
            bucket.wait_for_shorter_queue(1)
            drained.set()

        waiter = threading.Thread(target=drain)
        waiter.start()
        assert not drained.wait(0.05)

        # Refill directly so the queued callers can be served
        with bucket._condition:
            bucket._tokens = 5
            bucket._condition.notify_all()

        assert drained.wait(5)
        for thread in threads + [waiter]:
            thread.join(timeout=5)
        assert bucket.pending == 0

    def test_wait_for_shorter_queue_returns_immediately(self):
        """Test no waiting when the queue is already short enough."""
        bucket = TokenBucket(capacity=1, refill_rate=0, initial_tokens=0)
        bucket.wait_for_shorter_queue(0)
