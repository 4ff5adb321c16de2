"""Monotonic deadline shared by every stage of one audit."""

import time
from typing import Optional


class DeadlineExceeded(TimeoutError):
    """Raised when an audit stage cannot start or finish before its deadline."""


class Deadline:
    """A point in time after which an audit stops doing new work.

    ``Deadline(None)`` never expires, so callers can pass one around
    unconditionally.
    """

    def __init__(self, seconds: Optional[float] = None, clock=time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def never(cls) -> 'Deadline':
        return cls(None)

    @property
    def is_bounded(self) -> bool:
        return self._expires_at is not None

    def remaining(self) -> Optional[float]:
        """Seconds left, floored at 0, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, stage: str = '') -> None:
        if self.expired:
            raise DeadlineExceeded(f'Deadline exceeded{f" during {stage}" if stage else ""}')

    def clamp(self, timeout: Optional[float]) -> Optional[float]:
        """Shrink ``timeout`` so it never runs past the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def sleep(self, seconds: float, sleeper=time.sleep) -> bool:
        """Sleep up to ``seconds``; returns False if the deadline cut it short."""
        allowed = self.clamp(seconds)
        if allowed and allowed > 0:
            sleeper(allowed)
        return allowed is None or allowed >= seconds
