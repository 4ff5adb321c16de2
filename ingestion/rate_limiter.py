"""Per-host request spacing for audit fetches and external lookups.

Requests to one host are spaced by a minimum interval while requests to
different hosts proceed in parallel. API hosts can carry their own interval.
"""
import logging
import threading
import time
from typing import Dict, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class PerDomainRateLimiter:
    """Thread-safe per-host rate limiter.

    Usage:
        limiter = PerDomainRateLimiter(default_interval=0.5,
                                       overrides={'api.github.com': 1.0})
        limiter.wait_for_domain('https://example.com/team')
        limiter.wait_for_domain('https://api.github.com/users/octocat')
    """

    def __init__(self, default_interval: float = 0.5,
                 overrides: Optional[Dict[str, float]] = None,
                 clock=time.monotonic, sleeper=time.sleep):
        self._default_interval = default_interval
        self._overrides = {host.lower(): interval for host, interval in (overrides or {}).items()}
        self._next_slot: Dict[str, float] = {}
        self._host_locks: Dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()
        self._clock = clock
        self._sleep = sleeper

    def interval_for(self, host: str) -> float:
        return self._overrides.get(host.lower(), self._default_interval)

    def wait_for_domain(self, url: str, max_wait: Optional[float] = None) -> bool:
        """Block until this URL's host may be requested again.

        Args:
            url: URL about to be requested
            max_wait: Upper bound on the wait (e.g. the audit's remaining time)

        Returns:
            False when the required wait exceeds ``max_wait``; no slot is
            reserved in that case.
        """
        host = urlparse(url).netloc.lower()
        if not host:
            return True
        interval = self.interval_for(host)
        if interval <= 0:
            return True

        with self._locks_lock:
            host_lock = self._host_locks.setdefault(host, threading.Lock())

        with host_lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(host, 0.0))
            wait = slot - now
            if max_wait is not None and wait > max_wait:
                logger.debug('Rate limit wait %.2fs for %s exceeds budget %.2fs', wait, host, max_wait)
                return False
            # Reserve before sleeping so concurrent callers queue behind us.
            self._next_slot[host] = slot + interval

        if wait > 0:
            self._sleep(wait)
        return True

    def reset(self) -> None:
        with self._locks_lock:
            self._next_slot.clear()
            self._host_locks.clear()
