"""Retry loop over the ordered fetch strategies.

One outer attempt walks primary, fallback and minimal in order with a single
browser session held for the attempt. Failed attempts are retried according
to the error classifier until the retry budget or the deadline runs out.
"""

import logging
import time
from contextlib import ExitStack
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

from data.models import ExtractionMethod
from ingestion.errors import (
    ErrorKind,
    ExtractionError,
    get_retry_delay,
    should_retry,
)
from ingestion.fetch_strategies import FetchOutcome, FetchStrategy
from utils.deadline import Deadline

logger = logging.getLogger(__name__)


def validate_url(url: str) -> str:
    """Reject anything that is not an absolute http(s) URL before any network access."""
    parsed = urlparse((url or '').strip())
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ExtractionError(ErrorKind.INVALID_URL, f'Invalid URL: {url!r} (only http/https are supported)', url)
    return parsed.geturl()


def select_attempt_error(errors: Dict[ExtractionMethod, ExtractionError]) -> ExtractionError:
    """Pick the error to report for a failed attempt.

    A browser failure that is not a plain network error says more about the
    site than the minimal fetch's error, so it wins.
    """
    for method in (ExtractionMethod.PRIMARY, ExtractionMethod.FALLBACK):
        error = errors.get(method)
        if error is not None and error.kind != ErrorKind.NETWORK_ERROR:
            return error
    for method in (ExtractionMethod.MINIMAL, ExtractionMethod.FALLBACK, ExtractionMethod.PRIMARY):
        if method in errors:
            return errors[method]
    return ExtractionError(ErrorKind.UNKNOWN_ERROR, 'No fetch strategy produced content')


class FetchExecutor:
    """Fetch a page with the retry/fallback chain.

    Args:
        strategies: Ordered strategies tried within each attempt
        browser_pool: Pool providing one session per attempt (optional)
        max_retries: Outer attempts
        base_delay: Base for the classifier's retry delay, in seconds
    """

    def __init__(self, strategies: List[FetchStrategy], browser_pool=None, max_retries: int = 3,
                 base_delay: float = 2.0, sleep: Callable[[float], None] = time.sleep):
        self.strategies = strategies
        self.browser_pool = browser_pool
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self._sleep = sleep

    def fetch(self, url: str, deadline: Optional[Deadline] = None) -> FetchOutcome:
        """Return the first successful outcome or raise the classified error."""
        url = validate_url(url)
        deadline = deadline or Deadline.never()
        last_error: Optional[ExtractionError] = None

        for attempt in range(1, self.max_retries + 1):
            if deadline.expired:
                last_error = ExtractionError(ErrorKind.TIMEOUT_ERROR, 'Audit deadline exceeded before fetch completed', url)
                break
            logger.info('Fetching %s (attempt %d/%d)', url, attempt, self.max_retries)
            outcome, error = self._run_attempt(url, deadline)
            if outcome is not None:
                logger.info('Fetched %s via %s method', url, outcome.method.value)
                return outcome

            last_error = error
            if not should_retry(error.kind, attempt, self.max_retries):
                logger.warning('Not retrying %s after %s on attempt %d', url, error.kind.value, attempt)
                break
            delay = get_retry_delay(error.kind, attempt, self.base_delay)
            logger.info('Retrying %s in %.1fs after %s', url, delay, error.kind.value)
            if not deadline.sleep(delay, self._sleep):
                last_error = ExtractionError(ErrorKind.TIMEOUT_ERROR, 'Audit deadline exceeded while waiting to retry', url)
                break

        raise last_error

    def _run_attempt(self, url: str, deadline: Deadline):
        errors: Dict[ExtractionMethod, ExtractionError] = {}
        with ExitStack() as stack:
            session = self._acquire_session(stack, url, deadline)
            for strategy in self.strategies:
                if strategy.needs_browser and session is None:
                    logger.debug('Skipping %s method for %s: no browser session', strategy.method.value, url)
                    continue
                outcome = strategy.fetch(url, session=session, deadline=deadline)
                if outcome.ok:
                    return outcome, None
                errors[strategy.method] = outcome.error
                if outcome.error.kind == ErrorKind.TIMEOUT_ERROR and deadline.expired:
                    break
        return None, select_attempt_error(errors)

    def _acquire_session(self, stack: ExitStack, url: str, deadline: Deadline):
        if self.browser_pool is None or not any(s.needs_browser for s in self.strategies):
            return None
        if not self.browser_pool.available:
            return None
        try:
            return stack.enter_context(self.browser_pool.session(timeout=deadline.remaining()))
        except Exception as e:
            logger.warning('Could not acquire browser session for %s: %s', url, e)
            return None
