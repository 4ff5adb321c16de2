"""Ordered fetch strategies.

Each strategy performs one retrieval attempt and returns a uniform
:class:`FetchOutcome` carrying either markup or a classified error, so the
executor can walk the list without nested exception handling.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from data.models import ExtractionMethod
from ingestion.errors import ErrorKind, ExtractionError, classify_error
from ingestion.page_fetcher import (
    USER_AGENTS,
    HttpClient,
    get_realistic_headers,
    random_user_agent,
    render_page,
)

logger = logging.getLogger(__name__)

MIN_HTML_CHARS = 100


@dataclass
class FetchOutcome:
    method: ExtractionMethod
    html: str = ""
    error: Optional[ExtractionError] = None
    status: Optional[int] = None
    challenge_detected: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class FetchStrategy:
    """Base class; subclasses implement :meth:`_fetch`."""

    method: ExtractionMethod = None
    needs_browser = False

    def fetch(self, url: str, session=None, deadline=None) -> FetchOutcome:
        try:
            if deadline is not None:
                deadline.check(self.method.value)
            return self._fetch(url, session, deadline)
        except Exception as e:
            error = classify_error(e, url)
            logger.warning('%s fetch failed for %s: [%s] %s', self.method.value, url, error.kind.value, error.message)
            return FetchOutcome(method=self.method, error=error)

    def _fetch(self, url, session, deadline) -> FetchOutcome:
        raise NotImplementedError


class _BrowserStrategy(FetchStrategy):
    needs_browser = True
    wait_until = 'networkidle'
    wait_for_text = False

    def __init__(self, timeout_ms: int, sleep: Callable[[float], None] = time.sleep):
        self.timeout_ms = timeout_ms
        self._sleep = sleep

    def user_agent(self) -> str:
        return USER_AGENTS[0]

    def _fetch(self, url, session, deadline) -> FetchOutcome:
        if session is None:
            raise ExtractionError(ErrorKind.BROWSER_ERROR, 'No browser session available', url)
        timeout_ms = self.timeout_ms
        if deadline is not None and deadline.is_bounded:
            timeout_ms = max(1, int(min(self.timeout_ms / 1000, deadline.remaining()) * 1000))
        user_agent = self.user_agent()

        def task(browser):
            return render_page(browser, url, user_agent, self.wait_until, timeout_ms,
                               wait_for_text=self.wait_for_text, sleep=self._sleep)

        # Headroom for the content wait, settle time and challenge handling
        budget = timeout_ms / 1000 + 25
        if deadline is not None:
            budget = deadline.clamp(budget)
        rendered = session.run(task, timeout=budget)
        if len(rendered.html or '') < MIN_HTML_CHARS:
            raise ExtractionError(ErrorKind.CONTENT_TOO_SMALL,
                                  f'Rendered content too small ({len(rendered.html or "")} chars)', url)
        return FetchOutcome(method=self.method, html=rendered.html, status=rendered.status,
                            challenge_detected=rendered.challenge_detected)


class PrimaryStrategy(_BrowserStrategy):
    """Full render: wait for network idle, then for visible body text."""

    method = ExtractionMethod.PRIMARY
    wait_until = 'networkidle'
    wait_for_text = True


class FallbackStrategy(_BrowserStrategy):
    """Lighter wait condition with a rotated client identity."""

    method = ExtractionMethod.FALLBACK
    wait_until = 'domcontentloaded'

    def __init__(self, timeout_ms: int = 15000, sleep: Callable[[float], None] = time.sleep,
                 rng: random.Random = None):
        super().__init__(timeout_ms, sleep)
        self._rng = rng or random.Random()

    def user_agent(self) -> str:
        return random_user_agent(self._rng)


class MinimalStrategy(FetchStrategy):
    """Plain HTTP GET, no rendering."""

    method = ExtractionMethod.MINIMAL

    def __init__(self, http: HttpClient, timeout_s: float = 15.0, rng: random.Random = None):
        self.http = http
        self.timeout_s = timeout_s
        self._rng = rng or random.Random()

    def _fetch(self, url, session, deadline) -> FetchOutcome:
        timeout = deadline.clamp(self.timeout_s) if deadline is not None else self.timeout_s
        try:
            response = self.http.get(url, timeout=timeout,
                                     headers=get_realistic_headers(random_user_agent(self._rng)),
                                     max_wait=deadline.remaining() if deadline is not None else None)
        except requests.exceptions.Timeout as e:
            raise ExtractionError(ErrorKind.TIMEOUT_ERROR, f'Request timeout: {e}', url, original=e)

        status = response.status_code
        if status == 403:
            raise ExtractionError(ErrorKind.ACCESS_DENIED, 'HTTP 403: Access denied', url)
        if status == 429:
            raise ExtractionError(ErrorKind.RATE_LIMITED, 'HTTP 429: Rate limited', url)
        if not 200 <= status < 300:
            raise ExtractionError(ErrorKind.NETWORK_ERROR, f'HTTP {status}: {response.reason or ""}'.strip(), url)

        html = response.text or ''
        if len(html) < MIN_HTML_CHARS:
            raise ExtractionError(ErrorKind.CONTENT_TOO_SMALL, f'Content too small ({len(html)} chars)', url)
        return FetchOutcome(method=self.method, html=html, status=status)


def default_strategies(http: HttpClient, settings: dict, sleep: Callable[[float], None] = time.sleep):
    """The strict fallback order: primary, fallback, minimal."""
    return [
        PrimaryStrategy(settings.get('fetch_timeout_ms', 30000), sleep=sleep),
        FallbackStrategy(settings.get('fallback_timeout_ms', 15000), sleep=sleep),
        MinimalStrategy(http, settings.get('minimal_timeout_s', 15.0)),
    ]
