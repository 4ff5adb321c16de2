"""Page fetching primitives.

Provides the plain-HTTP client (per-host ``requests`` sessions with realistic
headers and rate limiting), the in-browser render task used by the browser
strategies, and the loader the deep crawler uses for linked pages.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from ingestion.anti_bot import handle_anti_bot
from ingestion.rate_limiter import PerDomainRateLimiter

logger = logging.getLogger(__name__)

USER_AGENTS = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0',
)

# Stealth: mask the most common automation tells before any page script runs
STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
    window.chrome = { runtime: {} };
    Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
    Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""

THIN_PAGE_TEXT_CHARS = 500


def random_user_agent(rng: random.Random = None) -> str:
    return (rng or random).choice(USER_AGENTS)


def get_realistic_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    return {
        'User-Agent': user_agent or USER_AGENTS[0],
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
        'Accept-Encoding': 'gzip, deflate, br',
        'Upgrade-Insecure-Requests': '1',
        'Cache-Control': 'no-cache',
    }


class HttpClient:
    """Per-host ``requests.Session`` pool with rate limiting.

    Sessions give connection pooling and cookie handling per host; the client
    itself is owned by one audit manager rather than being module-global.
    """

    def __init__(self, rate_limiter: Optional[PerDomainRateLimiter] = None):
        self._sessions: Dict[str, requests.Session] = {}
        self._lock = threading.Lock()
        self.rate_limiter = rate_limiter or PerDomainRateLimiter(default_interval=0)

    def _session_for(self, url: str) -> requests.Session:
        host = urlparse(url).netloc.lower()
        with self._lock:
            session = self._sessions.get(host)
            if session is None:
                session = requests.Session()
                session.max_redirects = 10
                self._sessions[host] = session
            return session

    def get(self, url: str, timeout: float = 10, headers: Optional[Dict[str, str]] = None,
            max_wait: Optional[float] = None, **kwargs) -> requests.Response:
        if not self.rate_limiter.wait_for_domain(url, max_wait=max_wait):
            raise requests.exceptions.Timeout(f'Rate limit wait for {url} exceeds remaining time')
        request_headers = headers if headers is not None else get_realistic_headers()
        return self._session_for(url).get(url, headers=request_headers, timeout=timeout,
                                          allow_redirects=True, **kwargs)

    def close(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()


@dataclass
class RenderedPage:
    url: str
    html: str
    status: Optional[int]
    title: str = ""
    challenge_detected: bool = False


def render_page(browser, url: str, user_agent: str, wait_until: str, timeout_ms: int,
                wait_for_text: bool = False, settle_s: float = 2.0,
                handle_challenges: bool = True,
                sleep: Callable[[float], None] = time.sleep) -> RenderedPage:
    """Navigate a fresh context to ``url`` and return its rendered markup.

    Runs on the browser session thread. Status codes of 400 and above raise
    ``RuntimeError("HTTP <status> ...")`` so they classify like HTTP errors.
    """
    context = browser.new_context(
        user_agent=user_agent,
        viewport={'width': 1920, 'height': 1080},
        extra_http_headers={
            'Accept-Language': 'en-US,en;q=0.9',
            'Upgrade-Insecure-Requests': '1',
        },
    )
    page = None
    try:
        page = context.new_page()
        page.add_init_script(STEALTH_SCRIPT)
        response = page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        status = response.status if response is not None else None
        if status is not None and status >= 400:
            raise RuntimeError(f'HTTP {status} {_status_hint(status)} while loading {url}')

        if wait_for_text:
            try:
                page.wait_for_function('document.body && document.body.innerText.length > 100',
                                       timeout=10000)
            except Exception as e:
                logger.debug('Body text wait expired for %s: %s', url, e)
        if settle_s:
            sleep(settle_s)

        challenge = handle_anti_bot(page, sleep=sleep) if handle_challenges else False
        return RenderedPage(url=url, html=page.content(), status=status,
                            title=(page.title() or '').strip(), challenge_detected=challenge)
    finally:
        for closer in (getattr(page, 'close', None), context.close):
            if closer is None:
                continue
            try:
                closer()
            except Exception:
                pass


def _status_hint(status: int) -> str:
    if status == 403:
        return 'Forbidden (access denied)'
    if status == 429:
        return 'Too Many Requests (rate limit)'
    if status == 404:
        return 'Not Found'
    return ''


def visible_text_length(html: str) -> int:
    soup = BeautifulSoup(html or '', 'lxml')
    for tag in soup(['script', 'style', 'noscript']):
        tag.decompose()
    return len(soup.get_text(' ', strip=True))


@dataclass
class LoadedPage:
    url: str
    status: Optional[int]
    html: str


class LinkedPageLoader:
    """Loads secondary pages for the deep crawl.

    Plain HTTP first; when the response is thin (script-rendered sites) and a
    browser pool is available, the page is rendered in a pooled session.
    """

    def __init__(self, http: HttpClient, browser_pool=None, timeout_s: float = 10.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.http = http
        self.browser_pool = browser_pool
        self.timeout_s = timeout_s
        self._sleep = sleep

    def __call__(self, url: str, deadline=None) -> LoadedPage:
        timeout = deadline.clamp(self.timeout_s) if deadline is not None else self.timeout_s
        max_wait = deadline.remaining() if deadline is not None else None
        response = self.http.get(url, timeout=timeout, headers=get_realistic_headers(random_user_agent()),
                                 max_wait=max_wait)
        page = LoadedPage(url=url, status=response.status_code, html=response.text or '')
        if response.status_code >= 400:
            return page

        if visible_text_length(page.html) >= THIN_PAGE_TEXT_CHARS:
            return page
        if self.browser_pool is None or not self.browser_pool.available:
            return page
        if deadline is not None and deadline.expired:
            return page

        logger.info('Thin HTTP response for %s, rendering in browser', url)
        try:
            with self.browser_pool.session(timeout=deadline.remaining() if deadline else None) as session:
                rendered = session.run(
                    lambda browser: render_page(browser, url, random_user_agent(), 'domcontentloaded',
                                                int(self.timeout_s * 1000), settle_s=1.0,
                                                handle_challenges=False, sleep=self._sleep),
                    timeout=deadline.clamp(self.timeout_s + 5) if deadline else self.timeout_s + 5,
                )
            return LoadedPage(url=url, status=rendered.status, html=rendered.html)
        except Exception as e:
            logger.warning('Browser render of %s failed, keeping HTTP response: %s', url, e)
            return page
