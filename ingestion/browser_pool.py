"""Bounded pool of Playwright browser sessions.

The synchronous Playwright API is bound to the thread that started it, so each
:class:`BrowserSession` owns a dedicated thread and runs submitted tasks
serially. :class:`BrowserPool` hands sessions out one audit attempt at a time
and always takes them back, including on timeouts and exceptions.
"""

import logging
import queue
import sys
import threading
from contextlib import contextmanager
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

# Optional Playwright import
try:
    from playwright.sync_api import sync_playwright
    _PLAYWRIGHT_AVAILABLE = True
except Exception:
    sync_playwright = None
    _PLAYWRIGHT_AVAILABLE = False

LAUNCH_ARGS = [
    '--disable-gpu',
    '--disable-dev-shm-usage',
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-accelerated-2d-canvas',
    '--disable-http2',
    # Stealth additions
    '--disable-blink-features=AutomationControlled',
    '--disable-infobars',
    '--ignore-certificate-errors',
]

_CRASH_MARKERS = ('Target page, context or browser has been closed', 'Connection closed')


class BrowserUnavailableError(RuntimeError):
    """Raised when no browser can be used (Playwright missing or failed to launch)."""


class BrowserSession:
    """One browser instance driven from its own thread.

    Tasks are callables ``task(browser) -> result``; :meth:`run` blocks the
    caller until the task finishes or ``timeout`` elapses.
    """

    def __init__(self, headless: bool = True, name: str = 'BrowserSession'):
        self._headless = headless
        self._name = name
        self._requests: 'queue.Queue' = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self._stopped = threading.Event()
        self._stopped.set()
        self._busy = False
        self.retired = False

    @property
    def is_started(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def start(self, timeout: float = 30.0) -> None:
        if not _PLAYWRIGHT_AVAILABLE:
            raise BrowserUnavailableError('Playwright browser is not installed')
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._ready.clear()
            self._stopped.clear()
            self._startup_error = None
            self._thread = threading.Thread(target=self._run_loop, daemon=True, name=self._name)
            self._thread.start()
        if not self._ready.wait(timeout):
            raise BrowserUnavailableError('Browser did not start in time')
        if self._startup_error is not None:
            raise BrowserUnavailableError(f'Browser launch failed: {self._startup_error}')

    def _launch(self, playwright):
        return playwright.chromium.launch(
            headless=self._headless,
            args=LAUNCH_ARGS,
            ignore_default_args=['--enable-automation'],
            handle_sigint=False,
            handle_sigterm=False,
            handle_sighup=False,
        )

    def _run_loop(self):
        playwright = None
        browser = None
        try:
            playwright = sync_playwright().start()
            browser = self._launch(playwright)
            logger.info('%s launched browser (headless=%s)', self._name, self._headless)
        except Exception as e:
            self._startup_error = e
            self._ready.set()
            if playwright:
                try:
                    playwright.stop()
                except Exception:
                    pass
            self._stopped.set()
            return
        self._ready.set()

        try:
            while True:
                item = self._requests.get()
                if item is None:
                    break
                task, result_queue = item
                try:
                    if not browser.is_connected():
                        logger.warning('%s: browser disconnected, relaunching', self._name)
                        browser = self._relaunch(playwright, browser)
                    result_queue.put((True, task(browser)))
                except Exception as e:
                    if any(marker in str(e) for marker in _CRASH_MARKERS):
                        logger.warning('%s: browser crashed during task, relaunching and retrying: %s', self._name, e)
                        try:
                            browser = self._relaunch(playwright, browser)
                            result_queue.put((True, task(browser)))
                        except Exception as retry_e:
                            result_queue.put((False, retry_e))
                    else:
                        result_queue.put((False, e))
                finally:
                    with self._lock:
                        self._busy = False
                    self._requests.task_done()
        finally:
            if not sys.is_finalizing():
                for closer in (getattr(browser, 'close', None), getattr(playwright, 'stop', None)):
                    if closer is None:
                        continue
                    try:
                        closer()
                    except Exception:
                        pass
                logger.info('%s stopped', self._name)
            with self._lock:
                self._thread = None
            self._stopped.set()

    def _relaunch(self, playwright, browser):
        try:
            browser.close()
        except Exception:
            pass
        return self._launch(playwright)

    def run(self, task: Callable[[Any], Any], timeout: Optional[float] = None) -> Any:
        """Execute ``task(browser)`` on the session thread.

        Raises:
            TimeoutError: the task did not finish within ``timeout``; the
                session keeps running it and is marked retired.
            BrowserUnavailableError: the session is not running.
        """
        if not self.is_started:
            raise BrowserUnavailableError('Browser session not started')
        result_queue: 'queue.Queue' = queue.Queue(maxsize=1)
        with self._lock:
            self._busy = True
        self._requests.put((task, result_queue))
        try:
            ok, value = result_queue.get(timeout=timeout)
        except queue.Empty:
            self.retired = True
            raise TimeoutError(f'Browser task timed out after {timeout:.1f}s')
        if not ok:
            raise value
        return value

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the session thread has exited; False on timeout."""
        return self._stopped.wait(timeout)

    def close(self, join_timeout: float = 2.0) -> None:
        with self._lock:
            thread = self._thread
        if thread is None:
            return
        self._requests.put(None)
        if not self.busy:
            thread.join(timeout=join_timeout)


class BrowserPool:
    """At most ``size`` sessions in use at once.

    Usage:
        pool = BrowserPool(size=2)
        with pool.session() as session:
            html = session.run(render_task, timeout=30)
        pool.close()
    """

    def __init__(self, size: int = 2, headless: bool = True, session_factory=None):
        if size < 1:
            raise ValueError('pool size must be at least 1')
        self._size = size
        self._headless = headless
        self._slots = threading.BoundedSemaphore(size)
        self._idle: List[BrowserSession] = []
        self._all: List[BrowserSession] = []
        self._lock = threading.Lock()
        self._closed = False
        self._counter = 0
        self._custom_factory = session_factory is not None
        self._session_factory = session_factory or self._default_factory

    @property
    def available(self) -> bool:
        return _PLAYWRIGHT_AVAILABLE or self._custom_factory

    @property
    def size(self) -> int:
        return self._size

    def _default_factory(self) -> BrowserSession:
        self._counter += 1
        return BrowserSession(headless=self._headless, name=f'BrowserSession-{self._counter}')

    def _checkout(self) -> BrowserSession:
        with self._lock:
            while self._idle:
                candidate = self._idle.pop()
                if candidate.is_started and not candidate.retired:
                    return candidate
                self._forget(candidate)
            session = self._session_factory()
            self._all.append(session)
        try:
            session.start()
        except Exception:
            with self._lock:
                self._forget(session)
            raise
        return session

    def _forget(self, session: BrowserSession) -> None:
        if session in self._all:
            self._all.remove(session)

    def _checkin(self, session: BrowserSession) -> bool:
        """Take a session back. False when it is still running an abandoned task."""
        with self._lock:
            reusable = not self._closed and not session.retired and session.is_started
            if reusable:
                self._idle.append(session)
            else:
                self._forget(session)
        if reusable:
            return True
        logger.debug('Retiring browser session %s', session)
        session.close()
        return not session.busy

    def _release_when_stopped(self, session: BrowserSession) -> None:
        # The abandoned task still owns a browser; its slot stays taken until the thread exits.
        def watch():
            session.wait_stopped()
            logger.debug('Retired browser session %s stopped, releasing its slot', session)
            self._slots.release()

        threading.Thread(target=watch, daemon=True, name='BrowserSlotWatcher').start()

    @contextmanager
    def session(self, timeout: Optional[float] = None):
        """Acquire a session slot; the slot is released on every exit path.

        A session retired while still busy keeps its slot until its thread has
        stopped, so no more than ``size`` browsers are ever alive.
        """
        if self._closed:
            raise BrowserUnavailableError('Browser pool is closed')
        if not self._slots.acquire(timeout=timeout):
            raise TimeoutError('Timed out waiting for a browser session')
        session = None
        release_now = True
        try:
            session = self._checkout()
            yield session
        finally:
            try:
                if session is not None:
                    release_now = self._checkin(session)
            finally:
                if release_now:
                    self._slots.release()
                else:
                    self._release_when_stopped(session)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            sessions = list(self._all)
            self._all.clear()
            self._idle.clear()
        for session in sessions:
            try:
                session.close()
            except Exception as e:
                logger.debug('Error closing browser session: %s', e)
