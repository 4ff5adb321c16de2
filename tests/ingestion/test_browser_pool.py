import threading

import pytest

from ingestion.browser_pool import BrowserPool, BrowserUnavailableError


class StubSession:
    def __init__(self, fail_start=False):
        self.fail_start = fail_start
        self.started = False
        self.retired = False
        self.closed = False
        self.busy = False
        self._stopped = threading.Event()

    @property
    def is_started(self):
        return self.started and not self.closed

    def start(self):
        if self.fail_start:
            raise BrowserUnavailableError("launch failed")
        self.started = True

    def close(self):
        self.closed = True
        if not self.busy:
            self._stopped.set()

    def wait_stopped(self, timeout=None):
        return self._stopped.wait(timeout)

    def finish_abandoned_task(self):
        self.busy = False
        self._stopped.set()


def make_pool(size=1, **session_kwargs):
    created = []

    def factory():
        session = StubSession(**session_kwargs)
        created.append(session)
        return session

    return BrowserPool(size=size, session_factory=factory), created


def test_size_must_be_positive():
    with pytest.raises(ValueError):
        BrowserPool(size=0)


def test_session_is_reused_after_clean_release():
    pool, created = make_pool()
    with pool.session() as first:
        pass
    with pool.session() as second:
        pass
    assert first is second
    assert len(created) == 1


def test_slot_released_when_body_raises():
    pool, _ = make_pool(size=1)
    with pytest.raises(RuntimeError):
        with pool.session():
            raise RuntimeError("render failed")
    # The only slot is free again.
    with pool.session(timeout=0.1) as session:
        assert session.is_started


def test_retired_session_is_closed_not_reused():
    pool, created = make_pool()
    with pool.session() as session:
        session.retired = True
    assert session.closed
    with pool.session() as replacement:
        pass
    assert replacement is not session
    assert len(created) == 2


def test_pool_bounds_concurrent_sessions():
    pool, _ = make_pool(size=1)
    holding = threading.Event()
    release = threading.Event()

    def hold():
        with pool.session():
            holding.set()
            release.wait(2)

    worker = threading.Thread(target=hold)
    worker.start()
    holding.wait(2)
    with pytest.raises(TimeoutError):
        with pool.session(timeout=0.05):
            pass
    release.set()
    worker.join(2)


def test_start_failure_releases_slot():
    pool, _ = make_pool(size=1, fail_start=True)
    for _ in range(2):
        with pytest.raises(BrowserUnavailableError):
            with pool.session(timeout=0.1):
                pass


def test_closed_pool_refuses_sessions():
    pool, created = make_pool()
    with pool.session():
        pass
    pool.close()
    assert created[0].closed
    with pytest.raises(BrowserUnavailableError):
        with pool.session():
            pass


def test_custom_factory_marks_pool_available():
    pool, _ = make_pool()
    assert pool.available is True


def test_timed_out_session_holds_slot_until_it_stops():
    pool, created = make_pool(size=1)
    with pool.session() as session:
        # A task timed out; the session thread is still running it.
        session.retired = True
        session.busy = True
    assert session.closed

    with pytest.raises(TimeoutError):
        with pool.session(timeout=0.05):
            pass
    assert len(created) == 1

    session.finish_abandoned_task()
    with pool.session(timeout=2) as replacement:
        assert replacement is not session
    assert len(created) == 2
