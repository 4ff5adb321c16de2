import pytest
import requests

from ingestion.errors import (
    ERROR_INFO,
    ErrorKind,
    ExtractionError,
    classify_error,
    format_error_for_user,
    get_retry_delay,
    should_retry,
)

TERMINAL = (ErrorKind.ACCESS_DENIED, ErrorKind.INVALID_URL, ErrorKind.CONTENT_TOO_SMALL)


class TestErrorTable:
    def test_every_kind_has_info(self):
        for kind in ErrorKind:
            info = ERROR_INFO[kind]
            assert info.user_message
            assert len(info.suggested_actions) == 3

    def test_terminal_kinds_are_not_retryable(self):
        for kind in TERMINAL:
            assert ERROR_INFO[kind].retryable is False


class TestClassifyError:
    @pytest.mark.parametrize("message,expected", [
        ("net::ERR_NAME_NOT_RESOLVED", ErrorKind.NETWORK_ERROR),
        ("Connection reset by peer", ErrorKind.NETWORK_ERROR),
        ("network connection timed out", ErrorKind.TIMEOUT_ERROR),
        ("Navigation timeout of 30000 ms exceeded", ErrorKind.TIMEOUT_ERROR),
        ("HTTP 403 Forbidden", ErrorKind.ACCESS_DENIED),
        ("HTTP 429 Too Many Requests", ErrorKind.RATE_LIMITED),
        ("Cloudflare challenge page", ErrorKind.ANTI_BOT_BLOCKED),
        ("Browser has been closed", ErrorKind.BROWSER_ERROR),
        ("Malformed address", ErrorKind.INVALID_URL),
        ("could not parse html", ErrorKind.PARSING_ERROR),
        ("something odd", ErrorKind.UNKNOWN_ERROR),
    ])
    def test_message_rules(self, message, expected):
        assert classify_error(message).kind == expected

    def test_requests_timeout_classifies_by_type(self):
        error = classify_error(requests.exceptions.ReadTimeout("read"), "https://example.com")
        assert error.kind == ErrorKind.TIMEOUT_ERROR
        assert error.url == "https://example.com"
        assert isinstance(error.original, requests.exceptions.ReadTimeout)

    def test_requests_connection_error_is_network(self):
        error = classify_error(requests.exceptions.ConnectionError("Max retries exceeded"))
        assert error.kind == ErrorKind.NETWORK_ERROR

    def test_classified_error_passes_through(self):
        original = ExtractionError(ErrorKind.RATE_LIMITED, "slow down")
        assert classify_error(original, "https://example.com") is original
        assert original.url == "https://example.com"


class TestShouldRetry:
    def test_false_for_every_kind_once_attempts_exhausted(self):
        for kind in ErrorKind:
            assert should_retry(kind, 3, 3) is False
            assert should_retry(kind, 4, 3) is False

    def test_terminal_kinds_never_retry(self):
        for kind in TERMINAL:
            assert should_retry(kind, 1, 3) is False

    def test_network_errors_use_full_budget(self):
        assert should_retry(ErrorKind.NETWORK_ERROR, 1, 3) is True
        assert should_retry(ErrorKind.TIMEOUT_ERROR, 2, 3) is True

    def test_rate_limited_and_anti_bot_retry_at_most_once(self):
        for kind in (ErrorKind.RATE_LIMITED, ErrorKind.ANTI_BOT_BLOCKED):
            assert should_retry(kind, 1, 5) is True
            assert should_retry(kind, 2, 5) is False


class TestRetryDelay:
    def test_linear_backoff(self):
        assert get_retry_delay(ErrorKind.NETWORK_ERROR, 1, 2.0) == 2.0
        assert get_retry_delay(ErrorKind.NETWORK_ERROR, 3, 2.0) == 6.0

    def test_rate_limited_multiplier(self):
        assert get_retry_delay(ErrorKind.RATE_LIMITED, 1, 2.0) == 10.0

    def test_anti_bot_multiplier(self):
        assert get_retry_delay(ErrorKind.ANTI_BOT_BLOCKED, 2, 1.0) == 6.0


def test_user_message_contains_guidance_not_internals():
    error = ExtractionError(ErrorKind.ACCESS_DENIED, "Traceback: internal detail", "https://example.com")
    text = format_error_for_user(error)
    assert ERROR_INFO[ErrorKind.ACCESS_DENIED].user_message in text
    assert "Suggested actions:" in text
    assert "Traceback" not in text
    assert error.user_message() == text
