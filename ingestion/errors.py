"""Extraction error taxonomy.

Every fetch failure is mapped onto a closed set of kinds. Each kind carries a
fixed retryable flag, a user-facing message and suggested actions, kept in the
static ``ERROR_INFO`` table.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

import requests

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    ACCESS_DENIED = "ACCESS_DENIED"
    INVALID_URL = "INVALID_URL"
    CONTENT_TOO_SMALL = "CONTENT_TOO_SMALL"
    ANTI_BOT_BLOCKED = "ANTI_BOT_BLOCKED"
    JAVASCRIPT_REQUIRED = "JAVASCRIPT_REQUIRED"
    RATE_LIMITED = "RATE_LIMITED"
    BROWSER_ERROR = "BROWSER_ERROR"
    PARSING_ERROR = "PARSING_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class ErrorInfo:
    retryable: bool
    user_message: str
    suggested_actions: Tuple[str, ...]


ERROR_INFO = {
    ErrorKind.NETWORK_ERROR: ErrorInfo(
        True,
        "Unable to connect to the website. This may be a temporary network issue.",
        ("Check if the website URL is correct and accessible",
         "Try again in a few minutes",
         "Verify your internet connection"),
    ),
    ErrorKind.TIMEOUT_ERROR: ErrorInfo(
        True,
        "The website took too long to respond. It may be experiencing high traffic.",
        ("Try again later when the website may be less busy",
         "Check if the website is loading normally in your browser",
         "Contact the website administrator if the issue persists"),
    ),
    ErrorKind.ACCESS_DENIED: ErrorInfo(
        False,
        "Access to this website is restricted. The site may block automated access.",
        ("Check if the website requires authentication",
         "Verify the website allows public access",
         "Try accessing a different page on the same domain"),
    ),
    ErrorKind.INVALID_URL: ErrorInfo(
        False,
        "The provided URL is not valid or properly formatted.",
        ("Ensure the URL starts with http:// or https://",
         "Check for typos in the URL",
         "Verify the domain name is correct"),
    ),
    ErrorKind.CONTENT_TOO_SMALL: ErrorInfo(
        False,
        "The website has very little content to analyze.",
        ("Try analyzing a more detailed page like documentation or about page",
         "Check if the website is fully loaded",
         "Verify this is the correct project website"),
    ),
    ErrorKind.ANTI_BOT_BLOCKED: ErrorInfo(
        True,
        "The website has anti-bot protection that prevented content extraction.",
        ("Try again later as protection may be temporary",
         "Contact the project team for direct access to information",
         "Use alternative sources like documentation or GitHub"),
    ),
    ErrorKind.JAVASCRIPT_REQUIRED: ErrorInfo(
        True,
        "The website requires JavaScript to display its content.",
        ("Try again as the page may need more time to render",
         "Check if the website works in a regular browser",
         "Try a documentation page that serves static content"),
    ),
    ErrorKind.RATE_LIMITED: ErrorInfo(
        True,
        "Too many requests were made to this website. Please wait before trying again.",
        ("Wait a few minutes before retrying",
         "The website may have strict rate limiting",
         "Try again during off-peak hours"),
    ),
    ErrorKind.BROWSER_ERROR: ErrorInfo(
        True,
        "A technical issue occurred while loading the website.",
        ("Try again as this may be a temporary issue",
         "Check if the website loads properly in your browser",
         "Contact support if the issue persists"),
    ),
    ErrorKind.PARSING_ERROR: ErrorInfo(
        True,
        "Unable to extract content from the website structure.",
        ("The website may have an unusual structure",
         "Try analyzing a different page on the same domain",
         "Contact support with the URL for investigation"),
    ),
    ErrorKind.UNKNOWN_ERROR: ErrorInfo(
        True,
        "An unexpected error occurred during content extraction.",
        ("Try again in a few minutes",
         "Verify the URL is correct",
         "Contact support if the issue persists"),
    ),
}

NON_RETRYABLE = frozenset(kind for kind, info in ERROR_INFO.items() if not info.retryable)

# Ordered (kind, substrings) rules; first match wins. Network handling is
# special-cased in classify_message because it can resolve to a timeout.
_MESSAGE_RULES = (
    (ErrorKind.ACCESS_DENIED, ('403', 'forbidden', 'access denied')),
    (ErrorKind.RATE_LIMITED, ('429', 'rate limit', 'too many requests')),
    (ErrorKind.ANTI_BOT_BLOCKED, ('cloudflare', 'bot detected', 'challenge')),
    (ErrorKind.BROWSER_ERROR, ('browser', 'playwright', 'chrome')),
    (ErrorKind.INVALID_URL, ('invalid url', 'malformed')),
    (ErrorKind.PARSING_ERROR, ('parse', 'html')),
)


class ExtractionError(Exception):
    """A classified extraction failure."""

    def __init__(self, kind: ErrorKind, message: str, url: str = '',
                 original: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.url = url
        self.original = original

    @property
    def retryable(self) -> bool:
        return ERROR_INFO[self.kind].retryable

    def user_message(self) -> str:
        return format_error_for_user(self)

    def __repr__(self):
        return f'ExtractionError({self.kind.value}, {self.message!r})'


def classify_message(message: str) -> ErrorKind:
    lowered = (message or '').lower()
    if 'net::' in lowered or 'network' in lowered or 'connection' in lowered:
        if 'timeout' in lowered or 'timed out' in lowered:
            return ErrorKind.TIMEOUT_ERROR
        return ErrorKind.NETWORK_ERROR
    if 'timeout' in lowered or 'timed out' in lowered:
        return ErrorKind.TIMEOUT_ERROR
    for kind, needles in _MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return kind
    return ErrorKind.UNKNOWN_ERROR


def classify_error(error: Union[BaseException, str], url: str = '') -> ExtractionError:
    """Map any failure onto an ``ExtractionError``.

    Already-classified errors pass through; ``requests`` timeouts and
    connection errors classify by type; everything else by message.
    """
    if isinstance(error, ExtractionError):
        if url and not error.url:
            error.url = url
        return error
    if isinstance(error, str):
        return ExtractionError(classify_message(error), error, url)

    message = str(error) or error.__class__.__name__
    if isinstance(error, (requests.exceptions.Timeout, TimeoutError)):
        kind = ErrorKind.TIMEOUT_ERROR
    elif isinstance(error, requests.exceptions.ConnectionError):
        kind = classify_message(message)
        if kind not in (ErrorKind.TIMEOUT_ERROR, ErrorKind.NETWORK_ERROR):
            kind = ErrorKind.NETWORK_ERROR
    elif isinstance(error, requests.exceptions.InvalidURL):
        kind = ErrorKind.INVALID_URL
    else:
        kind = classify_message(message)
    return ExtractionError(kind, message, url, original=error)


def should_retry(kind: ErrorKind, attempt: int, max_attempts: int) -> bool:
    """Whether another outer attempt is allowed after ``attempt`` failures."""
    if attempt >= max_attempts:
        return False
    if kind in NON_RETRYABLE:
        return False
    if kind in (ErrorKind.RATE_LIMITED, ErrorKind.ANTI_BOT_BLOCKED):
        # At most one retry for these kinds.
        return attempt < 2
    return True


def get_retry_delay(kind: ErrorKind, attempt: int, base_delay: float = 2.0) -> float:
    """Linear backoff in seconds; rate limits and bot walls back off harder."""
    if kind == ErrorKind.RATE_LIMITED:
        return base_delay * 5 * attempt
    if kind == ErrorKind.ANTI_BOT_BLOCKED:
        return base_delay * 3 * attempt
    return base_delay * attempt


def suggested_actions(kind: ErrorKind) -> List[str]:
    return list(ERROR_INFO[kind].suggested_actions)


def format_error_for_user(error: ExtractionError) -> str:
    info = ERROR_INFO[error.kind]
    lines = [info.user_message, '', 'Suggested actions:']
    lines.extend(f'• {action}' for action in info.suggested_actions)
    if error.url:
        lines.extend(['', f'URL: {error.url}'])
    return '\n'.join(lines)
