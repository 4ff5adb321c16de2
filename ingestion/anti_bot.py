"""Challenge-page detection and best-effort mitigation.

Runs inside a browser task after navigation. It never raises: if the
challenge cannot be passed, extraction continues with whatever is on the page
and content validation reports the low quality.
"""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

CHALLENGE_SIGNATURES = (
    'cloudflare',
    'checking your browser',
    'ddos protection',
    'access denied',
    'bot detected',
)

CHALLENGE_SELECTORS = (
    'input[type="checkbox"]',
    'button[type="submit"]',
    '.cf-browser-verification',
    '#challenge-form button',
)

GRACE_PERIOD_S = 5.0
POST_CLICK_WAIT_S = 3.0


def detect_challenge(text: str) -> bool:
    lowered = (text or '').lower()
    return any(signature in lowered for signature in CHALLENGE_SIGNATURES)


def handle_anti_bot(page, sleep: Callable[[float], None] = time.sleep) -> bool:
    """Detect an interstitial challenge on ``page`` and try to get past it.

    Args:
        page: Playwright page (or anything with ``inner_text``/``query_selector``)
        sleep: Injected for tests

    Returns:
        True if a challenge page was detected.
    """
    try:
        body_text = page.inner_text('body')
    except Exception as e:
        logger.debug('Could not read page text for challenge detection: %s', e)
        return False

    if not detect_challenge(body_text):
        return False

    logger.warning('Anti-bot challenge detected on %s, attempting bypass', getattr(page, 'url', '?'))
    sleep(GRACE_PERIOD_S)

    for selector in CHALLENGE_SELECTORS:
        try:
            element = page.query_selector(selector)
            if element is None:
                continue
            element.click()
            logger.info('Clicked challenge control %s', selector)
            sleep(POST_CLICK_WAIT_S)
            break
        except Exception as e:
            logger.debug('Challenge selector %s failed: %s', selector, e)
    return True
