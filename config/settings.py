"""Runtime settings for the audit pipeline.

Values come from the environment (a local ``.env`` is loaded first) and are
exposed as the mutable ``SETTINGS`` dict so the CLI can apply overrides.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(PROJECT_ROOT / '.env')


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return float(value)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_optional_float(name: str):
    value = os.getenv(name)
    if not value:
        return None
    return float(value)


def load_settings() -> dict:
    """Build a fresh settings dict from the current environment."""
    return {
        # Fetch chain
        'fetch_timeout_ms': _env_int('AUDIT_FETCH_TIMEOUT_MS', 30000),
        'fallback_timeout_ms': _env_int('AUDIT_FALLBACK_TIMEOUT_MS', 15000),
        'minimal_timeout_s': _env_float('AUDIT_MINIMAL_TIMEOUT_S', 15.0),
        'max_retries': _env_int('AUDIT_MAX_RETRIES', 3),
        'retry_base_delay_s': _env_float('AUDIT_RETRY_BASE_DELAY_S', 2.0),
        # Browser pool
        'browser_pool_size': _env_int('AUDIT_BROWSER_POOL_SIZE', 2),
        'headless': _env_bool('HEADLESS_MODE', True),
        # Deep crawl
        'deep_crawl_enabled': _env_bool('AUDIT_DEEP_CRAWL', True),
        'deep_crawl_max_pages': _env_int('AUDIT_DEEP_CRAWL_MAX_PAGES', 10),
        'deep_crawl_max_depth': _env_int('AUDIT_DEEP_CRAWL_MAX_DEPTH', 1),
        'parallel_workers': _env_int('AUDIT_PARALLEL_WORKERS', 5),
        'request_interval_s': _env_float('AUDIT_REQUEST_INTERVAL_S', 0.5),
        # Lookup cache
        'cache_ttl_s': _env_float('AUDIT_CACHE_TTL_S', 300.0),
        'cache_max_size': _env_int('AUDIT_CACHE_MAX_SIZE', 1000),
        # External services
        'github_token': os.getenv('GITHUB_TOKEN') or None,
        'gemini_api_key': os.getenv('GEMINI_API_KEY') or None,
        'ai_model': os.getenv('AUDIT_AI_MODEL', 'gemini-1.5-flash'),
        # Whole-audit deadline in seconds (None = no deadline)
        'audit_deadline_s': _env_optional_float('AUDIT_DEADLINE_S'),
        'rules_path': os.getenv('AUDIT_RULES_PATH') or None,
    }


SETTINGS = load_settings()
