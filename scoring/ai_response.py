"""
Parsing of AI collaborator responses into a tagged result.

Model output is free text that usually, but not always, contains the JSON
object the prompt asks for. ``parse_ai_response`` walks an ordered table of
extraction steps and stops at the first candidate that decodes into a
usable analysis. It returns ``Ok(result)`` or ``ParseError(reason)`` and
never raises.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from scoring.types import FACTOR_NAMES, AnalysisFactors, AnalysisResult, clamp_score

logger = logging.getLogger(__name__)

FALLBACK_EXPLANATION = 'Analysis completed with fallback method'
MAX_LIST_ITEMS = 10

# The prompt asks for camelCase keys; snake_case is accepted too.
FACTOR_ALIASES = {
    'documentation_quality': ('documentationQuality', 'documentation_quality'),
    'transparency_indicators': ('transparencyIndicators', 'transparency_indicators'),
    'security_documentation': ('securityDocumentation', 'security_documentation'),
    'community_engagement': ('communityEngagement', 'community_engagement'),
    'technical_implementation': ('technicalImplementation', 'technical_implementation'),
}
LIST_ALIASES = {
    'recommendations': ('recommendations',),
    'risks': ('risks',),
    'red_flags': ('redFlags', 'red_flags'),
    'positive_indicators': ('positiveIndicators', 'positive_indicators'),
}


@dataclass(frozen=True)
class Ok:
    result: AnalysisResult
    strategy: str = 'strict'


@dataclass(frozen=True)
class ParseError:
    reason: str
    attempts: Tuple[str, ...] = field(default_factory=tuple)


AIParseResult = Union[Ok, ParseError]


# Extraction steps, tried in order.

def _strict(text: str) -> Optional[str]:
    return text.strip() or None


_FENCED = re.compile(r'```(?:json)?\s*([\s\S]*?)```', re.IGNORECASE)
_FACTORS_OBJECT = re.compile(r'\{\s*"factors"[\s\S]*\}')


def _fenced(text: str) -> Optional[str]:
    match = _FENCED.search(text)
    return match.group(1).strip() if match else None


def _factors_pattern(text: str) -> Optional[str]:
    match = _FACTORS_OBJECT.search(text)
    return match.group(0) if match else None


def _outer_braces(text: str) -> Optional[str]:
    start, end = text.find('{'), text.rfind('}')
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


EXTRACTION_STEPS: Tuple[Tuple[str, Callable[[str], Optional[str]]], ...] = (
    ('strict', _strict),
    ('fenced_block', _fenced),
    ('factors_pattern', _factors_pattern),
    ('outer_braces', _outer_braces),
)


# One sanitising pass, applied when a candidate fails to decode as-is.
SANITIZE_RULES: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r'&quot;'), '"'),
    (re.compile(r'&apos;|&#39;'), "'"),
    (re.compile(r',\s*([}\]])'), r'\1'),
    (re.compile(r'([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:'), r'\1"\2":'),
    (re.compile(r',,+'), ','),
)


def sanitize_json(candidate: str) -> str:
    cleaned = candidate
    for pattern, replacement in SANITIZE_RULES:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned.strip()


def _decode(candidate: str) -> Optional[Any]:
    for text in (candidate, sanitize_json(candidate)):
        try:
            return json.loads(text)
        except (json.JSONDecodeError, ValueError):
            continue
    return None


def _pick(mapping: Dict[str, Any], aliases) -> Any:
    for key in aliases:
        if key in mapping:
            return mapping[key]
    return None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items[:MAX_LIST_ITEMS]


def build_result(payload: Any) -> AIParseResult:
    """Validate and repair a decoded payload into an AnalysisResult."""
    if not isinstance(payload, dict):
        return ParseError('Response JSON is not an object')
    raw_factors = payload.get('factors')
    if not isinstance(raw_factors, dict):
        return ParseError('Response has no factors object')

    values = {}
    for name in FACTOR_NAMES:
        value = _pick(raw_factors, FACTOR_ALIASES[name])
        if value is None:
            return ParseError(f'Missing factor: {FACTOR_ALIASES[name][0]}')
        values[name] = clamp_score(value)

    raw_explanations = payload.get('explanations')
    explanations = {}
    for name in FACTOR_NAMES:
        text = _pick(raw_explanations, FACTOR_ALIASES[name]) if isinstance(raw_explanations, dict) else None
        explanations[name] = text.strip() if isinstance(text, str) and text.strip() else FALLBACK_EXPLANATION

    lists = {name: _string_list(_pick(payload, aliases)) for name, aliases in LIST_ALIASES.items()}
    return Ok(AnalysisResult(
        factors=AnalysisFactors(**values),
        explanations=explanations,
        source='ai',
        **lists,
    ))


def parse_ai_response(text: Optional[str]) -> AIParseResult:
    if not text or not text.strip():
        return ParseError('Empty response')

    attempts = []
    last_reason = 'No JSON object found in response'
    for name, extract in EXTRACTION_STEPS:
        candidate = extract(text)
        if candidate is None:
            continue
        attempts.append(name)
        payload = _decode(candidate)
        if payload is None:
            last_reason = f'Could not decode JSON ({name})'
            continue
        outcome = build_result(payload)
        if isinstance(outcome, Ok):
            logger.debug(f"Parsed AI response with '{name}' extraction")
            return Ok(outcome.result, strategy=name)
        last_reason = outcome.reason

    logger.warning(f"AI response parse failed after {attempts or 'no candidates'}: {last_reason}; "
                   f"response starts {text[:200]!r}")
    return ParseError(last_reason, tuple(attempts))
