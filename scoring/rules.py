"""
Rule table loader.

Keyword vocabularies, regex tables and the trust-calculator lists live in
``scoring/rules/trust_rules.yml`` so they can be reviewed and extended
without touching scoring control flow. Patterns are compiled once per load.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Tuple

import yaml

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).parent / "rules" / "trust_rules.yml"


class RuleTableError(ValueError):
    """Raised when a rule file is missing a table or has an invalid pattern."""


@dataclass(frozen=True)
class PositiveRule:
    pattern: Pattern
    message: str
    requires: Optional[Pattern] = None
    or_code_repositories: bool = False


@dataclass(frozen=True)
class MarkerSet:
    """Matches when any single marker appears, or every marker of one group does."""
    any: Tuple[str, ...] = ()
    all: Tuple[Tuple[str, ...], ...] = ()
    min_social_links: Optional[int] = None

    def matches(self, text_lower: str, social_links: int = 0) -> bool:
        if any(marker in text_lower for marker in self.any):
            return True
        if any(all(marker in text_lower for marker in group) for group in self.all):
            return True
        return self.min_social_links is not None and social_links >= self.min_social_links


@dataclass(frozen=True)
class RuleSet:
    version: str
    documentation_keywords: Tuple[str, ...]
    security_keywords: Tuple[str, ...]
    transparency_keywords: Tuple[str, ...]
    suspicious_patterns: Tuple[Pattern, ...]
    suspicious_message: str
    positive_rules: Tuple[PositiveRule, ...]
    multi_platform_min_links: int
    multi_platform_message: str
    strong_defi: Tuple[str, ...]
    moderate_defi: Tuple[str, ...]
    blockchain_patterns: Tuple[Pattern, ...]
    portfolio_keywords: Tuple[str, ...]
    business_keywords: Tuple[str, ...]
    portfolio_threshold: int
    business_threshold: int
    dao_markers: MarkerSet
    maturity_markers: MarkerSet
    critical_flags: Tuple[str, ...]
    inconsistency_flags: Tuple[str, ...]
    moderate_flags: Tuple[str, ...]
    high_value_indicators: Tuple[str, ...]
    standard_indicators: Tuple[str, ...]


def _require(table: Dict[str, Any], key: str, where: str) -> Any:
    if key not in table or table[key] is None:
        raise RuleTableError(f"Rule table '{where}' is missing '{key}'")
    return table[key]


def _words(values: List[Any]) -> Tuple[str, ...]:
    return tuple(str(v).lower() for v in values)


def _compile(pattern: str, where: str) -> Pattern:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise RuleTableError(f"Invalid pattern in '{where}': {pattern!r} ({e})") from e


def _markers(table: Dict[str, Any]) -> MarkerSet:
    return MarkerSet(
        any=_words(table.get('any', [])),
        all=tuple(_words(group) for group in table.get('all', [])),
        min_social_links=table.get('min_social_links'),
    )


def parse_rules(raw: Dict[str, Any]) -> RuleSet:
    """Build a RuleSet from the decoded YAML mapping."""
    if not isinstance(raw, dict):
        raise RuleTableError("Rule file must contain a mapping")

    keywords = _require(raw, 'keywords', 'root')
    suspicious = _require(raw, 'suspicious_language', 'root')
    project = _require(raw, 'project_type', 'root')
    calculator = _require(raw, 'trust_calculator', 'root')
    multi_platform = raw.get('structural_indicators', {}).get('multi_platform', {})

    positive_rules = []
    for entry in _require(raw, 'positive_indicators', 'root'):
        positive_rules.append(PositiveRule(
            pattern=_compile(_require(entry, 'pattern', 'positive_indicators'), 'positive_indicators'),
            message=_require(entry, 'message', 'positive_indicators'),
            requires=_compile(entry['requires'], 'positive_indicators') if entry.get('requires') else None,
            or_code_repositories=bool(entry.get('or_code_repositories', False)),
        ))

    return RuleSet(
        version=str(raw.get('version', 'unversioned')),
        documentation_keywords=_words(_require(keywords, 'documentation', 'keywords')),
        security_keywords=_words(_require(keywords, 'security', 'keywords')),
        transparency_keywords=_words(_require(keywords, 'transparency', 'keywords')),
        suspicious_patterns=tuple(_compile(p, 'suspicious_language') for p in _require(suspicious, 'patterns', 'suspicious_language')),
        suspicious_message=_require(suspicious, 'message', 'suspicious_language'),
        positive_rules=tuple(positive_rules),
        multi_platform_min_links=int(multi_platform.get('min_social_links', 4)),
        multi_platform_message=multi_platform.get(
            'message', 'Strong: Multi-platform social presence - Active social media across platforms'),
        strong_defi=_words(_require(project, 'strong', 'project_type')),
        moderate_defi=_words(_require(project, 'moderate', 'project_type')),
        blockchain_patterns=tuple(_compile(p, 'project_type') for p in project.get('blockchain_patterns', [])),
        portfolio_keywords=_words(project.get('portfolio', [])),
        business_keywords=_words(project.get('business', [])),
        portfolio_threshold=int(project.get('portfolio_threshold', 5)),
        business_threshold=int(project.get('business_threshold', 3)),
        dao_markers=_markers(raw.get('dao_markers', {})),
        maturity_markers=_markers(raw.get('maturity_markers', {})),
        critical_flags=_words(_require(calculator, 'critical', 'trust_calculator')),
        inconsistency_flags=_words(calculator.get('inconsistency', [])),
        moderate_flags=_words(_require(calculator, 'moderate', 'trust_calculator')),
        high_value_indicators=_words(_require(calculator, 'high_value', 'trust_calculator')),
        standard_indicators=_words(_require(calculator, 'standard', 'trust_calculator')),
    )


def load_rules(path: Optional[Path] = None) -> RuleSet:
    """
    Load and compile a rule file.

    Args:
        path: YAML file; the bundled table when omitted

    Raises:
        RuleTableError: on a missing table or an invalid regex
        FileNotFoundError: when ``path`` does not exist
    """
    if path is None:
        return _default_rules()
    return _load(Path(path))


def _load(path: Path) -> RuleSet:
    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f)
    rules = parse_rules(raw)
    logger.debug(f"Loaded trust rules v{rules.version} from {path}")
    return rules


@lru_cache(maxsize=1)
def _default_rules() -> RuleSet:
    return _load(DEFAULT_RULES_PATH)
