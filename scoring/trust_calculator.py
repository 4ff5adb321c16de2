"""
Trust Score Calculator

Converts reconciled factors, red flags and positive indicators into a
bounded 0-100 trust score with a risk tier and an itemized adjustment ledger.

The adjustment phases run in a fixed order:
    1. weighted base score
    2. red-flag penalties (running score floored at 0)
    3. positive-indicator bonuses (total capped at +5)
    4. critical-flag cap (score forced to 40 when above it)
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from scoring.rules import RuleSet, load_rules
from scoring.types import AnalysisFactors, RiskLevel, ScoreAdjustment, TrustScoreResult

logger = logging.getLogger(__name__)

WEIGHTS = {
    'documentation_quality': 0.25,
    'transparency_indicators': 0.20,
    'security_documentation': 0.20,
    'community_engagement': 0.15,
    'technical_implementation': 0.20,
}

CRITICAL_PENALTY = 15
INCONSISTENCY_PENALTY = 10
MODERATE_PENALTY = 8
MINOR_PENALTY = 3

HIGH_VALUE_BONUS = 1.0
STANDARD_BONUS = 0.5
MAX_TOTAL_BONUS = 5.0

CRITICAL_CAP = 40

RISK_LEVEL_DETAILS = {
    RiskLevel.HIGH: {
        'color': 'red',
        'description': 'Significant trust concerns identified. High risk of loss.',
        'score_range': '0-29',
    },
    RiskLevel.MEDIUM: {
        'color': 'yellow',
        'description': 'Moderate risk factors present. Proceed with caution.',
        'score_range': '30-59',
    },
    RiskLevel.LOW: {
        'color': 'green',
        'description': 'Generally trustworthy with minor concerns.',
        'score_range': '60-79',
    },
    RiskLevel.TRUSTED: {
        'color': 'blue',
        'description': 'Strong indicators of trustworthiness and reliability.',
        'score_range': '80-100',
    },
}


def determine_risk_level(score: float) -> RiskLevel:
    if score < 30:
        return RiskLevel.HIGH
    if score < 60:
        return RiskLevel.MEDIUM
    if score < 80:
        return RiskLevel.LOW
    return RiskLevel.TRUSTED


def get_risk_level_details(score: float) -> Dict[str, str]:
    """Color indicator, description and score range for the score's tier."""
    level = determine_risk_level(score)
    details = RISK_LEVEL_DETAILS[level]
    return {
        'level': level.value,
        'color': details['color'],
        'indicator': details['color'],
        'description': details['description'],
        'score_range': details['score_range'],
    }


def _fmt(value: float) -> str:
    return f"{value:g}"


def get_adjustments_summary(adjustments: List[ScoreAdjustment]) -> Dict[str, Any]:
    """Totals per adjustment type, grouping by severity, and a one-line summary."""
    total_penalties = sum(abs(a.adjustment) for a in adjustments if a.type == 'penalty')
    total_bonuses = sum(a.adjustment for a in adjustments if a.type == 'bonus')
    total_caps = sum(a.adjustment for a in adjustments if a.type == 'cap')

    parts = []
    if total_penalties > 0:
        parts.append(f"-{_fmt(total_penalties)} penalties")
    if total_bonuses > 0:
        parts.append(f"+{_fmt(total_bonuses)} bonuses")
    if total_caps < 0:
        parts.append(f"{_fmt(total_caps)} caps")
    summary = f"Applied {len(adjustments)} score adjustments"
    if parts:
        summary += ": " + ", ".join(parts)

    return {
        'total_penalties': total_penalties,
        'total_bonuses': total_bonuses,
        'total_caps': total_caps,
        'critical_adjustments': [a for a in adjustments if a.severity == 'critical'],
        'moderate_adjustments': [a for a in adjustments if a.severity == 'moderate'],
        'minor_adjustments': [a for a in adjustments if a.severity == 'minor'],
        'summary': summary,
    }


class TrustScoreCalculator:
    """Pure function object: identical inputs always give an identical result."""

    def __init__(self, rules: Optional[RuleSet] = None):
        self.rules = rules or load_rules()

    def base_score(self, factors: AnalysisFactors) -> float:
        return sum(getattr(factors, name) * weight for name, weight in WEIGHTS.items())

    def _contains_any(self, text_lower: str, vocabulary) -> bool:
        return any(term in text_lower for term in vocabulary)

    def is_critical(self, red_flag: str) -> bool:
        return self._contains_any(red_flag.lower(), self.rules.critical_flags)

    def classify_red_flag(self, red_flag: str) -> Tuple[int, str]:
        """Penalty and severity; first matching vocabulary wins."""
        flag_lower = red_flag.lower()
        if self._contains_any(flag_lower, self.rules.critical_flags):
            return CRITICAL_PENALTY, 'critical'
        if self._contains_any(flag_lower, self.rules.inconsistency_flags):
            return INCONSISTENCY_PENALTY, 'moderate'
        if self._contains_any(flag_lower, self.rules.moderate_flags):
            return MODERATE_PENALTY, 'moderate'
        return MINOR_PENALTY, 'minor'

    def classify_positive_indicator(self, indicator: str) -> Tuple[float, str]:
        indicator_lower = indicator.lower()
        if self._contains_any(indicator_lower, self.rules.high_value_indicators):
            return HIGH_VALUE_BONUS, 'critical'
        if self._contains_any(indicator_lower, self.rules.standard_indicators):
            return STANDARD_BONUS, 'moderate'
        return 0.0, 'minor'

    def apply_red_flag_penalties(self, score: float, red_flags: List[str]) -> Tuple[float, List[ScoreAdjustment]]:
        adjustments = []
        for flag in red_flags:
            penalty, severity = self.classify_red_flag(flag)
            score -= penalty
            adjustments.append(ScoreAdjustment(
                factor='Red Flag',
                adjustment=-penalty,
                reason=f"{severity.capitalize()} penalty for: {flag}",
                type='penalty',
                severity=severity,
                category='red_flag',
            ))
        return max(0.0, score), adjustments

    def apply_positive_bonuses(self, score: float, indicators: List[str]) -> Tuple[float, List[ScoreAdjustment]]:
        """
        Add indicator bonuses with the total capped at MAX_TOTAL_BONUS.

        The ledger is truncated at the cap: the entry that crosses it records
        only the remainder, later entries are omitted. The ledger's bonus sum
        therefore always equals the bonus actually applied.
        """
        adjustments = []
        applied = 0.0
        for indicator in indicators:
            bonus, severity = self.classify_positive_indicator(indicator)
            if bonus <= 0:
                continue
            granted = min(bonus, MAX_TOTAL_BONUS - applied)
            if granted <= 0:
                logger.debug(f"Bonus cap reached, skipping: {indicator}")
                break
            applied += granted
            adjustments.append(ScoreAdjustment(
                factor='Positive Indicator',
                adjustment=granted,
                reason=f"{severity.capitalize()} bonus for: {indicator}",
                type='bonus',
                severity=severity,
                category='positive_indicator',
            ))
        return score + applied, adjustments

    def apply_critical_cap(self, score: float, red_flags: List[str]) -> Tuple[float, List[ScoreAdjustment]]:
        critical = [flag for flag in red_flags if self.is_critical(flag)]
        if not critical or score <= CRITICAL_CAP:
            return score, []
        adjustment = ScoreAdjustment(
            factor='Critical Red Flag Cap',
            adjustment=CRITICAL_CAP - score,
            reason=f"Score capped at {CRITICAL_CAP} due to critical red flags: {', '.join(critical)}",
            type='cap',
            severity='critical',
            category='critical_cap',
        )
        return float(CRITICAL_CAP), [adjustment]

    def calculate_confidence(self, factors: AnalysisFactors, content_completeness: float,
                             content_length: int) -> int:
        confidence = 50.0
        confidence += (max(0.0, min(100.0, content_completeness)) / 100) * 30
        confidence += min(20.0, (max(0, content_length) / 5000) * 20)

        values = [value for _, value in factors.items()]
        completeness = sum(1 for value in values if value > 0) / len(values) * 100
        if completeness == 100:
            pass
        elif completeness >= 80:
            confidence -= 5
        elif completeness >= 60:
            confidence -= 15
        else:
            confidence -= 30
        return int(round(max(0.0, min(100.0, confidence))))

    def calculate(
        self,
        factors: AnalysisFactors,
        red_flags: Optional[List[str]] = None,
        positive_indicators: Optional[List[str]] = None,
        content_completeness: float = 100,
        content_length: int = 0,
    ) -> TrustScoreResult:
        """
        Score one audit.

        Args:
            factors: Reconciled factor scores
            red_flags: Detected red flags, in detection order
            positive_indicators: Detected positive indicators, in detection order
            content_completeness: 0-100 extraction completeness (validation score)
            content_length: Character length of the extracted content

        Returns:
            TrustScoreResult with the ledger in application order
        """
        red_flags = list(red_flags or [])
        positive_indicators = list(positive_indicators or [])
        factors = factors.clamped()

        base = self.base_score(factors)
        score, ledger = self.apply_red_flag_penalties(base, red_flags)
        score, bonuses = self.apply_positive_bonuses(score, positive_indicators)
        ledger.extend(bonuses)
        score, caps = self.apply_critical_cap(score, red_flags)
        ledger.extend(caps)

        final_score = int(round(max(0.0, min(100.0, score))))
        result = TrustScoreResult(
            final_score=final_score,
            risk_level=determine_risk_level(final_score),
            confidence=self.calculate_confidence(factors, content_completeness, content_length),
            breakdown=factors,
            adjustments=ledger,
            base_score=int(round(base)),
            red_flags=red_flags,
            positive_indicators=positive_indicators,
        )
        logger.info(f"Trust score {final_score}/100 ({result.risk_level.value}), base {result.base_score}, "
                    f"{len(ledger)} adjustments")
        return result
