"""
Consistency Reconciler

Merges the AI-derived and pattern-derived factor scores into one adjusted
result with a disclosed confidence level, then applies content-quality
adjustments that tie the scores back to what was actually extracted.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from data.models import DeepCrawlFindings, ExternalVerification, ExtractedContent, SocialMediaData
from scoring.pattern_scorer import describe_factors
from scoring.types import FACTOR_NAMES, AnalysisFactors, AnalysisResult, Confidence, ConsistencyReport

logger = logging.getLogger(__name__)

VARIANCE_ISSUE_THRESHOLD = 25
CONVERGENCE_THRESHOLD = 15
AI_WEIGHT = 0.8
PATTERN_WEIGHT = 0.2
MIN_CONSISTENT_SCORE = 70
PATTERN_ONLY_SCORE = 85
CONTENT_CHECK_PENALTY = 10
AI_UNAVAILABLE_ISSUE = 'AI analysis unavailable - using pattern-based analysis'

# Final list caps when the two opinions are merged.
MAX_RECOMMENDATIONS = 10
MAX_RISKS = 8
MAX_RED_FLAGS = 6
MAX_POSITIVE_INDICATORS = 8


def _add(factors: AnalysisFactors, name: str, delta: int) -> None:
    setattr(factors, name, max(0, min(100, getattr(factors, name) + delta)))


def adjust_for_content_quality(factors: AnalysisFactors, content: ExtractedContent) -> AnalysisFactors:
    """Nudge each factor by what was extracted; every step clamps to [0, 100]."""
    adjusted = AnalysisFactors(**factors.to_dict())

    docs = len(content.documentation)
    if docs >= 5:
        _add(adjusted, 'documentation_quality', 10)
    elif docs == 0:
        _add(adjusted, 'documentation_quality', -20)

    team = len(content.team_info)
    if team > 500:
        _add(adjusted, 'transparency_indicators', 10)
    elif team < 50:
        _add(adjusted, 'transparency_indicators', -15)

    security = len(content.security_info)
    if security > 200:
        _add(adjusted, 'security_documentation', 10)
    elif security == 0:
        _add(adjusted, 'security_documentation', -20)

    social = len(content.social_links)
    if social >= 5:
        _add(adjusted, 'community_engagement', 10)
    elif social == 0:
        _add(adjusted, 'community_engagement', -25)

    repos = len(content.code_repositories)
    if repos >= 2:
        _add(adjusted, 'technical_implementation', 15)
    elif repos == 0:
        _add(adjusted, 'technical_implementation', -20)

    return adjusted


def reconcile_factors(ai: AnalysisFactors, pattern: AnalysisFactors) -> AnalysisFactors:
    """Per factor: AI value when the opinions agree within 15 points, else an 80/20 blend."""
    values = {}
    for name in FACTOR_NAMES:
        ai_score, pattern_score = getattr(ai, name), getattr(pattern, name)
        if abs(ai_score - pattern_score) < CONVERGENCE_THRESHOLD:
            values[name] = ai_score
        else:
            values[name] = int(round(ai_score * AI_WEIGHT + pattern_score * PATTERN_WEIGHT))
    return AnalysisFactors(**values)


def _factors_of(opinion) -> AnalysisFactors:
    return opinion.factors if isinstance(opinion, AnalysisResult) else opinion


class ConsistencyReconciler:

    def compare_scores(self, ai: AnalysisFactors, pattern: AnalysisFactors) -> Tuple[float, List[str]]:
        issues = []
        total_variance = 0
        for name in FACTOR_NAMES:
            ai_score, pattern_score = getattr(ai, name), getattr(pattern, name)
            variance = abs(ai_score - pattern_score)
            if variance > VARIANCE_ISSUE_THRESHOLD:
                issues.append(f"High variance in {name}: AI={ai_score}, Pattern={pattern_score} (diff: {variance})")
                total_variance += variance
        return (total_variance / len(FACTOR_NAMES)) * 0.5, issues

    def validate_against_content(self, ai: AnalysisFactors, content: ExtractedContent) -> Tuple[int, List[str]]:
        checks = (
            (ai.documentation_quality > 80 and len(content.documentation) < 3,
             'High documentation score but limited documentation sections found'),
            (ai.transparency_indicators > 80 and len(content.team_info) < 100,
             'High transparency score but limited team information'),
            (ai.security_documentation > 80 and len(content.security_info) < 50,
             'High security score but limited security information'),
            (ai.community_engagement > 80 and len(content.social_links) < 3,
             'High community score but limited social media presence'),
            (ai.technical_implementation > 80 and not content.code_repositories,
             'High technical score but no code repositories found'),
        )
        issues = [message for failed, message in checks if failed]
        return CONTENT_CHECK_PENALTY * len(issues), issues

    def determine_confidence(self, score: float, issue_count: int, content: ExtractedContent) -> Confidence:
        main_length = len(content.main_content)
        if score >= 90 and issue_count <= 1 and main_length > 2000:
            return Confidence.HIGH
        if score < MIN_CONSISTENT_SCORE or issue_count > 5 or main_length < 500:
            return Confidence.LOW
        return Confidence.MEDIUM

    def reconcile(self, ai, pattern, content: ExtractedContent) -> ConsistencyReport:
        """
        Reconcile two opinions into one ConsistencyReport.

        Args:
            ai: AI AnalysisResult/AnalysisFactors, or None when unavailable
            pattern: Pattern-engine AnalysisResult/AnalysisFactors
            content: The content both opinions were computed from
        """
        pattern_factors = _factors_of(pattern).clamped()

        if ai is None:
            report = ConsistencyReport(
                is_consistent=True,
                score=PATTERN_ONLY_SCORE,
                issues=[AI_UNAVAILABLE_ISSUE],
                adjustments=adjust_for_content_quality(pattern_factors, content),
                confidence=Confidence.MEDIUM,
            )
            logger.info(f"Consistency: AI unavailable, pattern-only scores for {content.url}")
            return report

        ai_factors = _factors_of(ai).clamped()
        score = 100.0
        variance_penalty, issues = self.compare_scores(ai_factors, pattern_factors)
        score -= variance_penalty
        content_penalty, content_issues = self.validate_against_content(ai_factors, content)
        score -= content_penalty
        issues.extend(content_issues)

        adjustments = adjust_for_content_quality(reconcile_factors(ai_factors, pattern_factors), content)
        confidence = self.determine_confidence(score, len(issues), content)
        report = ConsistencyReport(
            is_consistent=score >= MIN_CONSISTENT_SCORE,
            score=max(0.0, score),
            issues=issues,
            adjustments=adjustments,
            confidence=confidence,
        )
        logger.info(f"Consistency validation for {content.url}: {report.score:.1f}/100 "
                    f"({confidence.value} confidence, {len(issues)} issues)")
        return report


def _merge(first: Iterable[str], second: Iterable[str], cap: int) -> List[str]:
    merged = []
    for item in list(first) + list(second):
        if item not in merged:
            merged.append(item)
    return merged[:cap]


def merge_analysis(
    ai: Optional[AnalysisResult],
    pattern: AnalysisResult,
    report: ConsistencyReport,
    content: ExtractedContent,
    findings: Optional[DeepCrawlFindings] = None,
    verification: Optional[ExternalVerification] = None,
    social: Optional[SocialMediaData] = None,
) -> AnalysisResult:
    """Final analysis: reconciled factors, AI narrative first, pattern lists appended."""
    if ai is not None:
        explanations: Dict[str, str] = dict(ai.explanations)
    else:
        explanations = describe_factors(report.adjustments, content, findings, verification, social)
    if report.issues:
        explanations = {name: f"{text} [Consistency: {report.confidence.value}]"
                        for name, text in explanations.items()}

    ai_lists = ai or AnalysisResult(factors=pattern.factors)
    return AnalysisResult(
        factors=report.adjustments,
        explanations=explanations,
        recommendations=_merge(ai_lists.recommendations, pattern.recommendations, MAX_RECOMMENDATIONS),
        risks=_merge(ai_lists.risks, pattern.risks, MAX_RISKS),
        red_flags=_merge(ai_lists.red_flags, pattern.red_flags, MAX_RED_FLAGS),
        positive_indicators=_merge(ai_lists.positive_indicators, pattern.positive_indicators,
                                   MAX_POSITIVE_INDICATORS),
        project_type=pattern.project_type,
        source='reconciled',
    )


def generate_consistency_report(report: ConsistencyReport) -> str:
    lines = [f"Consistency Score: {report.score:.0f}/100 ({report.confidence.value} confidence)", ""]
    if report.issues:
        lines.append("Consistency Issues:")
        lines.extend(f"- {issue}" for issue in report.issues)
        lines.append("")
    labels = {
        'documentation_quality': 'Documentation Quality',
        'transparency_indicators': 'Transparency Indicators',
        'security_documentation': 'Security Documentation',
        'community_engagement': 'Community Engagement',
        'technical_implementation': 'Technical Implementation',
    }
    lines.append("Final Adjusted Scores:")
    for name, value in report.adjustments.items():
        lines.append(f"- {labels[name]}: {value}/100")
    return "\n".join(lines)
