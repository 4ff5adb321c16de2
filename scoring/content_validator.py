"""
Content validation and quality assessment for extracted website content.
"""

import logging
import re

from data.models import ExtractedContent
from scoring.types import ContentMetrics, QualityTier, ValidationResult

logger = logging.getLogger(__name__)

MIN_WORD_COUNT = 100
MIN_TITLE_LENGTH = 5
MIN_DESCRIPTION_LENGTH = 20
MAX_DUPLICATE_RATIO = 0.3
MIN_STRUCTURED_RATIO = 0.3
MIN_TEAM_CHARS = 100
MIN_TOKENOMICS_CHARS = 100
MIN_SENTENCE_CHARS = 20

SENTENCE_SPLIT = re.compile(r'[.!?]+')


def _word_count(text: str) -> int:
    return len(text.split())


def duplicate_ratio(text: str) -> float:
    """1 - unique/total over sentences longer than 20 chars; 0 below two sentences."""
    sentences = [s.strip() for s in SENTENCE_SPLIT.split(text) if len(s.strip()) > MIN_SENTENCE_CHARS]
    if len(sentences) < 2:
        return 0.0
    unique = {s.lower() for s in sentences}
    return 1 - len(unique) / len(sentences)


def calculate_metrics(content: ExtractedContent) -> ContentMetrics:
    all_text = ' '.join([content.title, content.description, content.main_content,
                         content.team_info, content.tokenomics, content.security_info])
    total_words = _word_count(all_text)
    structured_words = _word_count(' '.join([content.team_info, content.tokenomics, content.security_info]))
    return ContentMetrics(
        total_word_count=total_words,
        title_length=len(content.title),
        description_length=len(content.description),
        documentation_sections=len(content.documentation),
        social_links_count=len(content.social_links),
        code_repository_count=len(content.code_repositories),
        structured_content_ratio=structured_words / total_words if total_words else 0.0,
        duplicate_content_ratio=duplicate_ratio(all_text),
    )


def quality_tier(score: int) -> QualityTier:
    if score >= 80:
        return QualityTier.HIGH
    if score >= 60:
        return QualityTier.MEDIUM
    if score >= 40:
        return QualityTier.LOW
    return QualityTier.INSUFFICIENT


def validate_content(content: ExtractedContent) -> ValidationResult:
    """
    Score extraction completeness starting from 100.

    Each missing or thin dimension subtracts a fixed penalty. Content is still
    valid when it is sparse but reaches the minimum word count.
    """
    metrics = calculate_metrics(content)
    issues = []
    recommendations = []
    score = 100

    def penalize(points: int, issue: str, recommendation: str):
        nonlocal score
        score -= points
        issues.append(issue)
        recommendations.append(recommendation)

    if metrics.total_word_count < MIN_WORD_COUNT:
        penalize(30, f"Insufficient content: {metrics.total_word_count} words (minimum: {MIN_WORD_COUNT})",
                 "Request additional documentation URLs or pages")
    if metrics.title_length < MIN_TITLE_LENGTH:
        penalize(10, f"Title too short: {metrics.title_length} characters",
                 "Verify the website has a proper title tag")
    if metrics.description_length < MIN_DESCRIPTION_LENGTH:
        penalize(10, f"Description too short: {metrics.description_length} characters",
                 "Look for meta description or introductory content")
    if metrics.documentation_sections == 0:
        penalize(20, "No structured documentation sections found",
                 "Check for documentation, whitepaper, or guide sections")
    if metrics.duplicate_content_ratio > MAX_DUPLICATE_RATIO:
        penalize(15, f"High duplicate content ratio: {metrics.duplicate_content_ratio * 100:.1f}%",
                 "Content may be auto-generated or low quality")
    if metrics.structured_content_ratio < MIN_STRUCTURED_RATIO:
        penalize(10, "Low structured content ratio - mostly unstructured text",
                 "Look for more specific sections like team, tokenomics, security")
    if len(content.team_info) < MIN_TEAM_CHARS:
        penalize(15, "Insufficient team information", "Look for team/about section with member details")
    if len(content.tokenomics) < MIN_TOKENOMICS_CHARS:
        penalize(15, "No tokenomics information found",
                 "Search for token distribution, supply, or economics information")
    if metrics.social_links_count == 0:
        penalize(10, "No social media links found",
                 "Look for Twitter, Discord, Telegram, or other social links")
    if metrics.code_repository_count == 0:
        penalize(10, "No code repositories found",
                 "Search for GitHub, GitLab, or other code repository links")

    tier = quality_tier(score)
    is_valid = tier != QualityTier.INSUFFICIENT or metrics.total_word_count >= MIN_WORD_COUNT
    result = ValidationResult(
        is_valid=is_valid,
        quality=tier,
        score=max(0, score),
        issues=issues,
        recommendations=recommendations,
        metrics=metrics,
    )
    logger.info(f"Content validation for {content.url}: {tier.value} ({result.score}/100, {len(issues)} issues)")
    return result


def generate_validation_report(validation: ValidationResult) -> str:
    m = validation.metrics
    lines = [
        "Content Validation Report",
        "========================",
        f"Status: {'Valid' if validation.is_valid else 'Invalid'}",
        f"Quality: {validation.quality.value.upper()}",
        f"Score: {validation.score}/100",
        "",
        "Metrics:",
        f"- Total words: {m.total_word_count}",
        f"- Documentation sections: {m.documentation_sections}",
        f"- Social links: {m.social_links_count}",
        f"- Code repositories: {m.code_repository_count}",
        f"- Structured content: {m.structured_content_ratio * 100:.1f}%",
        "",
    ]
    if validation.issues:
        lines.append("Issues Found:")
        lines.extend(f"- {issue}" for issue in validation.issues)
        lines.append("")
    if validation.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"- {rec}" for rec in validation.recommendations)
    return "\n".join(lines)
