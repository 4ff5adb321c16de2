from data.models import ExtractedContent
from scoring.content_validator import (
    calculate_metrics,
    duplicate_ratio,
    generate_validation_report,
    quality_tier,
    validate_content,
)
from scoring.types import QualityTier


def sentences(prefix, count):
    return ' '.join(f'{prefix} sentence number {i} carries distinct detail about the project.' for i in range(count))


def rich_content():
    return ExtractedContent(
        url='https://example.com',
        title='Example Protocol',
        description='A lending market for long-tail assets on Ethereum',
        main_content=sentences('Main', 10),
        documentation=('Getting started guide', 'API reference'),
        team_info=sentences('Team', 4),
        tokenomics=sentences('Token', 4),
        security_info=sentences('Security', 4),
        social_links=('https://twitter.com/example',),
        code_repositories=('https://github.com/example/core',),
    )


def test_sparse_content_is_insufficient():
    content = ExtractedContent(url='https://example.com', title='', description='', main_content='x' * 50)
    result = validate_content(content)

    assert result.quality == QualityTier.INSUFFICIENT
    assert result.score <= 40
    assert result.score == 0
    assert not result.is_valid
    assert 'No structured documentation sections found' in result.issues
    assert len(result.issues) == len(result.recommendations)


def test_complete_content_has_no_issues():
    result = validate_content(rich_content())
    assert result.issues == []
    assert result.score == 100
    assert result.quality == QualityTier.HIGH
    assert result.is_valid


def test_missing_tokenomics_and_repos():
    content = rich_content().with_updates(tokenomics='', code_repositories=())
    result = validate_content(content)
    assert result.score == 75
    assert result.quality == QualityTier.MEDIUM
    assert 'No tokenomics information found' in result.issues
    assert 'No code repositories found' in result.issues


def test_metrics():
    metrics = calculate_metrics(rich_content())
    assert metrics.documentation_sections == 2
    assert metrics.social_links_count == 1
    assert metrics.code_repository_count == 1
    assert 0.3 < metrics.structured_content_ratio < 1
    assert metrics.duplicate_content_ratio == 0


def test_duplicate_ratio():
    text = ('This sentence is long enough to count. This sentence is long enough to count. '
            'Another distinct sentence of decent length.')
    assert round(duplicate_ratio(text), 3) == 0.333
    assert duplicate_ratio('One short line.') == 0.0


def test_quality_tiers():
    assert [quality_tier(s) for s in (80, 79, 60, 59, 40, 39)] == [
        QualityTier.HIGH, QualityTier.MEDIUM, QualityTier.MEDIUM,
        QualityTier.LOW, QualityTier.LOW, QualityTier.INSUFFICIENT,
    ]


def test_report():
    content = ExtractedContent(url='https://example.com', title='', description='', main_content='tiny')
    report = generate_validation_report(validate_content(content))
    assert 'Status: Invalid' in report
    assert 'Quality: INSUFFICIENT' in report
    assert '- Documentation sections: 0' in report
    assert 'Recommendations:' in report
