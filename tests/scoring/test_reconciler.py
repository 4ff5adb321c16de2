from data.models import ExtractedContent
from scoring.reconciler import (
    AI_UNAVAILABLE_ISSUE,
    ConsistencyReconciler,
    adjust_for_content_quality,
    generate_consistency_report,
    merge_analysis,
    reconcile_factors,
)
from scoring.types import AnalysisFactors, AnalysisResult, Confidence, ConsistencyReport, ProjectType


def uniform(value):
    return AnalysisFactors(value, value, value, value, value)


def empty_content():
    return ExtractedContent(url='https://example.com', title='', description='', main_content='')


def rich_content():
    return ExtractedContent(
        url='https://example.com',
        title='Example Protocol',
        description='Lending market',
        main_content='Example protocol overview. ' * 100,
        documentation=tuple(f'Section {i}' for i in range(5)),
        team_info='Team bio. ' * 60,
        security_info='Audited by two firms. ' * 12,
        social_links=tuple(f'https://social{i}.example' for i in range(5)),
        code_repositories=('https://github.com/example/core', 'https://github.com/example/sdk'),
    )


def pattern_result(factors, **lists):
    return AnalysisResult(factors=factors, project_type=ProjectType.DEFI, source='pattern', **lists)


class TestFactorMath:
    def test_convergent_factors_take_ai_value(self):
        merged = reconcile_factors(uniform(80), uniform(70))
        assert merged == uniform(80)

    def test_divergent_factors_blend(self):
        merged = reconcile_factors(AnalysisFactors(90, 75, 0, 0, 0), AnalysisFactors(50, 60, 0, 0, 0))
        assert merged.documentation_quality == 82
        assert merged.transparency_indicators == 72

    def test_content_quality_penalties(self):
        assert adjust_for_content_quality(AnalysisFactors(50, 40, 40, 40, 40), empty_content()) == \
            AnalysisFactors(30, 25, 20, 15, 20)

    def test_content_quality_bonuses_clamp(self):
        assert adjust_for_content_quality(uniform(95), rich_content()) == uniform(100)

    def test_adjustment_returns_copy(self):
        factors = uniform(50)
        adjust_for_content_quality(factors, empty_content())
        assert factors == uniform(50)


class TestReconcile:
    def test_agreement_on_rich_content(self):
        report = ConsistencyReconciler().reconcile(uniform(90), uniform(85), rich_content())

        assert report.is_consistent
        assert report.score == 100
        assert report.issues == []
        assert report.confidence == Confidence.HIGH
        assert report.adjustments == uniform(100)

    def test_disagreement_and_unsupported_claims(self):
        report = ConsistencyReconciler().reconcile(uniform(95), uniform(40), empty_content())

        assert report.score == 22.5
        assert not report.is_consistent
        assert report.confidence == Confidence.LOW
        assert len(report.issues) == 10
        assert report.issues[0] == ('High variance in documentation_quality: AI=95, Pattern=40 (diff: 55)')
        assert 'High technical score but no code repositories found' in report.issues
        assert report.adjustments == AnalysisFactors(64, 69, 64, 59, 64)

    def test_accepts_analysis_results(self):
        reconciler = ConsistencyReconciler()
        ai = AnalysisResult(factors=uniform(90), source='ai')
        assert reconciler.reconcile(ai, pattern_result(uniform(85)), rich_content()).score == 100

    def test_ai_unavailable(self):
        report = ConsistencyReconciler().reconcile(None, AnalysisFactors(50, 40, 40, 40, 40), empty_content())

        assert report.is_consistent
        assert report.score == 85
        assert report.issues == [AI_UNAVAILABLE_ISSUE]
        assert report.confidence == Confidence.MEDIUM
        assert report.adjustments == AnalysisFactors(30, 25, 20, 15, 20)

    def test_variance_penalty(self):
        penalty, issues = ConsistencyReconciler().compare_scores(uniform(90), uniform(50))
        assert penalty == 20
        assert len(issues) == 5

    def test_small_variance_is_not_an_issue(self):
        penalty, issues = ConsistencyReconciler().compare_scores(uniform(90), uniform(65))
        assert (penalty, issues) == (0, [])


class TestMerge:
    def test_pattern_only_merge(self):
        content = empty_content()
        pattern = pattern_result(uniform(40), red_flags=[f'Flag {i}' for i in range(8)],
                                 positive_indicators=['Open source code'])
        report = ConsistencyReconciler().reconcile(None, pattern, content)
        merged = merge_analysis(None, pattern, report, content)

        assert merged.source == 'reconciled'
        assert merged.project_type == ProjectType.DEFI
        assert merged.factors == report.adjustments
        assert merged.red_flags == [f'Flag {i}' for i in range(6)]
        assert all(text.endswith(' [Consistency: medium]') for text in merged.explanations.values())
        assert merged.explanations['documentation_quality'].startswith('Documentation quality is')

    def test_ai_lists_first_and_deduplicated(self):
        content = rich_content()
        ai = AnalysisResult(
            factors=uniform(90),
            explanations={'documentation_quality': 'Extensive docs.'},
            recommendations=[f'AI rec {i}' for i in range(6)],
            red_flags=['Admin keys', 'Unverified contracts'],
            source='ai',
        )
        pattern = pattern_result(uniform(85), recommendations=[f'Pattern rec {i}' for i in range(6)],
                                 red_flags=['Unverified contracts', 'Small community'])
        report = ConsistencyReconciler().reconcile(ai, pattern, content)
        merged = merge_analysis(ai, pattern, report, content)

        assert merged.red_flags == ['Admin keys', 'Unverified contracts', 'Small community']
        assert merged.recommendations == [f'AI rec {i}' for i in range(6)] + [f'Pattern rec {i}' for i in range(4)]
        assert merged.explanations == {'documentation_quality': 'Extensive docs.'}


def test_consistency_report_text():
    report = ConsistencyReport(
        is_consistent=False,
        score=62.5,
        issues=['High variance in community_engagement: AI=90, Pattern=40 (diff: 50)'],
        adjustments=AnalysisFactors(70, 60, 50, 40, 30),
        confidence=Confidence.LOW,
    )
    text = generate_consistency_report(report)
    lines = text.splitlines()
    assert lines[0] == 'Consistency Score: 62/100 (low confidence)'
    assert '- High variance in community_engagement: AI=90, Pattern=40 (diff: 50)' in lines
    assert '- Community Engagement: 40/100' in lines
    assert lines[-1] == '- Technical Implementation: 30/100'
