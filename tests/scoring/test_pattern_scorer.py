import pytest

from data.models import DeepCrawlFindings, ExternalVerification, ExtractedContent, SocialMediaData
from scoring.pattern_scorer import PatternScoringEngine, describe_factors, length_bonus
from scoring.types import AnalysisFactors, ProjectType


def make_content(text='', **fields):
    return ExtractedContent(url='https://example.com', title='', description='', main_content=text, **fields)


@pytest.fixture
def engine():
    return PatternScoringEngine()


@pytest.mark.parametrize('length, bonus', [(0, 0), (50, 0), (51, 10), (201, 15), (501, 25)])
def test_length_bonus(length, bonus):
    assert length_bonus(length) == bonus


class TestFactors:
    def test_floors_apply_without_evidence(self, engine):
        assert engine.score_factors(make_content()) == AnalysisFactors(50, 40, 40, 40, 40)

    def test_keyword_score(self, engine):
        assert engine.keyword_score('docs guide', engine.rules.documentation_keywords, 0) == 56
        assert engine.keyword_score('docs guide', engine.rules.documentation_keywords, 600) == 81

    def test_counts_drive_community_and_technical(self, engine):
        content = make_content(
            'see github',
            social_links=tuple(f'https://s{i}.example' for i in range(3)),
            code_repositories=('https://github.com/a/b', 'https://github.com/a/c'),
        )
        factors = engine.score_factors(content)
        assert factors.community_engagement == 60
        assert factors.technical_implementation == 80

    def test_evidence_bonuses(self, engine):
        verification = ExternalVerification(verified_team_members=1, verified_repos=1)
        social = SocialMediaData(total_followers=60_000)
        factors = engine.score_factors(make_content(), verification, social)
        assert factors.transparency_indicators == 60
        assert factors.technical_implementation == 55
        assert factors.community_engagement == 60


class TestProjectType:
    def test_defi(self, engine):
        assert engine.detect_project_type(make_content('Our DeFi lending protocol on Ethereum')) == ProjectType.DEFI

    def test_chain_reference_alone_is_defi(self, engine):
        text = 'Contract 0x' + 'a' * 40
        assert engine.detect_project_type(make_content(text)) == ProjectType.DEFI

    def test_portfolio(self, engine):
        text = 'My portfolio of freelance work. Hire me. Resume available. My skills include design. About me.'
        assert engine.detect_project_type(make_content(text)) == ProjectType.PORTFOLIO

    def test_business(self, engine):
        text = 'Our company offers consulting services. See our products and our clients.'
        assert engine.detect_project_type(make_content(text)) == ProjectType.BUSINESS

    def test_general(self, engine):
        assert engine.detect_project_type(make_content('Fresh sourdough every morning')) == ProjectType.GENERAL


class TestRedFlags:
    def test_suspicious_language_names_the_phrase(self, engine):
        flags = engine.detect_red_flags(make_content('DeFi yield with Guaranteed Returns'))
        assert flags[0] == ('Critical: Suspicious marketing language detected (guaranteed returns) '
                            '- Verify claims independently')

    def test_sparse_defi_site(self, engine):
        flags = engine.detect_red_flags(make_content('DeFi lending app'))
        assert [flag.split(':')[0] for flag in flags] == ['Moderate', 'Moderate', 'High Risk', 'Moderate']
        assert 'Limited team information' in flags[0]
        assert 'No security information found' in flags[2]

    def test_governance_and_audits_suppress_defi_flags(self, engine):
        text = ('DeFi protocol with on-chain governance. Audited security. Token distribution published. '
                'Code on github.')
        assert engine.detect_red_flags(make_content(text)) == []

    def test_portfolio_future_dates(self, engine):
        text = ('My portfolio of freelance work. Hire me. Resume available. My skills include design. '
                'About me: launched my studio in 2027. 0+ clients served.')
        flags = engine.detect_red_flags(make_content(text), current_year=2026)
        assert flags[0].startswith('Inconsistent dates on development journey')
        assert flags[1].startswith('Conflicting metrics display')

    def test_general_site(self, engine):
        flags = engine.detect_red_flags(make_content('Bakery website coming soon'))
        assert flags == [
            'Warning: No technical documentation found - May indicate incomplete project',
            'Warning: No social media presence found - May indicate lack of community engagement',
            'High Risk: "Coming soon" content with limited information - Incomplete project',
        ]

    def test_placeholder_content(self, engine):
        flags = engine.detect_red_flags(make_content('Lorem ipsum dolor sit amet'))
        assert 'Critical: Placeholder content detected - Website appears incomplete' in flags
        assert any('(lorem ipsum)' in flag for flag in flags)


class TestPositiveIndicators:
    def test_text_rules_in_table_order(self, engine):
        content = make_content('Audited by OpenZeppelin. Bug bounty on Immunefi. Governed by a DAO.')
        assert engine.detect_positive_indicators(content) == [
            'Excellent: Audited by top-tier security firm - Industry-leading security standards',
            'Strong: Active bug bounty program - Ongoing security monitoring and rewards',
            'Excellent: DAO governance model - Decentralized decision-making structure',
        ]

    def test_documentation_requires_faq(self, engine):
        message = 'Good: Documentation available - Multiple resource types including FAQ'
        assert message not in engine.detect_positive_indicators(make_content('Read the docs'))
        assert message in engine.detect_positive_indicators(make_content('Read the docs and FAQ'))

    def test_structural_indicators(self, engine):
        content = make_content(
            'Welcome',
            social_links=tuple(f'https://s{i}.example' for i in range(4)),
            code_repositories=('https://gitlab.com/example/core',),
        )
        positives = engine.detect_positive_indicators(content)
        assert 'Good: GitHub repository available - Code transparency and community contributions' in positives
        assert positives[-1] == 'Strong: Multi-platform social presence - Active social media across platforms'


def test_analyze(engine):
    result = engine.analyze(make_content('DeFi lending app'))
    assert result.source == 'pattern'
    assert result.project_type == ProjectType.DEFI
    assert len(result.red_flags) == 4
    assert result.explanations['community_engagement'] == 'Found 0 social media links. Score: 40/100'
    assert result.risks[-1].startswith('Temporal risk')


def test_describe_factors_prefers_evidence():
    findings = DeepCrawlFindings(bug_bounty_found=True, bug_bounty_details='Immunefi program').freeze()
    verification = ExternalVerification(verified_team_members=2, verified_repos=1)
    text = describe_factors(AnalysisFactors(85, 65, 45, 30, 90), make_content(), findings, verification)

    assert text['documentation_quality'].startswith('Documentation quality is comprehensive')
    assert 'with 2 verified team member(s)' in text['transparency_indicators']
    assert text['security_documentation'].startswith('Security practices are basic with active bug bounty program')
    assert text['community_engagement'] == 'Community engagement is limited with 0 social media platform(s).'
    assert text['technical_implementation'] == ('Technical implementation is excellent with 1 verified '
                                                'repository(ies).')
