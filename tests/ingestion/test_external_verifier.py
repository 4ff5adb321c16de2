import threading
from datetime import datetime, timezone

from data.models import (
    DeepCrawlFindings,
    ExternalVerification,
    ExtractedContent,
    GitHubProfile,
    GitHubRepo,
    LinkedInProfile,
    TeamMember,
)
from ingestion.cache import TTLCache
from ingestion.external_verifier import (
    ExternalVerifier,
    calculate_trust_score,
    collect_targets,
    generate_summary,
)

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, status_code=200, text='', payload=None):
        self.status_code = status_code
        self.text = text
        self._payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload


class FakeHttp:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, timeout=10, headers=None, **kwargs):
        with self._lock:
            self.calls.append(url)
        route = self.routes.get(url)
        if isinstance(route, Exception):
            raise route
        return route or FakeResponse(404)


LINKEDIN_HTML = """
<html><head>
  <title>Alice Nakamoto | LinkedIn</title>
  <meta property="og:description" content="Founder at Example Protocol">
</head><body></body></html>
"""


def make_verifier(routes, cache=None):
    http = FakeHttp(routes)
    return ExternalVerifier(http, cache=cache, max_workers=3, now=lambda: NOW), http


class TestCollectTargets:
    def test_sources_and_filters(self):
        content = ExtractedContent(
            url='https://example.com', title='', description='', main_content='',
            social_links=(
                'https://linkedin.com/in/bob',
                'https://linkedin.com/company/example',
                'https://github.com/example-proto',
                'https://github.com/orgs/example-proto',
                'https://api.github.com/repos/example-proto/core',
            ),
            code_repositories=('https://github.com/example-proto/core', 'https://gitlab.com/example/core'),
        )
        findings = DeepCrawlFindings(team_members=[
            TeamMember('Alice', 'CEO', 'https://linkedin.com/in/alice'),
            TeamMember('Carol', 'CTO'),
        ]).freeze()

        linkedin, profiles, repos = collect_targets(content, findings)

        assert linkedin == ['https://linkedin.com/in/alice', 'https://linkedin.com/in/bob']
        assert profiles == ['https://github.com/example-proto']
        assert repos == ['https://github.com/example-proto/core']

    def test_capped_per_category(self):
        content = ExtractedContent(
            url='https://example.com', title='', description='', main_content='',
            social_links=tuple(f'https://linkedin.com/in/p{i}' for i in range(15)),
        )
        linkedin, _, _ = collect_targets(content)
        assert len(linkedin) == 10


def test_trust_score_weights_each_category_by_ratio():
    verification = ExternalVerification(
        linkedin_profiles=[LinkedInProfile('a', verified=True), LinkedInProfile('b')],
        github_profiles=[GitHubProfile('c', recent_activity=True)],
        github_repos=[GitHubRepo('d', is_active=True), GitHubRepo('e')],
    )
    assert calculate_trust_score(verification) == 65
    assert calculate_trust_score(ExternalVerification()) == 0


class TestLookups:
    def test_linkedin_profile_parsed_from_title(self):
        verifier, _ = make_verifier({'https://linkedin.com/in/alice': FakeResponse(text=LINKEDIN_HTML)})
        profile = verifier.verify_linkedin('https://linkedin.com/in/alice')
        assert profile.verified
        assert profile.name == 'Alice Nakamoto'
        assert profile.headline == 'Founder at Example Protocol'

    def test_linkedin_http_error(self):
        verifier, _ = make_verifier({'https://linkedin.com/in/gone': FakeResponse(999)})
        profile = verifier.verify_linkedin('https://linkedin.com/in/gone')
        assert not profile.verified
        assert profile.error == 'HTTP 999'

    def test_github_profile_recent_activity(self):
        payload = {'login': 'example-proto', 'public_repos': 12, 'followers': 40,
                   'updated_at': '2025-11-01T00:00:00Z'}
        verifier, _ = make_verifier({
            'https://api.github.com/users/example-proto': FakeResponse(payload=payload),
        })
        profile = verifier.verify_github_profile('https://github.com/example-proto')
        assert profile.verified and profile.recent_activity
        assert (profile.public_repos, profile.followers) == (12, 40)

    def test_github_repo_activity_window(self):
        verifier, _ = make_verifier({
            'https://api.github.com/repos/example-proto/core': FakeResponse(payload={
                'name': 'core', 'full_name': 'example-proto/core', 'stargazers_count': 250,
                'forks_count': 30, 'pushed_at': '2025-12-20T00:00:00Z'}),
            'https://api.github.com/repos/example-proto/old': FakeResponse(payload={
                'name': 'old', 'full_name': 'example-proto/old', 'pushed_at': '2025-06-01T00:00:00Z'}),
        })
        active = verifier.verify_github_repo('https://github.com/example-proto/core.git')
        stale = verifier.verify_github_repo('https://github.com/example-proto/old')
        assert active.verified and active.is_active and active.stars == 250
        assert stale.verified and not stale.is_active

    def test_invalid_repo_url(self):
        verifier, http = make_verifier({})
        assert verifier.verify_github_repo('https://example.com/nothing').error == 'Invalid GitHub repo URL'
        assert http.calls == []

    def test_network_error_recorded_not_raised(self):
        verifier, _ = make_verifier({'https://api.github.com/users/flaky': ConnectionError('reset')})
        profile = verifier.verify_github_profile('https://github.com/flaky')
        assert not profile.verified
        assert profile.error == 'reset'


class TestVerify:
    def test_aggregates_counts_and_score(self):
        verifier, _ = make_verifier({
            'https://linkedin.com/in/alice': FakeResponse(text=LINKEDIN_HTML),
            'https://api.github.com/repos/example-proto/core': FakeResponse(payload={
                'name': 'core', 'full_name': 'example-proto/core', 'pushed_at': '2025-12-20T00:00:00Z'}),
        })
        result = verifier.verify(
            ['https://linkedin.com/in/alice', 'https://linkedin.com/in/ghost'],
            [],
            ['https://github.com/example-proto/core'],
        )
        assert [p.url for p in result.linkedin_profiles] == ['https://linkedin.com/in/alice',
                                                             'https://linkedin.com/in/ghost']
        assert result.verified_team_members == 1
        assert result.verified_repos == 1
        assert result.overall_trust_score == 50

    def test_empty_batch(self):
        verifier, http = make_verifier({})
        result = verifier.verify([], [], [])
        assert result.overall_trust_score == 0
        assert http.calls == []

    def test_cache_keeps_definitive_results_only(self):
        cache = TTLCache()
        verifier, http = make_verifier({
            'https://linkedin.com/in/alice': FakeResponse(text=LINKEDIN_HTML),
            'https://linkedin.com/in/flaky': ConnectionError('reset'),
        }, cache=cache)

        for _ in range(2):
            verifier.verify(['https://linkedin.com/in/alice', 'https://linkedin.com/in/flaky'], [], [])

        assert http.calls.count('https://linkedin.com/in/alice') == 1
        assert http.calls.count('https://linkedin.com/in/flaky') == 2


def test_generate_summary():
    verification = ExternalVerification(
        linkedin_profiles=[LinkedInProfile('https://linkedin.com/in/alice', name='Alice', verified=True),
                           LinkedInProfile('https://linkedin.com/in/ghost')],
        github_repos=[GitHubRepo('https://github.com/x/core', name='core', verified=True, stars=5, forks=1)],
        verified_repos=1,
        overall_trust_score=40,
    )
    summary = generate_summary(verification)
    assert summary.startswith('EXTERNAL SOURCE VERIFICATION:')
    assert 'LinkedIn Profiles: 1/2 verified' in summary
    assert '[verified] Alice - Profile exists' in summary
    assert '[not found] https://linkedin.com/in/ghost' in summary
    assert 'core - 5 stars, 1 forks (Inactive)' in summary
    assert summary.endswith('Overall Verification Score: 40/100')
