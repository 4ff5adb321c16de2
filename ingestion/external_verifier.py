"""
External Evidence Verifier

Confirms that team profiles and code repositories claimed by a site actually
exist and show recent activity. Lookups are read-only, run in parallel, and
are cached in the audit manager's TTLCache so repeated audits of the same
project do not hit LinkedIn or the GitHub API again.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup

from data.models import (
    DeepCrawlFindings,
    ExternalVerification,
    ExtractedContent,
    GitHubProfile,
    GitHubRepo,
    LinkedInProfile,
)
from ingestion.cache import TTLCache, cache_key
from ingestion.page_fetcher import HttpClient, get_realistic_headers
from utils.deadline import Deadline

logger = logging.getLogger(__name__)

GITHUB_API = 'https://api.github.com'
REQUEST_TIMEOUT = 10
MAX_PER_CATEGORY = 10
PROFILE_ACTIVE_DAYS = 180
REPO_ACTIVE_DAYS = 90

# Score weights; an empty category contributes nothing.
LINKEDIN_WEIGHT = 40
PROFILE_WEIGHT = 30
REPO_WEIGHT = 30

GITHUB_USER_RE = re.compile(r'github\.com/([^/?#]+)', re.IGNORECASE)
GITHUB_REPO_RE = re.compile(r'github\.com/([^/?#]+)/([^/?#]+)', re.IGNORECASE)
# Reserved github.com paths that are not accounts.
GITHUB_RESERVED = {'orgs', 'features', 'about', 'pricing', 'topics', 'explore', 'login', 'sponsors', 'marketplace'}


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.debug('Unparseable timestamp %r', value)
        return None


def _within_days(timestamp: Optional[datetime], days: int, now: datetime) -> bool:
    return timestamp is not None and timestamp > now - timedelta(days=days)


def _unique(urls: Iterable[str], limit: int = MAX_PER_CATEGORY) -> List[str]:
    seen = []
    for url in urls:
        if url and url not in seen:
            seen.append(url)
    return seen[:limit]


def collect_targets(content: ExtractedContent,
                    findings: Optional[DeepCrawlFindings] = None) -> Tuple[List[str], List[str], List[str]]:
    """Return (linkedin_urls, github_profile_urls, github_repo_urls) worth checking."""
    linkedin = [m.linkedin for m in (findings.team_members if findings else []) if m.linkedin]
    linkedin += [link for link in content.social_links if 'linkedin.com/in/' in link.lower()]

    profiles = []
    for link in content.social_links:
        lowered = link.lower()
        if 'github.com' not in lowered or '/repos/' in lowered:
            continue
        match = GITHUB_USER_RE.search(link)
        if match and match.group(1).lower() not in GITHUB_RESERVED:
            profiles.append(link)

    repos = [link for link in content.code_repositories if GITHUB_REPO_RE.search(link)]
    return _unique(linkedin), _unique(profiles), _unique(repos)


def calculate_trust_score(verification: ExternalVerification) -> int:
    score = 0.0
    linkedin = verification.linkedin_profiles
    if linkedin:
        score += LINKEDIN_WEIGHT * sum(1 for p in linkedin if p.verified) / len(linkedin)
    profiles = verification.github_profiles
    if profiles:
        score += PROFILE_WEIGHT * sum(1 for p in profiles if p.recent_activity) / len(profiles)
    repos = verification.github_repos
    if repos:
        score += REPO_WEIGHT * sum(1 for r in repos if r.is_active) / len(repos)
    return int(round(score))


class ExternalVerifier:
    """Verifies LinkedIn profiles, GitHub accounts and GitHub repositories.

    Args:
        http: Shared HttpClient (rate limited per host)
        cache: Injected TTLCache for lookup results
        max_workers: Parallel lookups
        github_token: Optional token, raises the GitHub API rate limit
        now: Clock returning an aware datetime, for activity windows
    """

    def __init__(self, http: HttpClient, cache: Optional[TTLCache] = None, max_workers: int = 5,
                 github_token: Optional[str] = None,
                 now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.http = http
        self.cache = cache
        self.max_workers = max(1, max_workers)
        self.github_token = github_token
        self.now = now

    def _github_headers(self) -> Dict[str, str]:
        headers = {
            'User-Agent': get_realistic_headers()['User-Agent'],
            'Accept': 'application/vnd.github.v3+json',
        }
        if self.github_token:
            headers['Authorization'] = f'Bearer {self.github_token}'
        return headers

    def _cached(self, kind: str, url: str, lookup: Callable[[str], object]):
        if self.cache is None:
            return lookup(url)
        key = cache_key('verify', kind, url)
        hit = self.cache.get(key)
        if hit is not None:
            logger.debug('Cache hit for %s %s', kind, url)
            return hit
        result = lookup(url)
        # Transient failures are retried on the next audit.
        if result.error is None or result.error == 'HTTP 404':
            self.cache.set(key, result)
        return result

    def verify_linkedin(self, url: str) -> LinkedInProfile:
        try:
            response = self.http.get(url, timeout=REQUEST_TIMEOUT)
            if not response.ok:
                return LinkedInProfile(url=url, error=f'HTTP {response.status_code}')
            soup = BeautifulSoup(response.text, 'lxml')
            title = soup.title.get_text(strip=True) if soup.title else ''
            name = title.split('|')[0].strip() or title.split(' - ')[0].strip()
            meta = (soup.find('meta', attrs={'property': 'og:description'})
                    or soup.find('meta', attrs={'name': 'description'}))
            headline = (meta.get('content') or '').strip()[:200] if meta else ''
            return LinkedInProfile(url=url, name=name, headline=headline, exists=True, verified=bool(name))
        except Exception as e:
            logger.warning('LinkedIn lookup failed for %s: %s', url, e)
            return LinkedInProfile(url=url, error=str(e))

    def verify_github_profile(self, url: str) -> GitHubProfile:
        match = GITHUB_USER_RE.search(url)
        if not match:
            return GitHubProfile(url=url, error='Invalid GitHub URL')
        username = match.group(1)
        try:
            response = self.http.get(f'{GITHUB_API}/users/{username}', timeout=REQUEST_TIMEOUT,
                                     headers=self._github_headers())
            if not response.ok:
                return GitHubProfile(url=url, username=username, error=f'HTTP {response.status_code}')
            data = response.json()
            login = data.get('login') or ''
            updated = data.get('updated_at')
            return GitHubProfile(
                url=url,
                username=login or username,
                exists=True,
                verified=bool(login),
                public_repos=data.get('public_repos') or 0,
                followers=data.get('followers') or 0,
                recent_activity=_within_days(_parse_timestamp(updated), PROFILE_ACTIVE_DAYS, self.now()),
                last_updated=updated,
            )
        except Exception as e:
            logger.warning('GitHub profile lookup failed for %s: %s', url, e)
            return GitHubProfile(url=url, username=username, error=str(e))

    def verify_github_repo(self, url: str) -> GitHubRepo:
        match = GITHUB_REPO_RE.search(url)
        if not match:
            return GitHubRepo(url=url, error='Invalid GitHub repo URL')
        owner, repo = match.group(1), re.sub(r'\.git$', '', match.group(2))
        try:
            response = self.http.get(f'{GITHUB_API}/repos/{owner}/{repo}', timeout=REQUEST_TIMEOUT,
                                     headers=self._github_headers())
            if not response.ok:
                return GitHubRepo(url=url, name=repo, error=f'HTTP {response.status_code}')
            data = response.json()
            full_name = data.get('full_name') or data.get('name') or ''
            pushed = data.get('pushed_at')
            return GitHubRepo(
                url=url,
                name=data.get('name') or repo,
                exists=True,
                verified=bool(full_name),
                stars=data.get('stargazers_count') or 0,
                forks=data.get('forks_count') or 0,
                is_active=_within_days(_parse_timestamp(pushed), REPO_ACTIVE_DAYS, self.now()),
                last_commit=pushed,
            )
        except Exception as e:
            logger.warning('GitHub repo lookup failed for %s: %s', url, e)
            return GitHubRepo(url=url, name=repo, error=str(e))

    def verify(self, linkedin_urls: List[str], github_urls: List[str], repo_urls: List[str],
               deadline: Optional[Deadline] = None) -> ExternalVerification:
        """Run every lookup in parallel and aggregate the results.

        A lookup that fails, or is still running when the deadline expires,
        is recorded as unverified; the batch always completes.
        """
        deadline = deadline or Deadline.never()
        jobs = (
            [('linkedin', url, self.verify_linkedin) for url in linkedin_urls[:MAX_PER_CATEGORY]]
            + [('github_profile', url, self.verify_github_profile) for url in github_urls[:MAX_PER_CATEGORY]]
            + [('github_repo', url, self.verify_github_repo) for url in repo_urls[:MAX_PER_CATEGORY]]
        )
        results: Dict[Tuple[str, str], object] = {}
        if jobs:
            logger.info('Verifying %d external sources', len(jobs))
            executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(jobs)))
            futures = {executor.submit(self._cached, kind, url, fn): (kind, url) for kind, url, fn in jobs}
            try:
                for future in as_completed(futures, timeout=deadline.remaining()):
                    kind, url = futures[future]
                    try:
                        results[(kind, url)] = future.result()
                    except Exception as e:
                        logger.warning('Verification of %s failed: %s', url, e)
            except FuturesTimeout:
                logger.warning('Deadline expired during external verification')
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        def pick(kind, urls, record_type):
            return [results.get((kind, url)) or record_type(url=url, error='Lookup not completed')
                    for url in urls[:MAX_PER_CATEGORY]]

        verification = ExternalVerification(
            linkedin_profiles=pick('linkedin', linkedin_urls, LinkedInProfile),
            github_profiles=pick('github_profile', github_urls, GitHubProfile),
            github_repos=pick('github_repo', repo_urls, GitHubRepo),
        )
        verification.verified_team_members = (
            sum(1 for p in verification.linkedin_profiles if p.verified)
            + sum(1 for p in verification.github_profiles if p.verified)
        )
        verification.verified_repos = sum(1 for r in verification.github_repos if r.verified)
        verification.overall_trust_score = calculate_trust_score(verification)
        logger.info('External verification complete: %d team members, %d repos verified, score %d',
                    verification.verified_team_members, verification.verified_repos,
                    verification.overall_trust_score)
        return verification

    def verify_content(self, content: ExtractedContent, findings: Optional[DeepCrawlFindings] = None,
                       deadline: Optional[Deadline] = None) -> ExternalVerification:
        linkedin, profiles, repos = collect_targets(content, findings)
        return self.verify(linkedin, profiles, repos, deadline=deadline)


def generate_summary(verification: ExternalVerification) -> str:
    lines = ['EXTERNAL SOURCE VERIFICATION:', '']

    linkedin = verification.linkedin_profiles
    if linkedin:
        verified = sum(1 for p in linkedin if p.verified)
        lines.append(f'LinkedIn Profiles: {verified}/{len(linkedin)} verified')
        for profile in linkedin:
            if profile.verified:
                lines.append(f'  [verified] {profile.name} - {profile.headline or "Profile exists"}')
            else:
                lines.append(f'  [not found] {profile.url} - Not found or inaccessible')
        lines.append('')

    profiles = verification.github_profiles
    if profiles:
        lines.append(f'GitHub Profiles: {sum(1 for p in profiles if p.verified)}/{len(profiles)} verified')
        for profile in profiles:
            if profile.verified:
                activity = 'Active' if profile.recent_activity else 'Inactive'
                lines.append(f'  [verified] {profile.username} - {profile.public_repos} repos, '
                             f'{profile.followers} followers ({activity})')
            else:
                lines.append(f'  [not found] {profile.url} - Not found')
        lines.append('')

    repos = verification.github_repos
    if repos:
        lines.append(f'GitHub Repositories: {verification.verified_repos}/{len(repos)} verified')
        for repo in repos:
            if repo.verified:
                activity = 'Active' if repo.is_active else 'Inactive'
                lines.append(f'  [verified] {repo.name} - {repo.stars} stars, {repo.forks} forks ({activity})')
            else:
                lines.append(f'  [not found] {repo.url} - Not found')
        lines.append('')

    lines.append(f'Overall Verification Score: {verification.overall_trust_score}/100')
    return '\n'.join(lines)
