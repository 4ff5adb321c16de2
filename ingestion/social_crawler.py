"""Community presence lookups for a project's social links.

One link per platform is checked. Each lookup is independent and read-only,
so they run in parallel; a failed platform is recorded on its channel and
never raised.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from typing import Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from data.models import SocialChannel, SocialMediaData
from ingestion.cache import TTLCache, cache_key
from ingestion.page_fetcher import HttpClient, get_realistic_headers
from utils.deadline import Deadline

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10
GITHUB_API = 'https://api.github.com'

NUMBER_SUFFIXES = {'K': 1_000, 'M': 1_000_000, 'B': 1_000_000_000}
FOLLOWERS_RE = re.compile(r'(\d+(?:,\d+)*(?:\.\d+)?[KMB]?)\s*Followers', re.IGNORECASE)
TELEGRAM_MEMBERS_RE = re.compile(r'(\d+(?:[, ]\d+)*(?:\.\d+)?[KMB]?)\s*(?:members|subscribers)', re.IGNORECASE)

# (platform, predicate over a lowercased link); first matching link per platform is crawled.
PLATFORM_MATCHERS: Tuple[Tuple[str, Callable[[str], bool]], ...] = (
    ('twitter', lambda u: 'twitter.com' in u or re.search(r'//(?:www\.)?x\.com/', u) is not None),
    ('github', lambda u: 'github.com' in u and '/repos/' not in u),
    ('discord', lambda u: 'discord.gg' in u or 'discord.com/invite' in u),
    ('medium', lambda u: 'medium.com' in u),
    ('reddit', lambda u: 'reddit.com/r/' in u),
    ('telegram', lambda u: 't.me/' in u or 'telegram.me' in u),
)

# Which aggregate a platform's audience counts toward.
FOLLOWER_PLATFORMS = {'twitter', 'github', 'medium'}

AUDIENCE_TIERS = ((100_000, 50), (50_000, 40), (10_000, 30), (5_000, 20), (1_000, 10))


def extract_number(text: str, pattern: re.Pattern) -> int:
    """First count matched by ``pattern``, honoring K/M/B suffixes; 0 if absent."""
    match = pattern.search(text or '')
    if not match:
        return 0
    raw = match.group(1).replace(',', '').replace(' ', '').upper()
    multiplier = 1
    if raw and raw[-1] in NUMBER_SUFFIXES:
        multiplier = NUMBER_SUFFIXES[raw[-1]]
        raw = raw[:-1]
    try:
        return int(float(raw) * multiplier)
    except ValueError:
        return 0


def select_platform_links(social_links: List[str]) -> Dict[str, str]:
    selected: Dict[str, str] = {}
    for platform, matches in PLATFORM_MATCHERS:
        for link in social_links:
            if matches(link.lower()):
                selected[platform] = link
                break
    return selected


def calculate_community_score(data: SocialMediaData) -> int:
    score = min(30, data.active_channels * 6)
    score += min(20, data.verified_channels * 10)
    total = data.total_community
    for threshold, points in AUDIENCE_TIERS:
        if total >= threshold:
            score += points
            break
    return min(100, score)


def _meta(soup: BeautifulSoup, prop: str = None, name: str = None) -> str:
    tag = soup.find('meta', attrs={'property': prop}) if prop else soup.find('meta', attrs={'name': name})
    return (tag.get('content') or '').strip() if tag else ''


class SocialMediaCrawler:
    """Looks up Twitter/X, GitHub, Discord, Medium, Reddit and Telegram presence."""

    def __init__(self, http: HttpClient, cache: Optional[TTLCache] = None, max_workers: int = 5,
                 github_token: Optional[str] = None):
        self.http = http
        self.cache = cache
        self.max_workers = max(1, max_workers)
        self.github_token = github_token
        self._lookups = {
            'twitter': self.crawl_twitter,
            'github': self.crawl_github,
            'discord': self.crawl_discord,
            'medium': self.crawl_medium,
            'reddit': self.crawl_reddit,
            'telegram': self.crawl_telegram,
        }

    def _get(self, url: str, headers: Optional[Dict[str, str]] = None):
        return self.http.get(url, timeout=REQUEST_TIMEOUT, headers=headers)

    def _json_headers(self, github: bool = False) -> Dict[str, str]:
        headers = {'User-Agent': get_realistic_headers()['User-Agent']}
        if github:
            headers['Accept'] = 'application/vnd.github.v3+json'
            if self.github_token:
                headers['Authorization'] = f'Bearer {self.github_token}'
        return headers

    def crawl_twitter(self, url: str) -> SocialChannel:
        match = re.search(r'(?:twitter\.com|x\.com)/([^/?#]+)', url, re.IGNORECASE)
        if not match:
            return SocialChannel('twitter', url, error='Invalid Twitter URL')
        response = self._get(url)
        if not response.ok:
            return SocialChannel('twitter', url, name=match.group(1), error=f'HTTP {response.status_code}')
        html = response.text
        soup = BeautifulSoup(html, 'lxml')
        bio = _meta(soup, prop='og:description') or _meta(soup, name='description')
        return SocialChannel(
            'twitter', url, exists=True, name=match.group(1),
            followers=extract_number(html, FOLLOWERS_RE),
            verified='Verified account' in html or 'verified-badge' in html,
            details={'bio': bio[:200]},
        )

    def crawl_github(self, url: str) -> SocialChannel:
        match = re.search(r'github\.com/([^/?#]+)', url, re.IGNORECASE)
        if not match:
            return SocialChannel('github', url, error='Invalid GitHub URL')
        account = match.group(1)
        headers = self._json_headers(github=True)
        response = self._get(f'{GITHUB_API}/orgs/{account}', headers)
        if not response.ok:
            response = self._get(f'{GITHUB_API}/users/{account}', headers)
        if not response.ok:
            return SocialChannel('github', url, name=account, error=f'HTTP {response.status_code}')
        data = response.json()
        stars = 0
        repos_url = data.get('repos_url')
        if repos_url:
            repos_response = self._get(repos_url, headers)
            if repos_response.ok:
                stars = sum(repo.get('stargazers_count') or 0 for repo in repos_response.json())
        return SocialChannel(
            'github', url, exists=True, name=data.get('name') or data.get('login') or account,
            followers=stars, members=data.get('followers') or 0, verified=True,
            details={'repositories': data.get('public_repos') or 0, 'stars': stars,
                     'description': (data.get('bio') or data.get('description') or '')[:200]},
        )

    def crawl_discord(self, url: str) -> SocialChannel:
        match = re.search(r'(?:discord\.gg|discord\.com/invite)/([^/?#]+)', url, re.IGNORECASE)
        if not match:
            return SocialChannel('discord', url, error='Invalid Discord URL')
        api_url = f'https://discord.com/api/v10/invites/{match.group(1)}?with_counts=true'
        response = self._get(api_url, self._json_headers())
        if not response.ok:
            return SocialChannel('discord', url, error=f'HTTP {response.status_code}')
        data = response.json()
        guild = data.get('guild') or {}
        return SocialChannel(
            'discord', url, exists=True, name=guild.get('name') or 'Unknown',
            members=data.get('approximate_member_count') or 0,
            verified=bool(guild.get('verified')),
            details={'online': data.get('approximate_presence_count') or 0},
        )

    def crawl_medium(self, url: str) -> SocialChannel:
        response = self._get(url)
        if not response.ok:
            return SocialChannel('medium', url, error=f'HTTP {response.status_code}')
        soup = BeautifulSoup(response.text, 'lxml')
        author = _meta(soup, prop='og:title') or _meta(soup, name='author')
        return SocialChannel('medium', url, exists=True, name=author[:100],
                             followers=extract_number(response.text, FOLLOWERS_RE))

    def crawl_reddit(self, url: str) -> SocialChannel:
        match = re.search(r'reddit\.com/r/([^/?#]+)', url, re.IGNORECASE)
        if not match:
            return SocialChannel('reddit', url, error='Invalid Reddit URL')
        subreddit = match.group(1)
        response = self._get(f'https://www.reddit.com/r/{subreddit}/about.json', self._json_headers())
        if not response.ok:
            return SocialChannel('reddit', url, name=subreddit, error=f'HTTP {response.status_code}')
        data = response.json().get('data') or {}
        return SocialChannel(
            'reddit', url, exists=True, name=subreddit, members=data.get('subscribers') or 0,
            details={'online': data.get('active_user_count') or 0,
                     'description': (data.get('public_description') or '')[:200]},
        )

    def crawl_telegram(self, url: str) -> SocialChannel:
        response = self._get(url)
        if not response.ok:
            return SocialChannel('telegram', url, error=f'HTTP {response.status_code}')
        soup = BeautifulSoup(response.text, 'lxml')
        title = soup.select_one('.tgme_page_title')
        name = _meta(soup, prop='og:title') or (title.get_text(strip=True) if title else '')
        return SocialChannel('telegram', url, exists=True, name=name[:100],
                             members=extract_number(response.text, TELEGRAM_MEMBERS_RE))

    def _lookup(self, platform: str, url: str) -> SocialChannel:
        def run():
            try:
                return self._lookups[platform](url)
            except Exception as e:
                logger.warning('Failed to crawl %s (%s): %s', platform, url, e)
                return SocialChannel(platform, url, error=str(e))

        if self.cache is None:
            return run()
        key = cache_key('social', platform, url)
        hit = self.cache.get(key)
        if hit is not None:
            return hit
        channel = run()
        if channel.exists:
            self.cache.set(key, channel)
        return channel

    def crawl(self, social_links: List[str], deadline: Optional[Deadline] = None) -> SocialMediaData:
        deadline = deadline or Deadline.never()
        targets = select_platform_links(list(social_links))
        data = SocialMediaData()
        if not targets:
            return data

        logger.info('Crawling %d social platforms: %s', len(targets), ', '.join(targets))
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(targets)))
        futures = {executor.submit(self._lookup, platform, url): platform for platform, url in targets.items()}
        try:
            for future in as_completed(futures, timeout=deadline.remaining()):
                data.channels[futures[future]] = future.result()
        except FuturesTimeout:
            logger.warning('Deadline expired during social lookups')
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        for platform, channel in data.channels.items():
            if not channel.exists:
                continue
            data.active_channels += 1
            if channel.verified:
                data.verified_channels += 1
            if platform in FOLLOWER_PLATFORMS:
                data.total_followers += channel.followers
            else:
                data.total_members += channel.members
        data.community_score = calculate_community_score(data)
        logger.info('Social crawl complete: %d active channels, %d total community',
                    data.active_channels, data.total_community)
        return data


def generate_summary(data: SocialMediaData) -> str:
    lines = ['SOCIAL MEDIA ANALYSIS:', '']
    for platform, channel in data.channels.items():
        label = platform.capitalize()
        if not channel.exists:
            lines.append(f'{label}: NOT FOUND ({channel.error or "unreachable"})')
            continue
        status = 'VERIFIED' if channel.verified else 'ACTIVE'
        lines.append(f'{label}: {status}{f" - {channel.name}" if channel.name else ""}')
        if channel.followers:
            lines.append(f'  Followers: {channel.followers:,}')
        if channel.members:
            lines.append(f'  Members: {channel.members:,}')
    lines.append('')
    lines.append(f'Total Community: {data.total_community:,}')
    lines.append(f'Active Channels: {data.active_channels}')
    lines.append(f'Community Score: {data.community_score}/100')
    return '\n'.join(lines)
