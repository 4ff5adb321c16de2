"""Structured content extraction.

Each target field has a prioritized list of CSS selector rules. Single-value
fields take the first rule that yields enough text; multi-value fields collect
qualifying blocks up to a cap, skipping blocks already covered by an earlier
one.
"""

import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from data.models import ExtractedContent, ExtractionMethod

logger = logging.getLogger(__name__)

TITLE_SELECTORS = ('title', 'h1', '[class*="title"]', '[class*="heading"]')
DESCRIPTION_SELECTORS = (
    'meta[name="description"]',
    '[class*="description"]',
    '[class*="intro"]',
    'p:first-of-type',
)
DOCUMENTATION_SELECTORS = (
    '[class*="doc"]', '[class*="guide"]', '[class*="whitepaper"]', 'main', 'article',
    '[role="main"]', '.content', '#content', '[class*="readme"]', '[class*="overview"]',
)
TEAM_SELECTORS = (
    '[class*="team"]', '[class*="about"]', '[class*="founder"]', '[class*="member"]',
    '[class*="leadership"]', '[class*="core"]', '[class*="advisor"]', '[class*="developer"]',
)
TOKENOMICS_SELECTORS = (
    '[class*="token"]', '[class*="economic"]', '[class*="supply"]', '[class*="distribution"]',
    '[class*="allocation"]', '[class*="reward"]', '[class*="staking"]', '[class*="yield"]',
)
SECURITY_SELECTORS = (
    '[class*="audit"]', '[class*="security"]', '[class*="safe"]', '[class*="bug"]',
    '[class*="bounty"]', '[class*="risk"]', '[class*="insurance"]', '[class*="verify"]',
)
SOCIAL_SELECTORS = (
    'a[href*="twitter.com"]', 'a[href*="x.com"]', 'a[href*="discord"]', 'a[href*="telegram"]',
    'a[href*="t.me/"]', 'a[href*="github"]', 'a[href*="medium"]', 'a[href*="linkedin"]',
    'a[href*="reddit"]',
)
CODE_SELECTORS = (
    'a[href*="github.com"]', 'a[href*="gitlab.com"]', 'a[href*="bitbucket"]',
    '[class*="code"] a[href]', '[class*="repo"] a[href]', '[class*="source"] a[href]',
)

MIN_FIELD_CHARS = 10
MIN_BLOCK_CHARS = 50
DEDUPE_PREFIX_CHARS = 100
MAX_BLOCKS = 10
MAX_LINKS = 20

TITLE_CAP = 200
DESCRIPTION_CAP = 500
SECTION_CAP = 2000
MAIN_CONTENT_CAP = 5000
MIN_DOCUMENTATION_CHARS = 200
NO_TITLE = 'No title found'

_WHITESPACE = re.compile(r'\s+')


def _clean(text: str) -> str:
    return _WHITESPACE.sub(' ', text or '').strip()


def _element_text(element) -> str:
    if element.name == 'meta':
        return _clean(element.get('content', ''))
    return _clean(element.get_text(' ', strip=True))


def extract_by_selectors(soup: BeautifulSoup, selectors: Iterable[str]) -> str:
    """Text of the first selector whose first match is longer than 10 chars."""
    for selector in selectors:
        try:
            element = soup.select_one(selector)
        except Exception as e:
            logger.debug('Selector %s failed: %s', selector, e)
            continue
        if element is None:
            continue
        text = _element_text(element)
        if len(text) > MIN_FIELD_CHARS:
            return text
    return ''


def extract_multiple(soup: BeautifulSoup, selectors: Iterable[str], limit: int = MAX_BLOCKS) -> List[str]:
    """Qualifying text blocks across all selectors, de-duplicated by prefix."""
    blocks: List[str] = []
    for selector in selectors:
        try:
            elements = soup.select(selector)
        except Exception as e:
            logger.debug('Selector %s failed: %s', selector, e)
            continue
        for element in elements:
            text = _element_text(element)
            if len(text) <= MIN_BLOCK_CHARS:
                continue
            prefix = text[:DEDUPE_PREFIX_CHARS]
            if any(prefix in existing for existing in blocks):
                continue
            blocks.append(text)
            if len(blocks) >= limit:
                return blocks
    return blocks


def extract_links(soup: BeautifulSoup, selectors: Iterable[str], base_url: str,
                  limit: int = MAX_LINKS) -> List[str]:
    """Unique absolute http(s) hrefs matched by the selectors, in document order per selector."""
    links: List[str] = []
    seen = set()
    for selector in selectors:
        try:
            elements = soup.select(selector)
        except Exception as e:
            logger.debug('Selector %s failed: %s', selector, e)
            continue
        for element in elements:
            href = (element.get('href') or '').strip()
            if not href or href.startswith(('#', 'javascript:', 'mailto:')):
                continue
            absolute = urljoin(base_url, href)
            if urlparse(absolute).scheme not in ('http', 'https') or absolute in seen:
                continue
            seen.add(absolute)
            links.append(absolute)
            if len(links) >= limit:
                return links
    return links


def make_soup(html: str) -> BeautifulSoup:
    soup = BeautifulSoup(html or '', 'lxml')
    for tag in soup(['script', 'style', 'noscript', 'template']):
        tag.decompose()
    return soup


def body_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return _clean(root.get_text(' ', strip=True))


def compute_content_length(title: str, description: str, main_content: str,
                           team_info: str, tokenomics: str, security_info: str) -> int:
    return len(f'{title} {description} {main_content} {team_info} {tokenomics} {security_info}')


def parse_content(html: str, url: str, method: ExtractionMethod = ExtractionMethod.MINIMAL,
                  soup: Optional[BeautifulSoup] = None) -> ExtractedContent:
    """Parse markup into an :class:`ExtractedContent` snapshot.

    Args:
        html: Raw or rendered markup
        url: Page URL, used to resolve relative links
        method: Fetch method that produced the markup
        soup: Pre-parsed soup from :func:`make_soup` (optional)
    """
    soup = soup if soup is not None else make_soup(html)

    title = extract_by_selectors(soup, TITLE_SELECTORS)[:TITLE_CAP] or NO_TITLE
    description = extract_by_selectors(soup, DESCRIPTION_SELECTORS)[:DESCRIPTION_CAP]
    documentation = extract_multiple(soup, DOCUMENTATION_SELECTORS)
    team_info = ' '.join(extract_multiple(soup, TEAM_SELECTORS))[:SECTION_CAP]
    tokenomics = ' '.join(extract_multiple(soup, TOKENOMICS_SELECTORS))[:SECTION_CAP]
    security_info = ' '.join(extract_multiple(soup, SECURITY_SELECTORS))[:SECTION_CAP]
    social_links = extract_links(soup, SOCIAL_SELECTORS, url)
    code_repositories = extract_links(soup, CODE_SELECTORS, url)

    joined_docs = '\n\n'.join(documentation)
    if not documentation or len(joined_docs) < MIN_DOCUMENTATION_CHARS:
        main_content = body_text(soup)[:MAIN_CONTENT_CAP]
    else:
        main_content = joined_docs[:MAIN_CONTENT_CAP]

    content = ExtractedContent(
        url=url,
        title=title,
        description=description,
        main_content=main_content,
        documentation=tuple(documentation),
        team_info=team_info,
        tokenomics=tokenomics,
        security_info=security_info,
        social_links=tuple(social_links),
        code_repositories=tuple(code_repositories),
        method=method,
        content_length=compute_content_length(title, description, main_content,
                                              team_info, tokenomics, security_info),
    )
    logger.debug('Parsed %s: title=%r, %d doc blocks, %d social, %d repos, %d chars',
                 url, title[:50], len(documentation), len(social_links),
                 len(code_repositories), content.content_length)
    return content
