"""Categorize a page's outbound links for the deep crawl.

A link is classified by matching its URL and anchor text against per-category
path patterns and keywords. Precedence is team, security, governance, docs;
the first category that matches wins so a link is never counted twice.
"""

import logging
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from data.models import CategorizedLink, LinkCategory

logger = logging.getLogger(__name__)

CATEGORY_PATTERNS: Dict[LinkCategory, Tuple[str, ...]] = {
    LinkCategory.TEAM: (
        '/team', '/about', '/contributors', '/people', '/founders', '/leadership',
        'team', 'about', 'contributor', 'founder', 'member', 'staff', 'core',
    ),
    LinkCategory.SECURITY: (
        '/security', '/bug-bounty', '/responsible-disclosure', '/audits', '/safety',
        'security', 'bug', 'bounty', 'audit', 'safe', 'disclosure',
    ),
    LinkCategory.GOVERNANCE: (
        '/governance', '/dao', '/vote', '/proposals', '/forum',
        'governance', 'dao', 'vote', 'proposal', 'govern', 'community',
    ),
    LinkCategory.DOCS: (
        '/docs', '/documentation', '/whitepaper', '/guide', '/wiki',
        'docs', 'documentation', 'whitepaper', 'guide', 'help', 'faq', 'learn',
    ),
}

CATEGORY_ORDER = (LinkCategory.TEAM, LinkCategory.SECURITY, LinkCategory.GOVERNANCE, LinkCategory.DOCS)

FALLBACK_PATHS: Dict[LinkCategory, Tuple[str, ...]] = {
    LinkCategory.TEAM: ('/team', '/about', '/contributors'),
    LinkCategory.SECURITY: ('/security', '/bug-bounty', '/audits'),
    LinkCategory.GOVERNANCE: ('/governance', '/dao', '/vote'),
    LinkCategory.DOCS: ('/docs', '/documentation'),
}


def _host(url: str) -> str:
    host = urlparse(url).hostname or ''
    return host.lower()


def _page_key(url: str) -> Tuple[str, str]:
    host = _host(url)
    if host.startswith('www.'):
        host = host[4:]
    return host, urlparse(url).path.rstrip('/') or '/'


def is_related_host(candidate: str, origin: str) -> bool:
    """Same host, or one is a dot-suffix subdomain of the other."""
    a, b = _host(candidate), _host(origin)
    if not a or not b:
        return False
    if a.startswith('www.'):
        a = a[4:]
    if b.startswith('www.'):
        b = b[4:]
    return a == b or a.endswith('.' + b) or b.endswith('.' + a)


def categorize(url: str, anchor_text: str = '', origin: str = '') -> Optional[LinkCategory]:
    """Category of a link, or None.

    The hostname takes part in matching only when it differs from the
    origin's, so a keyword in the site's own domain does not tag every link.
    """
    parsed = urlparse(url)
    host = (parsed.hostname or '').lower()
    path = parsed.path.lower() + (f'?{parsed.query.lower()}' if parsed.query else '')
    if origin and host == _host(origin):
        host = ''
    haystack = f'{host} {path} {anchor_text.lower()}'
    for category in CATEGORY_ORDER:
        if any(pattern in haystack for pattern in CATEGORY_PATTERNS[category]):
            return category
    return None


def fallback_links(base_url: str) -> List[CategorizedLink]:
    """Conventional paths on the origin, used when discovery finds nothing."""
    parsed = urlparse(base_url)
    origin = f'{parsed.scheme}://{parsed.netloc}'
    return [
        CategorizedLink(url=origin + path, category=category, text='')
        for category in CATEGORY_ORDER
        for path in FALLBACK_PATHS[category]
    ]


def discover_links(html: str, base_url: str, soup: Optional[BeautifulSoup] = None,
                   use_fallback: bool = True) -> List[CategorizedLink]:
    """Return categorized same-site links ordered team > security > governance > docs.

    Args:
        html: Page markup
        base_url: URL of the page, used to resolve and filter links
        soup: Already-parsed markup (optional)
        use_fallback: Substitute conventional paths when nothing matches
    """
    soup = soup if soup is not None else BeautifulSoup(html or '', 'lxml')
    seen = {_page_key(base_url)}
    found: Dict[LinkCategory, List[CategorizedLink]] = {category: [] for category in CATEGORY_ORDER}

    for anchor in soup.find_all('a', href=True):
        href = anchor.get('href', '').strip()
        if not href or href.startswith(('#', 'mailto:', 'javascript:', 'tel:')):
            continue
        absolute = urljoin(base_url, href)
        parsed = urlparse(absolute)
        if parsed.scheme not in ('http', 'https') or not is_related_host(absolute, base_url):
            continue
        key = _page_key(absolute)
        if key in seen:
            continue
        text = anchor.get_text(' ', strip=True)
        category = categorize(absolute, text, origin=base_url)
        if category is None:
            continue
        seen.add(key)
        clean_url = urlunparse(parsed._replace(fragment=''))
        found[category].append(CategorizedLink(url=clean_url, category=category, text=text[:100]))

    links = [link for category in CATEGORY_ORDER for link in found[category]]
    if not links and use_fallback:
        logger.info('No categorized links found on %s, using conventional paths', base_url)
        return fallback_links(base_url)
    logger.debug('Discovered %d categorized links on %s', len(links), base_url)
    return links
