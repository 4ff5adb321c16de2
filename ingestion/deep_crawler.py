"""Deep crawl of secondary pages (team, security, governance, docs).

The main page is scanned first, then categorized links are loaded in parallel
up to a page budget. Each page contributes only the evidence its category
calls for. A failing page is logged and skipped; it never aborts the crawl.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from typing import Callable, List, Optional, Set, Tuple

from bs4 import BeautifulSoup

from data.models import CategorizedLink, DeepCrawlFindings, ExtractedContent, LinkCategory, TeamMember
from ingestion.content_parser import make_soup
from ingestion.link_discovery import discover_links
from utils.deadline import Deadline

logger = logging.getLogger(__name__)

MAX_TEAM_MEMBERS = 20
DETAILS_CAP = 500

TEAM_CARD_SELECTORS = (
    '[class*="team-member"]', '[class*="member-card"]', '[class*="person"]',
    '[class*="founder"]', '[class*="contributor"]', '[class*="staff"]',
    '[class*="team"]', '[class*="about"]', '[class*="core"]',
)
NAME_SELECTOR = '[class*="name"], h2, h3, h4, h5, strong, b'
ROLE_SELECTOR = '[class*="role"], [class*="title"], [class*="position"], p, span'
TEAM_HEADING_WORDS = ('team', 'founder', 'contributor', 'about', 'core', 'leadership')
NAME_ROLE_SPLIT = re.compile(r'[-–—|]')

BUG_BOUNTY_MARKERS = ('bug bounty', 'responsible disclosure', 'security reward', 'vulnerability report')
BUG_BOUNTY_DETAIL_MARKERS = ('bug bounty', 'responsible disclosure', 'security reward')
GOVERNANCE_MARKERS = ('governance', 'dao', 'voting', 'proposal', 'token holder')
GOVERNANCE_DETAIL_MARKERS = ('governance', 'dao', 'voting power', 'proposal')


def _text(element) -> str:
    return ' '.join(element.get_text(' ', strip=True).split()) if element is not None else ''


def _valid_name(name: str) -> bool:
    return 2 < len(name) < 100


class _MemberCollector:
    def __init__(self):
        self.members: List[TeamMember] = []
        self._seen: Set[str] = set()

    def add(self, name: str, role: Optional[str] = None, linkedin: Optional[str] = None) -> None:
        key = name.lower()
        if not _valid_name(name) or key in self._seen:
            return
        self._seen.add(key)
        if role is not None and (len(role) >= 200 or role == name or not role):
            role = None
        self.members.append(TeamMember(name=name, role=role, linkedin=linkedin or None))


def extract_team_members(soup: BeautifulSoup) -> List[TeamMember]:
    """Find named people on a page.

    Card markup first, then "Name - Role" lines under team headings, then
    bare LinkedIn profile links.
    """
    collector = _MemberCollector()

    for selector in TEAM_CARD_SELECTORS:
        for card in soup.select(selector):
            name = _text(card.select_one(NAME_SELECTOR))
            role = _text(card.select_one(ROLE_SELECTOR))
            linkedin = card.select_one('a[href*="linkedin.com"]')
            collector.add(name, role or None, linkedin.get('href') if linkedin else None)

    if not collector.members:
        for heading in soup.find_all(['h1', 'h2', 'h3', 'h4']):
            heading_text = _text(heading).lower()
            if not any(word in heading_text for word in TEAM_HEADING_WORDS):
                continue
            for sibling in heading.find_next_siblings(limit=15):
                text = _text(sibling)
                if not 2 < len(text) < 200:
                    continue
                anchor = sibling.select_one('a[href*="linkedin.com"]')
                linkedin = anchor.get('href') if anchor else None
                parts = NAME_ROLE_SPLIT.split(text)
                if len(parts) >= 2:
                    collector.add(parts[0].strip(), parts[1].strip(), linkedin)
                elif len(text) < 100:
                    collector.add(text, None, linkedin)

    if not collector.members:
        for anchor in soup.select('a[href*="linkedin.com/in/"]'):
            text = _text(anchor)
            if not text:
                container = anchor.find_parent(['div', 'section'])
                if container is not None:
                    text = _text(container.select_one('h1, h2, h3, h4, strong'))
            collector.add(text, None, anchor.get('href'))

    return collector.members[:MAX_TEAM_MEMBERS]


def _matches(element, markers) -> bool:
    lowered = _text(element).lower()
    return any(marker in lowered for marker in markers)


def _collect_details(soup: BeautifulSoup, tags, markers) -> str:
    # Innermost matching elements only; wrappers repeat their children's text.
    pieces: List[str] = []
    for element in soup.find_all(tags):
        if not _matches(element, markers):
            continue
        if any(_matches(child, markers) for child in element.find_all(tags)):
            continue
        text = _text(element)
        if text not in pieces:
            pieces.append(text)
        if len(' '.join(pieces)) >= DETAILS_CAP:
            break
    return ' '.join(pieces)[:DETAILS_CAP].strip()


def detect_bug_bounty(soup: BeautifulSoup) -> Tuple[bool, str]:
    page_text = _text(soup.body or soup).lower()
    if not any(marker in page_text for marker in BUG_BOUNTY_MARKERS):
        return False, ''
    return True, _collect_details(soup, ['p', 'div', 'section'], BUG_BOUNTY_DETAIL_MARKERS)


def detect_governance(soup: BeautifulSoup) -> Tuple[bool, str]:
    page_text = _text(soup.body or soup).lower()
    if not any(marker in page_text for marker in GOVERNANCE_MARKERS):
        return False, ''
    return True, _collect_details(soup, ['p', 'div', 'section', 'article'], GOVERNANCE_DETAIL_MARKERS)


def _merge_members(findings: DeepCrawlFindings, members: List[TeamMember]) -> None:
    seen = {member.name.lower() for member in findings.team_members}
    for member in members:
        if len(findings.team_members) >= MAX_TEAM_MEMBERS:
            break
        if member.name.lower() not in seen:
            seen.add(member.name.lower())
            findings.team_members.append(member)


def _merge_bug_bounty(findings: DeepCrawlFindings, soup: BeautifulSoup) -> None:
    found, details = detect_bug_bounty(soup)
    if found:
        findings.bug_bounty_found = True
        if details and details not in findings.bug_bounty_details:
            findings.bug_bounty_details = f'{findings.bug_bounty_details} {details}'.strip()[:DETAILS_CAP]


def _merge_governance(findings: DeepCrawlFindings, soup: BeautifulSoup) -> None:
    found, details = detect_governance(soup)
    if found:
        findings.governance_found = True
        if details and details not in findings.governance_details:
            findings.governance_details = f'{findings.governance_details} {details}'.strip()[:DETAILS_CAP]


class DeepCrawler:
    """Visit categorized links and gather category-specific evidence.

    Args:
        page_loader: ``loader(url, deadline) -> LoadedPage`` (status + html)
        max_pages: Total linked pages visited
        max_depth: 1 follows links from the main page only; higher values
            run discovery again on crawled pages, breadth first
        max_workers: Parallel page loads
    """

    def __init__(self, page_loader: Callable, max_pages: int = 10, max_depth: int = 1, max_workers: int = 5):
        self.page_loader = page_loader
        self.max_pages = max_pages
        self.max_depth = max(1, max_depth)
        self.max_workers = max(1, max_workers)

    def crawl(self, html: str, base_url: str, deadline: Optional[Deadline] = None,
              soup: Optional[BeautifulSoup] = None) -> DeepCrawlFindings:
        deadline = deadline or Deadline.never()
        findings = DeepCrawlFindings()
        main_soup = soup if soup is not None else make_soup(html)

        # The main page often carries the evidence already.
        main_members = extract_team_members(main_soup)
        if main_members:
            _merge_members(findings, main_members)
            logger.info('Found %d team members on main page', len(main_members))
        _merge_bug_bounty(findings, main_soup)
        _merge_governance(findings, main_soup)

        visited = {base_url.rstrip('/')}
        frontier = discover_links(html, base_url, soup=main_soup)
        depth = 1
        while frontier and depth <= self.max_depth and len(findings.crawled_pages) < self.max_pages:
            budget = self.max_pages - len(findings.crawled_pages)
            batch = []
            for link in frontier:
                key = link.url.rstrip('/')
                if key in visited:
                    continue
                visited.add(key)
                batch.append(link)
                if len(batch) >= budget:
                    break
            if not batch:
                break
            next_frontier = self._crawl_batch(batch, findings, deadline, collect_links=depth < self.max_depth)
            if deadline.expired:
                logger.warning('Deadline reached during deep crawl of %s; keeping %d pages',
                               base_url, len(findings.crawled_pages))
                break
            frontier = next_frontier
            depth += 1

        logger.info('Deep crawl of %s complete: %d pages, %d team members, bug bounty=%s, governance=%s',
                    base_url, len(findings.crawled_pages), len(findings.team_members),
                    findings.bug_bounty_found, findings.governance_found)
        return findings.freeze()

    def _crawl_batch(self, batch: List[CategorizedLink], findings: DeepCrawlFindings,
                     deadline: Deadline, collect_links: bool) -> List[CategorizedLink]:
        next_links: List[CategorizedLink] = []
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(batch)))
        futures = {executor.submit(self.page_loader, link.url, deadline): link for link in batch}
        try:
            for future in as_completed(futures, timeout=deadline.remaining()):
                link = futures[future]
                try:
                    page = future.result()
                except Exception as e:
                    logger.warning('Deep crawl failed for %s: %s', link.url, e)
                    findings.failed_pages.append(link.url)
                    continue
                if page.status is not None and page.status >= 400:
                    logger.debug('Skipping %s (HTTP %s)', link.url, page.status)
                    continue
                page_soup = make_soup(page.html)
                self._merge_page(link, page_soup, findings)
                if collect_links:
                    next_links.extend(discover_links(page.html, link.url, soup=page_soup, use_fallback=False))
        except FuturesTimeout:
            pending = [futures[f].url for f in futures if not f.done()]
            logger.warning('Deadline expired with %d deep crawl pages in flight: %s', len(pending), pending)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return next_links

    def _merge_page(self, link: CategorizedLink, soup: BeautifulSoup, findings: DeepCrawlFindings) -> None:
        findings.crawled_pages.append(link.url)
        if link.category == LinkCategory.TEAM:
            members = extract_team_members(soup)
            if members:
                findings.team_page_found = True
                _merge_members(findings, members)
                logger.info('Found %d team members on %s', len(members), link.url)
        elif link.category == LinkCategory.SECURITY:
            _merge_bug_bounty(findings, soup)
        elif link.category == LinkCategory.GOVERNANCE:
            _merge_governance(findings, soup)
        elif link.category == LinkCategory.DOCS:
            findings.documentation_links.append(link.url)


def format_team_members(members: List[TeamMember]) -> str:
    return '; '.join(
        f'{m.name}{f" ({m.role})" if m.role else ""}{f" - LinkedIn: {m.linkedin}" if m.linkedin else ""}'
        for m in members
    )


def fold_findings(content: ExtractedContent, findings: DeepCrawlFindings) -> ExtractedContent:
    """Append crawl findings to the team and security sections.

    Existing text is kept; ``content_length`` is left as parsed.
    """
    team_info = content.team_info
    security_info = content.security_info
    if findings.team_members:
        team_info += f'\n\nTeam Members Found: {format_team_members(findings.team_members)}'
    if findings.bug_bounty_found:
        security_info += f'\n\nBug Bounty Program: {findings.bug_bounty_details}'
    if findings.governance_found:
        team_info += f'\n\nDAO Governance: {findings.governance_details}'
    if team_info == content.team_info and security_info == content.security_info:
        return content
    return content.with_updates(team_info=team_info, security_info=security_info)
