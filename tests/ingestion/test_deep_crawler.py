import threading

import pytest

from data.models import DeepCrawlFindings, ExtractedContent, TeamMember
from ingestion.content_parser import make_soup
from ingestion.deep_crawler import (
    MAX_TEAM_MEMBERS,
    DeepCrawler,
    detect_bug_bounty,
    detect_governance,
    extract_team_members,
    fold_findings,
    format_team_members,
)
from ingestion.page_fetcher import LoadedPage

BASE = "https://example.com"

MAIN_PAGE = """
<html><body>
  <nav>
    <a href="/team">Team</a>
    <a href="/security">Security</a>
    <a href="/governance">Vote</a>
    <a href="/docs">Docs</a>
  </nav>
  <p>Example Protocol is a lending market.</p>
</body></html>
"""

TEAM_PAGE = """
<html><body>
  <h1>People</h1>
  <div class="grid">
    <div class="team-member">
      <h3>Alice Nakamoto</h3>
      <p class="role">Chief Executive Officer</p>
      <a href="https://www.linkedin.com/in/alice">LinkedIn</a>
    </div>
    <div class="team-member">
      <h3>Bob Builder</h3>
      <p class="role">CTO</p>
    </div>
  </div>
</body></html>
"""

BOUNTY_PAGE = """
<html><body>
  <section>
    <div><p>Our bug bounty program on Immunefi pays up to $1M for critical findings.</p></div>
    <p>Unrelated paragraph about the brand.</p>
  </section>
</body></html>
"""


class FakeLoader:
    def __init__(self, pages):
        self.pages = pages
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, url, deadline=None):
        with self._lock:
            self.calls.append(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            return LoadedPage(url=url, status=404, html="")
        return LoadedPage(url=url, status=200, html=page)


class TestTeamExtraction:
    def test_cards(self):
        members = extract_team_members(make_soup(TEAM_PAGE))
        assert members == [
            TeamMember("Alice Nakamoto", "Chief Executive Officer", "https://www.linkedin.com/in/alice"),
            TeamMember("Bob Builder", "CTO", None),
        ]

    def test_heading_siblings_split_on_separators(self):
        html = """
        <h2>Core Team</h2>
        <p>Carol Chen - Head of Research</p>
        <p>Dan Diaz | Lead Engineer</p>
        <p>Frank Ocean</p>
        """
        members = extract_team_members(make_soup(html))
        assert [(m.name, m.role) for m in members] == [
            ("Carol Chen", "Head of Research"),
            ("Dan Diaz", "Lead Engineer"),
            ("Frank Ocean", None),
        ]

    def test_linkedin_anchor_fallback_uses_container_heading(self):
        html = '<div><strong>Grace Hopper</strong><a href="https://linkedin.com/in/grace"></a></div>'
        members = extract_team_members(make_soup(html))
        assert members == [TeamMember("Grace Hopper", None, "https://linkedin.com/in/grace")]

    def test_names_deduplicated_case_insensitively_and_validated(self):
        html = """
        <h2>Founders</h2>
        <p>Heidi Klum - CEO</p>
        <p>HEIDI KLUM - Chair</p>
        <p>Al</p>
        """
        members = extract_team_members(make_soup(html))
        assert [m.name for m in members] == ["Heidi Klum"]

    def test_role_equal_to_name_is_dropped(self):
        html = '<div class="team-member"><h3>Ivan Petrov</h3><span>Ivan Petrov</span></div>'
        assert extract_team_members(make_soup(html))[0].role is None

    def test_cap(self):
        cards = "".join(f'<div class="team-member"><h3>Person Number {i}</h3></div>' for i in range(30))
        assert len(extract_team_members(make_soup(cards))) == MAX_TEAM_MEMBERS


class TestEvidenceDetection:
    def test_bug_bounty_details_use_innermost_element(self):
        found, details = detect_bug_bounty(make_soup(BOUNTY_PAGE))
        assert found is True
        assert details == "Our bug bounty program on Immunefi pays up to $1M for critical findings."

    def test_vulnerability_report_counts_without_details(self):
        found, details = detect_bug_bounty(make_soup("<body><span>Send a vulnerability report</span></body>"))
        assert found is True
        assert details == ""

    def test_governance(self):
        html = "<article><p>Changes pass through an on-chain proposal voted by token holders.</p></article>"
        found, details = detect_governance(make_soup(html))
        assert found is True
        assert "on-chain proposal" in details

    def test_details_capped(self):
        paragraphs = "".join(f"<p>Governance forum post {i} " + "x" * 80 + "</p>" for i in range(20))
        _, details = detect_governance(make_soup(f"<body>{paragraphs}</body>"))
        assert len(details) <= 500

    def test_absent(self):
        soup = make_soup("<body><p>Nothing to see.</p></body>")
        assert detect_bug_bounty(soup) == (False, "")
        assert detect_governance(soup) == (False, "")


class TestDeepCrawler:
    def test_category_specific_merging_and_failures(self):
        loader = FakeLoader({
            f"{BASE}/team": TEAM_PAGE,
            f"{BASE}/security": BOUNTY_PAGE,
            f"{BASE}/governance": RuntimeError("connection reset"),
        })
        findings = DeepCrawler(loader, max_workers=2).crawl(MAIN_PAGE, BASE)

        assert findings.team_page_found is True
        assert [m.name for m in findings.team_members] == ["Alice Nakamoto", "Bob Builder"]
        assert findings.bug_bounty_found is True
        assert "Immunefi" in findings.bug_bounty_details
        assert findings.governance_found is False
        assert set(findings.crawled_pages) == {f"{BASE}/team", f"{BASE}/security"}
        assert findings.failed_pages == [f"{BASE}/governance"]
        # 404 pages are skipped entirely.
        assert findings.documentation_links == []
        assert f"{BASE}/docs" in loader.calls

    def test_findings_are_frozen(self):
        findings = DeepCrawler(FakeLoader({})).crawl(MAIN_PAGE, BASE)
        assert findings.frozen
        with pytest.raises(AttributeError):
            findings.bug_bounty_found = True

    def test_docs_links_recorded(self):
        loader = FakeLoader({f"{BASE}/docs": "<html><body><p>Docs home</p></body></html>"})
        findings = DeepCrawler(loader).crawl(MAIN_PAGE, BASE)
        assert findings.documentation_links == [f"{BASE}/docs"]

    def test_team_page_without_members_is_not_a_team_page(self):
        loader = FakeLoader({f"{BASE}/team": "<html><body><p>We are hiring.</p></body></html>"})
        findings = DeepCrawler(loader).crawl(MAIN_PAGE, BASE)
        assert findings.team_page_found is False
        assert f"{BASE}/team" in findings.crawled_pages

    def test_page_budget(self):
        links = "".join(f'<a href="/team/{i}">Member {i}</a>' for i in range(12))
        loader = FakeLoader({})
        DeepCrawler(loader, max_pages=10).crawl(f"<html><body>{links}</body></html>", BASE)
        assert len(loader.calls) == 10

    def test_main_page_scanned_first(self):
        loader = FakeLoader({})
        findings = DeepCrawler(loader).crawl(TEAM_PAGE, BASE)
        assert [m.name for m in findings.team_members] == ["Alice Nakamoto", "Bob Builder"]
        # No categorized links on the page, so conventional paths were tried.
        assert f"{BASE}/team" in loader.calls

    def test_depth_two_follows_links_from_crawled_pages(self):
        main = '<html><body><a href="/about">About</a></body></html>'
        about = '<html><body><a href="/team">Meet the team</a></body></html>'
        pages = {f"{BASE}/about": about, f"{BASE}/team": TEAM_PAGE}

        shallow = DeepCrawler(FakeLoader(pages), max_depth=1).crawl(main, BASE)
        assert shallow.team_members == []

        deep = DeepCrawler(FakeLoader(pages), max_depth=2).crawl(main, BASE)
        assert [m.name for m in deep.team_members] == ["Alice Nakamoto", "Bob Builder"]


class TestFoldFindings:
    def make_content(self):
        return ExtractedContent(url=BASE, title="Example", description="", main_content="Lending",
                                team_info="Team section.", security_info="Audited.", content_length=42)

    def test_appends_sections_without_recomputing_length(self):
        findings = DeepCrawlFindings(
            team_members=[TeamMember("Alice Nakamoto", "CEO", "https://linkedin.com/in/alice")],
            bug_bounty_found=True,
            bug_bounty_details="Immunefi bounty",
            governance_found=True,
            governance_details="Snapshot voting",
        ).freeze()
        folded = fold_findings(self.make_content(), findings)
        assert folded.team_info == ("Team section.\n\nTeam Members Found: Alice Nakamoto (CEO) - LinkedIn: "
                                    "https://linkedin.com/in/alice\n\nDAO Governance: Snapshot voting")
        assert folded.security_info == "Audited.\n\nBug Bounty Program: Immunefi bounty"
        assert folded.content_length == 42

    def test_nothing_found_returns_same_content(self):
        content = self.make_content()
        assert fold_findings(content, DeepCrawlFindings().freeze()) is content


def test_format_team_members():
    members = [TeamMember("Alice", "CEO"), TeamMember("Bob Smith", None, "https://linkedin.com/in/bob")]
    assert format_team_members(members) == "Alice (CEO); Bob Smith - LinkedIn: https://linkedin.com/in/bob"
