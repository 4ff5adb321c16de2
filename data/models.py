"""Content-side data models for the audit pipeline.

Everything here is a plain dataclass so stages can hand immutable copies
forward and callers can serialize with :func:`dataclasses.asdict`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ExtractionMethod(Enum):
    """Which fetch strategy produced the markup."""

    PRIMARY = "primary"      # full browser render, network idle
    FALLBACK = "fallback"    # lighter browser wait, rotated identity
    MINIMAL = "minimal"      # plain HTTP GET


class LinkCategory(Enum):
    TEAM = "team"
    SECURITY = "security"
    GOVERNANCE = "governance"
    DOCS = "docs"


@dataclass(frozen=True)
class CategorizedLink:
    url: str
    category: LinkCategory
    text: str = ""


@dataclass(frozen=True)
class ExtractedContent:
    """Snapshot of one retrieved page.

    ``content_length`` is fixed by the parser at creation time. Enrichment
    stages derive new copies with :meth:`with_updates` and never recompute it.
    """

    url: str
    title: str
    description: str
    main_content: str
    documentation: Tuple[str, ...] = ()
    team_info: str = ""
    tokenomics: str = ""
    security_info: str = ""
    social_links: Tuple[str, ...] = ()
    code_repositories: Tuple[str, ...] = ()
    method: ExtractionMethod = ExtractionMethod.MINIMAL
    content_length: int = 0
    extracted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def with_updates(self, **changes) -> "ExtractedContent":
        return replace(self, **changes)

    def all_text(self) -> str:
        """Every textual field joined, in the order scoring reads them."""
        return ' '.join([
            self.title,
            self.description,
            self.main_content,
            ' '.join(self.documentation),
            self.team_info,
            self.tokenomics,
            self.security_info,
        ])

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['method'] = self.method.value
        data['extracted_at'] = self.extracted_at.isoformat()
        data['documentation'] = list(self.documentation)
        data['social_links'] = list(self.social_links)
        data['code_repositories'] = list(self.code_repositories)
        return data


@dataclass(frozen=True)
class TeamMember:
    name: str
    role: Optional[str] = None
    linkedin: Optional[str] = None


@dataclass
class DeepCrawlFindings:
    """Evidence gathered while crawling secondary pages.

    Mutable while the crawl runs; call :meth:`freeze` before handing it on.
    """

    team_page_found: bool = False
    team_members: List[TeamMember] = field(default_factory=list)
    bug_bounty_found: bool = False
    bug_bounty_details: str = ""
    governance_found: bool = False
    governance_details: str = ""
    documentation_links: List[str] = field(default_factory=list)
    crawled_pages: List[str] = field(default_factory=list)
    failed_pages: List[str] = field(default_factory=list)
    _frozen: bool = field(default=False, repr=False, compare=False)

    def freeze(self) -> "DeepCrawlFindings":
        self.team_members = list(self.team_members)
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __setattr__(self, name, value):
        if getattr(self, '_frozen', False) and name != '_frozen':
            raise AttributeError(f'DeepCrawlFindings is frozen; cannot set {name}')
        super().__setattr__(name, value)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop('_frozen', None)
        return data


@dataclass
class LinkedInProfile:
    url: str
    name: str = ""
    headline: str = ""
    exists: bool = False
    verified: bool = False
    error: Optional[str] = None


@dataclass
class GitHubProfile:
    url: str
    username: str = ""
    exists: bool = False
    verified: bool = False
    public_repos: int = 0
    followers: int = 0
    recent_activity: bool = False
    last_updated: Optional[str] = None
    error: Optional[str] = None


@dataclass
class GitHubRepo:
    url: str
    name: str = ""
    exists: bool = False
    verified: bool = False
    stars: int = 0
    forks: int = 0
    is_active: bool = False
    last_commit: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ExternalVerification:
    linkedin_profiles: List[LinkedInProfile] = field(default_factory=list)
    github_profiles: List[GitHubProfile] = field(default_factory=list)
    github_repos: List[GitHubRepo] = field(default_factory=list)
    verified_team_members: int = 0
    verified_repos: int = 0
    overall_trust_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SocialChannel:
    """Lookup result for one social platform."""

    platform: str
    url: str
    exists: bool = False
    name: str = ""
    followers: int = 0
    members: int = 0
    verified: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class SocialMediaData:
    channels: Dict[str, SocialChannel] = field(default_factory=dict)
    total_followers: int = 0
    total_members: int = 0
    active_channels: int = 0
    verified_channels: int = 0
    community_score: int = 0

    @property
    def total_community(self) -> int:
        return self.total_followers + self.total_members

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
