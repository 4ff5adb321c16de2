"""Audit Manager orchestrates one trust audit of a project website."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config.settings import SETTINGS
from data.models import DeepCrawlFindings, ExternalVerification, ExtractedContent, SocialMediaData
from ingestion import external_verifier, social_crawler
from ingestion.browser_pool import BrowserPool
from ingestion.cache import TTLCache
from ingestion.content_parser import make_soup, parse_content
from ingestion.deep_crawler import DeepCrawler, fold_findings
from ingestion.errors import ExtractionError, suggested_actions
from ingestion.external_verifier import ExternalVerifier
from ingestion.fetch_executor import FetchExecutor
from ingestion.fetch_strategies import default_strategies
from ingestion.page_fetcher import HttpClient, LinkedPageLoader
from ingestion.rate_limiter import PerDomainRateLimiter
from ingestion.social_crawler import SocialMediaCrawler
from prompts.analysis import build_analysis_prompt
from scoring.ai_client import GeminiClassifier
from scoring.ai_response import Ok
from scoring.content_validator import validate_content
from scoring.pattern_scorer import PatternScoringEngine
from scoring.reconciler import ConsistencyReconciler, merge_analysis
from scoring.rules import load_rules
from scoring.trust_calculator import TrustScoreCalculator
from scoring.types import AnalysisResult, ConsistencyReport, TrustScoreResult, ValidationResult
from utils.deadline import Deadline

logger = logging.getLogger(__name__)

GITHUB_API_HOST = 'api.github.com'
GITHUB_API_INTERVAL_S = 1.0


class AuditFailedError(RuntimeError):
    """The main page could not be retrieved; carries the classified cause."""

    def __init__(self, error: ExtractionError):
        super().__init__(error.message)
        self.error = error

    @property
    def kind(self):
        return self.error.kind

    @property
    def suggested_actions(self) -> List[str]:
        return suggested_actions(self.error.kind)

    def user_message(self) -> str:
        return self.error.user_message()


@dataclass
class AuditReport:
    """Everything one audit produced, in plain data."""

    url: str
    content: ExtractedContent
    findings: DeepCrawlFindings
    verification: ExternalVerification
    social: SocialMediaData
    validation: ValidationResult
    analysis: AnalysisResult
    consistency: ConsistencyReport
    trust_score: TrustScoreResult
    ai_error: Optional[str] = None
    deadline_expired: bool = False
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    duration_s: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'started_at': self.started_at,
            'duration_s': round(self.duration_s, 2),
            'deadline_expired': self.deadline_expired,
            'ai_error': self.ai_error,
            'trust_score': self.trust_score.to_dict(),
            'analysis': self.analysis.to_dict(),
            'consistency': self.consistency.to_dict(),
            'validation': self.validation.to_dict(),
            'content': self.content.to_dict(),
            'deep_crawl': self.findings.to_dict(),
            'verification': self.verification.to_dict(),
            'social': self.social.to_dict(),
        }


class AuditManager:
    """High level orchestrator for a trust audit.

    Shared resources (lookup cache, browser pool, HTTP client) are built once
    from settings and live until :meth:`close`. Collaborators can be injected
    for tests.
    """

    def __init__(self, settings: Optional[dict] = None, cache: Optional[TTLCache] = None,
                 browser_pool: Optional[BrowserPool] = None, http: Optional[HttpClient] = None,
                 fetch_executor: Optional[FetchExecutor] = None, deep_crawler: Optional[DeepCrawler] = None,
                 verifier: Optional[ExternalVerifier] = None, social: Optional[SocialMediaCrawler] = None,
                 classifier: Optional[GeminiClassifier] = None,
                 pattern_engine: Optional[PatternScoringEngine] = None,
                 reconciler: Optional[ConsistencyReconciler] = None,
                 calculator: Optional[TrustScoreCalculator] = None):
        self.settings = dict(SETTINGS)
        self.settings.update(settings or {})
        s = self.settings
        workers = s['parallel_workers']

        self.cache = cache or TTLCache(max_size=s['cache_max_size'], default_ttl=s['cache_ttl_s'])
        self.browser_pool = browser_pool or BrowserPool(size=s['browser_pool_size'], headless=s['headless'])
        self.http = http or HttpClient(PerDomainRateLimiter(
            default_interval=s['request_interval_s'],
            overrides={GITHUB_API_HOST: GITHUB_API_INTERVAL_S},
        ))
        self.fetch_executor = fetch_executor or FetchExecutor(
            default_strategies(self.http, s),
            browser_pool=self.browser_pool,
            max_retries=s['max_retries'],
            base_delay=s['retry_base_delay_s'],
        )
        self.deep_crawler = deep_crawler or DeepCrawler(
            LinkedPageLoader(self.http, browser_pool=self.browser_pool),
            max_pages=s['deep_crawl_max_pages'],
            max_depth=s['deep_crawl_max_depth'],
            max_workers=workers,
        )
        self.verifier = verifier or ExternalVerifier(self.http, cache=self.cache, max_workers=workers,
                                                     github_token=s['github_token'])
        self.social = social or SocialMediaCrawler(self.http, cache=self.cache, max_workers=workers,
                                                   github_token=s['github_token'])
        self.classifier = classifier or GeminiClassifier(api_key=s['gemini_api_key'], model=s['ai_model'])

        rules = load_rules(s['rules_path']) if s.get('rules_path') else load_rules()
        self.pattern_engine = pattern_engine or PatternScoringEngine(rules)
        self.reconciler = reconciler or ConsistencyReconciler()
        self.calculator = calculator or TrustScoreCalculator(rules)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run_audit(self, url: str, deadline: Optional[Deadline] = None) -> AuditReport:
        """Audit ``url`` end to end.

        Only an unreachable main page is fatal. Once the page is fetched,
        later stage failures and deadline expiry degrade the evidence set and
        the audit still produces a score.

        Raises:
            AuditFailedError: when the fetch retry chain is exhausted
        """
        started = time.monotonic()
        if deadline is None:
            deadline = Deadline(self.settings.get('audit_deadline_s'))

        try:
            outcome = self.fetch_executor.fetch(url, deadline=deadline)
        except ExtractionError as e:
            logger.error(f"Audit of {url} failed: [{e.kind.value}] {e.message}")
            raise AuditFailedError(e) from e

        soup = make_soup(outcome.html)
        content = parse_content(outcome.html, url, outcome.method, soup=soup)
        logger.info(f"Parsed {url} via {outcome.method.value}: {content.content_length} chars, "
                    f"{len(content.documentation)} doc sections, {len(content.social_links)} social links")

        findings = self._deep_crawl(outcome.html, url, soup, deadline)
        content = fold_findings(content, findings)

        verification, social = self._gather_evidence(content, findings, deadline)
        content = self._append_summaries(content, verification, social)

        validation = validate_content(content)
        if not validation.is_valid:
            logger.warning(f"Extracted content for {url} is {validation.quality.value} quality "
                           f"(score {validation.score}); scoring with what is available")

        ai_result, ai_error = self._ai_opinion(content, findings, verification, social, deadline)
        pattern_result = self.pattern_engine.analyze(content, verification, social)
        consistency = self.reconciler.reconcile(ai_result, pattern_result, content)
        analysis = merge_analysis(ai_result, pattern_result, consistency, content, findings, verification, social)

        trust_score = self.calculator.calculate(
            analysis.factors,
            analysis.red_flags,
            analysis.positive_indicators,
            content_completeness=validation.score,
            content_length=content.content_length,
        )

        report = AuditReport(
            url=url,
            content=content,
            findings=findings,
            verification=verification,
            social=social,
            validation=validation,
            analysis=analysis,
            consistency=consistency,
            trust_score=trust_score,
            ai_error=ai_error,
            deadline_expired=deadline.expired,
            duration_s=time.monotonic() - started,
        )
        logger.info(f"Audit of {url} complete in {report.duration_s:.1f}s: "
                    f"{trust_score.final_score}/100 ({trust_score.risk_level.value})")
        return report

    def close(self) -> None:
        self.browser_pool.close()
        self.http.close()

    def __enter__(self) -> "AuditManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _deep_crawl(self, html: str, url: str, soup, deadline: Deadline) -> DeepCrawlFindings:
        if not self.settings.get('deep_crawl_enabled', True):
            return DeepCrawlFindings().freeze()
        if deadline.expired:
            logger.warning(f"Skipping deep crawl of {url}: deadline reached")
            return DeepCrawlFindings().freeze()
        try:
            return self.deep_crawler.crawl(html, url, deadline=deadline, soup=soup)
        except Exception as e:
            logger.warning(f"Deep crawl of {url} failed, continuing with main page only: {e}")
            return DeepCrawlFindings().freeze()

    def _gather_evidence(self, content: ExtractedContent, findings: DeepCrawlFindings, deadline: Deadline):
        """Verification and social lookups are independent; run them side by side."""
        verification = ExternalVerification()
        social = SocialMediaData()
        if deadline.expired:
            logger.warning(f"Skipping external lookups for {content.url}: deadline reached")
            return verification, social

        executor = ThreadPoolExecutor(max_workers=2)
        verification_future = executor.submit(self.verifier.verify_content, content, findings, deadline)
        social_future = executor.submit(self.social.crawl, list(content.social_links), deadline)
        try:
            verification = self._collect(verification_future, 'External verification', verification, deadline)
            social = self._collect(social_future, 'Social media crawl', social, deadline)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return verification, social

    def _collect(self, future, stage: str, default, deadline: Deadline):
        try:
            return future.result(timeout=deadline.remaining())
        except FuturesTimeout:
            logger.warning(f"{stage} did not finish before the deadline")
        except Exception as e:
            logger.warning(f"{stage} failed: {e}")
        return default

    def _append_summaries(self, content: ExtractedContent, verification: ExternalVerification,
                          social: SocialMediaData) -> ExtractedContent:
        changes = {}
        if verification.linkedin_profiles or verification.github_profiles or verification.github_repos:
            changes['team_info'] = f"{content.team_info}\n\n{external_verifier.generate_summary(verification)}"
        if social.channels:
            changes['main_content'] = f"{content.main_content}\n\n{social_crawler.generate_summary(social)}"
        return content.with_updates(**changes) if changes else content

    def _ai_opinion(self, content, findings, verification, social, deadline: Deadline):
        if not self.classifier.available:
            logger.info("AI collaborator unavailable; using pattern-based analysis only")
            return None, 'AI collaborator not configured'
        if deadline.expired:
            logger.warning(f"Skipping AI analysis of {content.url}: deadline reached")
            return None, 'Deadline reached before AI analysis'

        prompt = build_analysis_prompt(content, findings, verification, social)
        outcome = self.classifier.classify(prompt)
        if isinstance(outcome, Ok):
            return outcome.result, None
        logger.warning(f"AI analysis unusable for {content.url}: {outcome.reason}")
        return None, outcome.reason
