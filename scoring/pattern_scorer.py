"""
Pattern Scoring Engine

Deterministic rule-based scorer. It is always run as a second opinion next
to the AI collaborator, and it is the only opinion when the collaborator is
unavailable. All vocabularies and regexes come from the rule tables in
``scoring/rules/trust_rules.yml``.
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

from data.models import DeepCrawlFindings, ExternalVerification, ExtractedContent, SocialMediaData
from scoring.rules import RuleSet, load_rules
from scoring.types import AnalysisFactors, AnalysisResult, ProjectType

logger = logging.getLogger(__name__)

KEYWORD_BASE = 40
KEYWORD_POINTS = 8

# Floors applied after keyword scoring; absence of evidence still scores here.
DOCUMENTATION_FLOOR = 50
DEFAULT_FLOOR = 40

VERIFIED_TEAM_BONUS = 20
VERIFIED_REPO_BONUS = 15
LARGE_AUDIENCE = 50_000
LARGE_AUDIENCE_BONUS = 20


def length_bonus(length: int) -> int:
    if length > 500:
        return 25
    if length > 200:
        return 15
    if length > 50:
        return 10
    return 0


def normalize_score(raw: float, floor: int) -> int:
    return max(floor, min(100, int(round(raw))))


class PatternScoringEngine:
    """Keyword and regex scorer over the aggregated page text."""

    def __init__(self, rules: Optional[RuleSet] = None):
        self.rules = rules or load_rules()

    def keyword_score(self, text_lower: str, keywords, section_length: int) -> int:
        score = KEYWORD_BASE
        score += KEYWORD_POINTS * sum(1 for keyword in keywords if keyword in text_lower)
        score += length_bonus(section_length)
        return min(100, score)

    def score_factors(self, content: ExtractedContent,
                      verification: Optional[ExternalVerification] = None,
                      social: Optional[SocialMediaData] = None) -> AnalysisFactors:
        text = content.all_text().lower()
        rules = self.rules
        factors = AnalysisFactors(
            documentation_quality=normalize_score(
                self.keyword_score(text, rules.documentation_keywords, len(content.documentation)),
                DOCUMENTATION_FLOOR),
            transparency_indicators=normalize_score(
                self.keyword_score(text, rules.transparency_keywords, len(content.team_info)),
                DEFAULT_FLOOR),
            security_documentation=normalize_score(
                self.keyword_score(text, rules.security_keywords, len(content.security_info)),
                DEFAULT_FLOOR),
            community_engagement=normalize_score(len(content.social_links) * 20, DEFAULT_FLOOR),
            technical_implementation=normalize_score(
                len(content.code_repositories) * 30 + (20 if 'github' in text else 0),
                DEFAULT_FLOOR),
        )

        if verification is not None:
            if verification.verified_team_members > 0:
                factors.transparency_indicators = min(100, factors.transparency_indicators + VERIFIED_TEAM_BONUS)
            if verification.verified_repos > 0:
                factors.technical_implementation = min(100, factors.technical_implementation + VERIFIED_REPO_BONUS)
        if social is not None and social.total_community > LARGE_AUDIENCE:
            factors.community_engagement = min(100, factors.community_engagement + LARGE_AUDIENCE_BONUS)
        return factors

    # Project classification

    def detect_project_type(self, content: ExtractedContent) -> ProjectType:
        text = content.all_text().lower()
        rules = self.rules
        strong = sum(1 for k in rules.strong_defi if k in text)
        moderate = sum(1 for k in rules.moderate_defi if k in text)
        has_chain_refs = any(p.search(text) for p in rules.blockchain_patterns)
        portfolio = sum(1 for k in rules.portfolio_keywords if k in text)
        business = sum(1 for k in rules.business_keywords if k in text)

        is_defi = strong >= 1 or moderate >= 2 or has_chain_refs
        if is_defi and portfolio < rules.portfolio_threshold and business < rules.business_threshold:
            return ProjectType.DEFI
        if portfolio >= rules.portfolio_threshold and strong == 0 and moderate == 0:
            return ProjectType.PORTFOLIO
        if business >= rules.business_threshold and strong == 0 and moderate == 0:
            return ProjectType.BUSINESS
        if strong or moderate or has_chain_refs:
            return ProjectType.DEFI
        return ProjectType.GENERAL

    def is_dao(self, text: str) -> bool:
        return self.rules.dao_markers.matches(text.lower())

    def is_mature(self, text: str, content: ExtractedContent) -> bool:
        return self.rules.maturity_markers.matches(text.lower(), len(content.social_links))

    # Red flags

    def detect_red_flags(self, content: ExtractedContent, current_year: Optional[int] = None) -> List[str]:
        text = content.all_text()
        lower = text.lower()
        flags = []

        for pattern in self.rules.suspicious_patterns:
            match = pattern.search(text)
            if match:
                flags.append(self.rules.suspicious_message.format(phrase=match.group(0).lower()))

        project_type = self.detect_project_type(content)
        if project_type == ProjectType.DEFI:
            self._defi_red_flags(content, lower, flags)
        elif project_type == ProjectType.PORTFOLIO:
            self._portfolio_red_flags(content, lower, flags, current_year or datetime.now().year)
        else:
            self._general_red_flags(content, lower, flags)

        if 'lorem ipsum' in lower or 'placeholder' in lower:
            flags.append('Critical: Placeholder content detected - Website appears incomplete')
        return flags

    def _defi_red_flags(self, content: ExtractedContent, lower: str, flags: List[str]):
        mature = self.is_mature(lower, content)
        if not self.is_dao(lower) and len(content.team_info) < 50 and 'governance' not in lower:
            flags.append('Moderate: Limited team information - Verify team identity through LinkedIn '
                         'and professional networks')
        if not content.code_repositories and 'github' not in lower and not mature:
            flags.append('Moderate: No public code repositories found on main page - Check documentation '
                         'for GitHub links')
        if len(content.security_info) < 50 and 'audit' not in lower and 'security' not in lower:
            flags.append('High Risk: No security information found - Verify smart contract security '
                         'through independent auditors')
        if len(content.tokenomics) < 50 and 'token' not in lower and not mature:
            flags.append('Moderate: Limited tokenomics information - Verify token distribution independently')

    def _portfolio_red_flags(self, content: ExtractedContent, lower: str, flags: List[str], current_year: int):
        next_year = current_year + 1
        if re.search(rf'(started|began|completed|launched).*{next_year}', lower):
            flags.append(f'Inconsistent dates on development journey: events listed as occurring in '
                         f'{next_year} are presented as past accomplishments')
        if re.search(r'0\+\s*(projects|years|clients|technologies)', lower):
            flags.append('Conflicting metrics display: statistics showing "0+" values contradict other '
                         'stated achievements')
        if len(content.team_info) < 50 and 'linkedin' not in lower:
            flags.append('Moderate: Limited personal information - Verify identity through LinkedIn '
                         'and professional networks')
        if not content.social_links:
            flags.append('Moderate: No social media links found - Professional profiles help verify credibility')

    def _general_red_flags(self, content: ExtractedContent, lower: str, flags: List[str]):
        if not content.documentation and 'documentation' not in lower and 'docs' not in lower:
            flags.append('Warning: No technical documentation found - May indicate incomplete project')
        if not content.social_links and 'twitter' not in lower and 'discord' not in lower:
            flags.append('Warning: No social media presence found - May indicate lack of community engagement')
        if 'coming soon' in lower and len(content.team_info) < 100:
            flags.append('High Risk: "Coming soon" content with limited information - Incomplete project')

    # Positive indicators

    def detect_positive_indicators(self, content: ExtractedContent) -> List[str]:
        text = content.all_text()
        positives = []
        for rule in self.rules.positive_rules:
            matched = bool(rule.pattern.search(text))
            if rule.or_code_repositories and content.code_repositories:
                matched = True
            if matched and rule.requires is not None and not rule.requires.search(text):
                matched = False
            if matched:
                positives.append(rule.message)
        if len(content.social_links) >= self.rules.multi_platform_min_links:
            positives.append(self.rules.multi_platform_message)
        return positives

    # Narrative

    def explanations(self, factors: AnalysisFactors, content: ExtractedContent) -> Dict[str, str]:
        return {
            'documentation_quality': f'Pattern-based analysis found {len(content.documentation)} documentation '
                                     f'sections. Score: {factors.documentation_quality}/100',
            'transparency_indicators': f'Team information length: {len(content.team_info)} characters. '
                                       f'Score: {factors.transparency_indicators}/100',
            'security_documentation': f'Security information length: {len(content.security_info)} characters. '
                                      f'Score: {factors.security_documentation}/100',
            'community_engagement': f'Found {len(content.social_links)} social media links. '
                                    f'Score: {factors.community_engagement}/100',
            'technical_implementation': f'Found {len(content.code_repositories)} code repositories. '
                                        f'Score: {factors.technical_implementation}/100',
        }

    def recommendations(self, content: ExtractedContent) -> List[str]:
        recs = []
        if len(content.team_info) < 200:
            recs.append('Request detailed team bios with LinkedIn profiles and employment history verification')
            recs.append('Use template: "Please provide team member backgrounds, previous experience, and '
                        'LinkedIn profiles for verification"')
        if len(content.security_info) < 100:
            recs.append('Verify security audits by checking auditor websites directly '
                        '(Consensys, Trail of Bits, OpenZeppelin)')
            recs.append('Look for active bug bounty programs on Immunefi or HackerOne platforms')
        if not content.code_repositories:
            recs.append('Verify code availability on GitHub and check commit history for recent activity')
            recs.append('Request technical architecture documentation and integration examples')
        if len(content.social_links) < 3:
            recs.append('Cross-verify social media accounts for authenticity and genuine follower engagement')
        recs.append('Use block explorers to verify tokenomics and contract addresses independently')
        recs.append('Check community forums (Reddit, Discord) for unbiased user feedback and experiences')
        recs.append('Monitor project for 30-60 days to assess team responsiveness and development activity')
        return recs

    def risks(self, content: ExtractedContent) -> List[str]:
        risks = []
        if len(content.team_info) < 100:
            risks.append('Team transparency risk: Limited team information increases rug pull potential - '
                         'Monitor team communications')
        if len(content.security_info) < 50:
            risks.append('Security risk: No audit documentation found - Verify smart contract security independently')
        if not content.code_repositories:
            risks.append('Technical risk: Closed source code prevents security review - Request code '
                         'availability or audit reports')
        if len(content.social_links) < 2:
            risks.append('Adoption risk: Limited community presence may indicate low user engagement')
        if len(content.documentation) < 2:
            risks.append('Integration risk: Poor documentation may hinder developer adoption and ecosystem growth')
        if len(content.tokenomics) < 100:
            risks.append('Economic risk: Unclear tokenomics may lead to unexpected inflation or value dilution')
        risks.append('Analysis limitation: Pattern-based assessment requires manual verification for accuracy')
        risks.append('Temporal risk: Project status may change rapidly - Re-evaluate within 30 days')
        return risks

    def analyze(self, content: ExtractedContent,
                verification: Optional[ExternalVerification] = None,
                social: Optional[SocialMediaData] = None,
                current_year: Optional[int] = None) -> AnalysisResult:
        factors = self.score_factors(content, verification, social)
        result = AnalysisResult(
            factors=factors,
            explanations=self.explanations(factors, content),
            recommendations=self.recommendations(content),
            risks=self.risks(content),
            red_flags=self.detect_red_flags(content, current_year),
            positive_indicators=self.detect_positive_indicators(content),
            project_type=self.detect_project_type(content),
            source='pattern',
        )
        logger.info(f"Pattern analysis for {content.url}: {factors.to_dict()} "
                    f"({len(result.red_flags)} red flags, {len(result.positive_indicators)} positives)")
        return result


def _quality(score: int, labels) -> str:
    if score >= 80:
        return labels[0]
    if score >= 60:
        return labels[1]
    if score >= 40:
        return labels[2]
    return labels[3]


def describe_factors(factors: AnalysisFactors, content: ExtractedContent,
                     findings: Optional[DeepCrawlFindings] = None,
                     verification: Optional[ExternalVerification] = None,
                     social: Optional[SocialMediaData] = None) -> Dict[str, str]:
    """Narrative per factor for reports when no AI explanation exists."""
    doc = factors.documentation_quality
    doc_text = (f"Documentation quality is {_quality(doc, ('comprehensive', 'adequate', 'limited', 'insufficient'))} "
                f"with {len(content.documentation)} section(s) identified. ")
    if doc >= 80:
        doc_text += 'Multiple documentation resources demonstrate strong commitment to transparency.'
    elif doc >= 60:
        doc_text += 'Basic documentation is present but could be expanded with more technical details and examples.'
    else:
        doc_text += 'Limited documentation may hinder developer adoption and user understanding.'

    tr = factors.transparency_indicators
    tr_quality = _quality(tr, ('excellent', 'good', 'moderate', 'poor'))
    if verification is not None and verification.verified_team_members > 0:
        tr_text = (f'Transparency is {tr_quality} with {verification.verified_team_members} verified team '
                   f'member(s). External verification confirms team profiles exist.')
    elif findings is not None and findings.governance_found:
        tr_text = (f'Transparency is {tr_quality} with decentralized governance system in place. '
                   f'{findings.governance_details[:150]}...')
    else:
        tr_text = (f'Transparency indicators are {tr_quality} with {len(content.team_info)} characters of team '
                   'information.')

    sec = factors.security_documentation
    sec_quality = _quality(sec, ('strong', 'adequate', 'basic', 'weak'))
    if findings is not None and findings.bug_bounty_found:
        sec_text = (f'Security practices are {sec_quality} with active bug bounty program. '
                    f'{findings.bug_bounty_details[:150]}...')
    else:
        sec_text = (f'Security documentation is {sec_quality} with {len(content.security_info)} characters of '
                    'security information.')

    com = factors.community_engagement
    com_quality = _quality(com, ('exceptional', 'strong', 'moderate', 'limited'))
    if social is not None and social.channels:
        com_text = (f'Community engagement is {com_quality} with {social.active_channels} active platform(s) and '
                    f'{social.total_community:,} total followers/members.')
    else:
        com_text = f'Community engagement is {com_quality} with {len(content.social_links)} social media platform(s).'

    tech = factors.technical_implementation
    tech_quality = _quality(tech, ('excellent', 'good', 'basic', 'limited'))
    if verification is not None and verification.verified_repos > 0:
        tech_text = (f'Technical implementation is {tech_quality} with {verification.verified_repos} verified '
                     'repository(ies).')
    else:
        tech_text = (f'Technical implementation is {tech_quality} with {len(content.code_repositories)} code '
                     'repository(ies) identified.')

    return {
        'documentation_quality': doc_text,
        'transparency_indicators': tr_text,
        'security_documentation': sec_text,
        'community_engagement': com_text,
        'technical_implementation': tech_text,
    }
