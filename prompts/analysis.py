"""
Analysis Prompts

Prompt for the AI collaborator that scores a project across the five trust
factors. Evidence from the deep crawl, external verification and social
lookups is summarized so the model can weigh it.
"""

from typing import Optional

from data.models import DeepCrawlFindings, ExternalVerification, ExtractedContent, SocialMediaData

# =============================================================================
# SYSTEM PROMPT
# =============================================================================

ANALYSIS_SYSTEM = """You are an expert due-diligence analyst evaluating the trustworthiness of
blockchain, DeFi and Web3 project websites.

Always respond in English, regardless of the language of the content being analyzed.
Base every score on evidence present in the supplied content. Do not invent facts."""

# =============================================================================
# FACTOR CRITERIA
# =============================================================================

FACTOR_CRITERIA = """
1. DOCUMENTATION QUALITY (0-100) - technical documentation, whitepaper, developer guides,
   API references, FAQ. Established protocols with comprehensive doc sections score 90+.

2. TRANSPARENCY INDICATORS (0-100) - named team members, verifiable profiles, tokenomics,
   treasury and governance disclosure. DAOs with transparent on-chain governance score 80+.

3. SECURITY DOCUMENTATION (0-100) - audits by named firms, bug bounty programs, multisig and
   timelock controls, incident response. A bug bounty on a dedicated page scores 85+.

4. COMMUNITY ENGAGEMENT (0-100) - active social channels, audience size, governance forum
   participation. Verified channels with large audiences score 85+.

5. TECHNICAL IMPLEMENTATION (0-100) - public repositories, recent commit activity, open
   source code, multi-chain deployment, test coverage.
"""

RESPONSE_FORMAT = """
Return your analysis in this EXACT JSON format (no additional text):
{
  "factors": {
    "documentationQuality": [0-100 number],
    "transparencyIndicators": [0-100 number],
    "securityDocumentation": [0-100 number],
    "communityEngagement": [0-100 number],
    "technicalImplementation": [0-100 number]
  },
  "explanations": {
    "documentationQuality": "[explanation with specific findings]",
    "transparencyIndicators": "[explanation with team and disclosure assessment]",
    "securityDocumentation": "[explanation with audit and security practice analysis]",
    "communityEngagement": "[explanation with engagement metrics]",
    "technicalImplementation": "[explanation with code and architecture assessment]"
  },
  "recommendations": ["[specific actionable verification step]"],
  "risks": ["[specific risk with impact assessment]"],
  "redFlags": ["[red flag with verification method]"],
  "positiveIndicators": ["[positive indicator with evidence]"]
}
"""

# Caps keep the prompt within the model's context budget.
MAIN_CONTENT_CHARS = 8000
SECTION_CHARS = 3000
DETAIL_CHARS = 200


def _deep_crawl_section(findings: DeepCrawlFindings) -> str:
    lines = [
        "DEEP CRAWL FINDINGS:",
        f"- Pages Crawled: {len(findings.crawled_pages)} additional pages analyzed",
        f"- Team Page Found: {'YES' if findings.team_page_found else 'NO'}",
        f"- Team Members Identified: {len(findings.team_members)}",
    ]
    if findings.team_members:
        members = '; '.join(
            f"{m.name}{f' ({m.role})' if m.role else ''}{' [LinkedIn]' if m.linkedin else ''}"
            for m in findings.team_members
        )
        lines.append(f"  Team: {members}")
    lines.append(f"- Bug Bounty Program: {'YES' if findings.bug_bounty_found else 'NO'}")
    if findings.bug_bounty_found:
        lines.append(f"  Details: {findings.bug_bounty_details[:DETAIL_CHARS]}")
    lines.append(f"- DAO Governance: {'YES' if findings.governance_found else 'NO'}")
    if findings.governance_found:
        lines.append(f"  Details: {findings.governance_details[:DETAIL_CHARS]}")
    lines.append(f"- Documentation Links: {len(findings.documentation_links)} additional doc pages found")
    lines.append("")
    lines.append("Use this data when scoring: named team members with LinkedIn profiles support transparency "
                 "75-90+, a bug bounty program supports security 80-95+, DAO governance supports "
                 "transparency 80-95+.")
    return "\n".join(lines)


def _verification_section(verification: ExternalVerification) -> str:
    linkedin_verified = sum(1 for p in verification.linkedin_profiles if p.verified)
    github_verified = sum(1 for p in verification.github_profiles if p.verified)
    lines = [
        "EXTERNAL SOURCE VERIFICATION:",
        f"- Overall Verification Score: {verification.overall_trust_score}/100",
        f"- LinkedIn Profiles Verified: {linkedin_verified}/{len(verification.linkedin_profiles)}",
        f"- GitHub Profiles Verified: {github_verified}/{len(verification.github_profiles)}",
        f"- GitHub Repositories Verified: {verification.verified_repos}/{len(verification.github_repos)}",
    ]
    for repo in verification.github_repos:
        if repo.verified:
            lines.append(f"  {repo.name} - {repo.stars} stars, {'ACTIVE' if repo.is_active else 'INACTIVE'}")
    lines.append("")
    lines.append("Do not flag missing team information when LinkedIn profiles are verified. Verified, active "
                 "repositories support a technical score of 85+.")
    return "\n".join(lines)


def _social_section(social: SocialMediaData) -> str:
    lines = ["SOCIAL MEDIA PRESENCE:"]
    for platform, channel in social.channels.items():
        status = 'ACTIVE' if channel.exists else 'NOT FOUND'
        audience = channel.followers + channel.members
        lines.append(f"- {platform.capitalize()}: {status}{f' ({audience:,} followers/members)' if audience else ''}")
    lines.append(f"- Total Community: {social.total_community:,}")
    lines.append(f"- Community Score: {social.community_score}/100")
    lines.append("")
    lines.append("Total community above 100K supports community 90-95+; above 50K supports 85-90+. Do not flag "
                 "a small community when social data shows a large following.")
    return "\n".join(lines)


def build_analysis_prompt(
    content: ExtractedContent,
    findings: Optional[DeepCrawlFindings] = None,
    verification: Optional[ExternalVerification] = None,
    social: Optional[SocialMediaData] = None,
) -> str:
    """Build the full analysis prompt for one audited site."""
    sections = [
        ANALYSIS_SYSTEM,
        "",
        "PROJECT INFORMATION:",
        f"- URL: {content.url}",
        f"- Title: {content.title}",
        f"- Description: {content.description}",
        "",
        "CONTENT TO ANALYZE:",
        f"Main Content: {content.main_content[:MAIN_CONTENT_CHARS]}",
        f"Documentation: {chr(10).join(content.documentation)[:SECTION_CHARS]}",
        f"Team Information: {content.team_info[:SECTION_CHARS]}",
        f"Tokenomics: {content.tokenomics[:SECTION_CHARS]}",
        f"Security Information: {content.security_info[:SECTION_CHARS]}",
        f"Social Links: {', '.join(content.social_links)}",
        f"Code Repositories: {', '.join(content.code_repositories)}",
    ]
    if findings is not None:
        sections += ["", _deep_crawl_section(findings)]
    if verification is not None:
        sections += ["", _verification_section(verification)]
    if social is not None and social.channels:
        sections += ["", _social_section(social)]
    sections += ["", "SCORING CRITERIA:", FACTOR_CRITERIA, RESPONSE_FORMAT]
    return "\n".join(sections)
