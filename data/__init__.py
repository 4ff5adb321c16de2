"""Data package for the audit pipeline.

Exposes the content models shared by ingestion and scoring.
"""

from .models import (
    CategorizedLink,
    DeepCrawlFindings,
    ExternalVerification,
    ExtractedContent,
    ExtractionMethod,
    LinkCategory,
    SocialMediaData,
    TeamMember,
)

__all__ = [
    "CategorizedLink",
    "DeepCrawlFindings",
    "ExternalVerification",
    "ExtractedContent",
    "ExtractionMethod",
    "LinkCategory",
    "SocialMediaData",
    "TeamMember",
]
