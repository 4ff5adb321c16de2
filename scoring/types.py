import math
from dataclasses import dataclass, field, asdict, fields
from typing import List, Dict, Any, Optional
from enum import Enum

FACTOR_NAMES = (
    'documentation_quality',
    'transparency_indicators',
    'security_documentation',
    'community_engagement',
    'technical_implementation',
)


def clamp_score(value: Any) -> int:
    """Round into [0, 100]; non-numeric or non-finite input becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(max(0, min(100, round(number))))


class QualityTier(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INSUFFICIENT = "insufficient"


class Confidence(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskLevel(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    TRUSTED = "TRUSTED"


class ProjectType(Enum):
    DEFI = "defi"
    PORTFOLIO = "portfolio"
    BUSINESS = "business"
    GENERAL = "general"


@dataclass
class AnalysisFactors:
    """The five scored dimensions, each 0-100"""
    documentation_quality: int = 0
    transparency_indicators: int = 0
    security_documentation: int = 0
    community_engagement: int = 0
    technical_implementation: int = 0

    def clamped(self) -> "AnalysisFactors":
        return AnalysisFactors(**{name: clamp_score(getattr(self, name)) for name in FACTOR_NAMES})

    def items(self):
        return [(name, getattr(self, name)) for name in FACTOR_NAMES]

    def to_dict(self) -> Dict[str, int]:
        return dict(self.items())


@dataclass
class AnalysisResult:
    """One scoring opinion (AI-derived or pattern-derived) with its narrative"""
    factors: AnalysisFactors
    explanations: Dict[str, str] = field(default_factory=dict)  # keyed by factor name
    recommendations: List[str] = field(default_factory=list)
    risks: List[str] = field(default_factory=list)
    red_flags: List[str] = field(default_factory=list)
    positive_indicators: List[str] = field(default_factory=list)
    project_type: Optional[ProjectType] = None
    source: str = "pattern"  # "pattern", "ai", "reconciled"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'factors': self.factors.to_dict(),
            'explanations': dict(self.explanations),
            'recommendations': list(self.recommendations),
            'risks': list(self.risks),
            'red_flags': list(self.red_flags),
            'positive_indicators': list(self.positive_indicators),
            'project_type': self.project_type.value if self.project_type else None,
            'source': self.source,
        }


@dataclass
class ContentMetrics:
    total_word_count: int
    title_length: int
    description_length: int
    documentation_sections: int
    social_links_count: int
    code_repository_count: int
    structured_content_ratio: float  # structured words / total words
    duplicate_content_ratio: float   # 1 - unique sentences / sentences


@dataclass
class ValidationResult:
    is_valid: bool
    quality: QualityTier
    score: int  # 0-100
    issues: List[str]
    recommendations: List[str]
    metrics: ContentMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'quality': self.quality.value,
            'score': self.score,
            'issues': list(self.issues),
            'recommendations': list(self.recommendations),
            'metrics': asdict(self.metrics),
        }


@dataclass
class ConsistencyReport:
    is_consistent: bool
    score: float  # 0-100 consistency score
    issues: List[str]
    adjustments: AnalysisFactors  # reconciled factors
    confidence: Confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_consistent': self.is_consistent,
            'score': self.score,
            'issues': list(self.issues),
            'adjustments': self.adjustments.to_dict(),
            'confidence': self.confidence.value,
        }


@dataclass(frozen=True)
class ScoreAdjustment:
    """One ledger entry applied to the running trust score"""
    factor: str       # "Red Flag", "Positive Indicator", "Critical Red Flag Cap"
    adjustment: float  # signed delta
    reason: str
    type: str         # "penalty", "bonus", "cap"
    severity: str     # "minor", "moderate", "critical"
    category: str     # "red_flag", "positive_indicator", "critical_cap"

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class TrustScoreResult:
    final_score: int  # 0-100
    risk_level: RiskLevel
    confidence: int   # 0-100
    breakdown: AnalysisFactors
    adjustments: List[ScoreAdjustment]
    base_score: int
    red_flags: List[str]
    positive_indicators: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'final_score': self.final_score,
            'risk_level': self.risk_level.value,
            'confidence': self.confidence,
            'breakdown': self.breakdown.to_dict(),
            'adjustments': [a.to_dict() for a in self.adjustments],
            'base_score': self.base_score,
            'red_flags': list(self.red_flags),
            'positive_indicators': list(self.positive_indicators),
        }
