"""Data models module for the SERP competitor intelligence pipeline."""

from serp_intel.models.schemas import (
    # Base Models
    BaseModel,

    # Enums
    AnalysisStatus,
    SentimentLabel,

    # Input Models
    AnalysisConfig,

    # NLP Models
    EntityData,
    SentimentData,

    # Page Models
    Heading,
    ImageData,
    LinkCounts,
    StructuredDataBlock,
    StyledElement,
    StyledElements,
    ScrapedData,
    SearchResultItem,

    # Persisted Records
    NewAnalysis,
    Analysis,
    AnalysisOutcome,
    AnalysisSummary,
    NewCompetitorResult,
    CompetitorResult,

    # Read Models
    AnalysisProjection,

    # Helpers
    extract_domain,
    sentiment_label,
    strip_www,
)

__all__ = [
    "BaseModel",
    "AnalysisStatus",
    "SentimentLabel",
    "AnalysisConfig",
    "EntityData",
    "SentimentData",
    "Heading",
    "ImageData",
    "LinkCounts",
    "StructuredDataBlock",
    "StyledElement",
    "StyledElements",
    "ScrapedData",
    "SearchResultItem",
    "NewAnalysis",
    "Analysis",
    "AnalysisOutcome",
    "AnalysisSummary",
    "NewCompetitorResult",
    "CompetitorResult",
    "AnalysisProjection",
    "extract_domain",
    "sentiment_label",
    "strip_www",
]
