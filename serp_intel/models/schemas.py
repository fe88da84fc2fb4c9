"""
Pydantic models and schemas for the SERP competitor intelligence pipeline.

This module defines all data structures used throughout the pipeline,
ensuring type safety, validation, and serialization consistency.

Models:
    - AnalysisConfig: Submission input validation
    - Analysis: One keyword research run and its lifecycle state
    - ScrapedData: Structured signals parsed from one page
    - CompetitorResult: One persisted competitor page
    - AnalysisSummary / AnalysisOutcome: Aggregated results
    - AnalysisProjection: Read model returned to callers
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Self
from urllib.parse import urlparse

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# Base Configuration
# =============================================================================

class BaseModel(PydanticBaseModel):
    """Base model with common configuration for all schemas.

    Fields are snake_case in Python and camelCase on the wire
    (``model_dump(by_alias=True)``).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_assignment=False,
    )

    def to_json(self, **kwargs) -> str:
        """Serialize model to a camelCase JSON string."""
        return self.model_dump_json(by_alias=True, indent=2, **kwargs)

    def to_dict(self, **kwargs) -> dict[str, Any]:
        """Serialize model to a camelCase dictionary."""
        return self.model_dump(by_alias=True, mode="json", **kwargs)

    @classmethod
    def from_json(cls, json_str: str) -> Self:
        """Deserialize model from JSON string."""
        return cls.model_validate_json(json_str)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def serialize_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO format string."""
    if not value:
        return None
    # If naive, assume UTC and append Z
    if value.tzinfo is None:
        return value.isoformat() + "Z"
    return value.isoformat()


# =============================================================================
# Enums
# =============================================================================

class AnalysisStatus(str, Enum):
    """Lifecycle of an analysis run."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.COMPLETED, AnalysisStatus.FAILED)

    def can_transition_to(self, target: "AnalysisStatus | str") -> bool:
        """pending -> processing -> completed|failed, never backwards."""
        return AnalysisStatus(target) in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[AnalysisStatus, frozenset[AnalysisStatus]] = {
    # pending may fail directly when the detached task dies before starting
    AnalysisStatus.PENDING: frozenset({AnalysisStatus.PROCESSING, AnalysisStatus.FAILED}),
    AnalysisStatus.PROCESSING: frozenset({AnalysisStatus.COMPLETED, AnalysisStatus.FAILED}),
    AnalysisStatus.COMPLETED: frozenset(),
    AnalysisStatus.FAILED: frozenset(),
}


class SentimentLabel(str, Enum):
    """Coarse sentiment classification."""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


SENTIMENT_THRESHOLD = 0.1


def sentiment_label(score: float) -> SentimentLabel:
    """Label a sentiment score; the +/-0.1 boundaries themselves are neutral."""
    if score > SENTIMENT_THRESHOLD:
        return SentimentLabel.POSITIVE
    if score < -SENTIMENT_THRESHOLD:
        return SentimentLabel.NEGATIVE
    return SentimentLabel.NEUTRAL


# =============================================================================
# Validators (Reusable)
# =============================================================================

def strip_www(hostname: str) -> str:
    """Drop a leading ``www.`` from a hostname."""
    hostname = hostname.lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


def extract_domain(url: str) -> str:
    """Hostname of ``url`` without a leading ``www.``; the input itself if unparseable."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return url
    if not hostname:
        return url
    return strip_www(hostname)


# =============================================================================
# Input Models
# =============================================================================

class AnalysisConfig(BaseModel):
    """
    Submission for a new analysis.

    Example:
        >>> config = AnalysisConfig(keyword="best coffee makers")
        >>> config.country
        'US'
    """

    keyword: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Search keyword to research",
        examples=["best coffee makers"],
    )
    country: str = Field(
        default="US",
        min_length=2,
        max_length=2,
        description="ISO 3166-1 alpha-2 country used to localize search results",
    )
    language: str = Field(
        default="en",
        min_length=2,
        max_length=10,
        description="Interface language for search results",
    )
    entity_extraction: bool = Field(default=True, description="Run entity extraction per page")
    sentiment_analysis: bool = Field(default=True, description="Run sentiment analysis per page")
    image_analysis: bool = Field(
        default=False,
        description="Accepted for compatibility with the submission form; currently has no effect",
    )
    google_api_key: Optional[SecretStr] = Field(default=None, description="Google API key override")
    google_cse_id: Optional[SecretStr] = Field(default=None, description="Custom Search Engine id override")

    @field_validator("keyword", mode="before")
    @classmethod
    def strip_keyword(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("country", mode="before")
    @classmethod
    def normalize_country(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("language", mode="before")
    @classmethod
    def normalize_language(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


# =============================================================================
# NLP Models
# =============================================================================

class EntityData(BaseModel):
    """A named entity extracted from page text."""

    name: str
    type: str = "UNKNOWN"
    salience: float = Field(default=0.0, ge=0.0, le=1.0)
    mentions: int = Field(default=0, ge=0)
    knowledge_graph_id: Optional[str] = None


class SentimentData(BaseModel):
    """Document sentiment; ``label`` is derived from ``score`` when omitted."""

    score: float = Field(..., ge=-1.0, le=1.0)
    magnitude: float = Field(default=0.0, ge=0.0)
    label: Optional[SentimentLabel] = None

    @model_validator(mode="after")
    def derive_label(self) -> Self:
        if self.label is None:
            self.label = sentiment_label(self.score).value
        return self


# =============================================================================
# Page Models
# =============================================================================

class Heading(BaseModel):
    level: int = Field(..., ge=1, le=6)
    text: str


class ImageData(BaseModel):
    src: str
    alt: str = ""


class LinkCounts(BaseModel):
    internal: int = Field(default=0, ge=0)
    external: int = Field(default=0, ge=0)


class StructuredDataBlock(BaseModel):
    """One parsed JSON-LD block together with its declared schema.org type(s)."""

    schema_type: Optional[str | list[str]] = None
    payload: Any = None

    @classmethod
    def from_json_ld(cls, data: Any) -> "StructuredDataBlock":
        return cls(schema_type=_json_ld_type(data), payload=data)


def _json_ld_type(data: Any) -> Optional[str | list[str]]:
    if isinstance(data, dict):
        declared = data.get("@type")
        if isinstance(declared, str):
            return declared
        if isinstance(declared, list):
            return [str(t) for t in declared]
        graph = data.get("@graph")
        if isinstance(graph, list):
            return _json_ld_type(graph)
        return None
    if isinstance(data, list):
        types: list[str] = []
        for item in data:
            found = _json_ld_type(item)
            if isinstance(found, str):
                types.append(found)
            elif found:
                types.extend(found)
        return types or None
    return None


class StyledElement(BaseModel):
    tag: str
    text: str


class StyledElements(BaseModel):
    emphasis: list[StyledElement] = Field(default_factory=list)
    strong: list[StyledElement] = Field(default_factory=list)
    italic: list[StyledElement] = Field(default_factory=list)


class ScrapedData(BaseModel):
    """Structured signals parsed from one page's markup."""

    title: str = ""
    meta_description: str = ""
    content: str = ""
    full_content: str = ""
    word_count: int = Field(default=0, ge=0)
    headings: list[Heading] = Field(default_factory=list)
    images: list[ImageData] = Field(default_factory=list)
    links: LinkCounts = Field(default_factory=LinkCounts)
    structured_data: list[StructuredDataBlock] = Field(default_factory=list)
    styled_elements: StyledElements = Field(default_factory=StyledElements)


class SearchResultItem(BaseModel):
    """One organic search result."""

    title: str = ""
    link: str
    snippet: str = ""
    display_link: str = ""


# =============================================================================
# Persisted Records
# =============================================================================

class NewCompetitorResult(BaseModel):
    """Competitor record before the store assigns an id."""

    analysis_id: int
    rank: int = Field(..., ge=1)
    url: str
    domain: str
    title: Optional[str] = None
    meta_description: Optional[str] = None
    content: str = ""
    full_content: str = ""
    word_count: int = Field(default=0, ge=0)
    entities: list[EntityData] = Field(default_factory=list)
    sentiment: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    headings: list[Heading] = Field(default_factory=list)
    images: list[ImageData] = Field(default_factory=list)
    links: LinkCounts = Field(default_factory=LinkCounts)
    structured_data: list[StructuredDataBlock] = Field(default_factory=list)
    styled_elements: StyledElements = Field(default_factory=StyledElements)


class CompetitorResult(NewCompetitorResult):
    """One scraped and analyzed competing page within an analysis."""

    id: int


class AnalysisSummary(BaseModel):
    """Cross-page statistics."""

    avg_word_count: int = 0
    avg_title_length: int = 0
    common_entities: list[EntityData] = Field(default_factory=list)
    avg_sentiment: float = 0.0
    total_pages: int = 0


class AnalysisOutcome(BaseModel):
    """Terminal payload: results on success, ``error`` on failure."""

    summary: Optional[AnalysisSummary] = None
    recommendations: list[str] = Field(default_factory=list)
    total_competitors: Optional[int] = None
    search_results_count: Optional[int] = None
    error: Optional[str] = None


class NewAnalysis(BaseModel):
    keyword: str = Field(..., min_length=1)
    country: str = "US"
    language: str = "en"


class Analysis(NewAnalysis):
    """One keyword research run."""

    id: int
    status: AnalysisStatus = AnalysisStatus.PENDING
    results: Optional[AnalysisOutcome] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @field_serializer("created_at", "completed_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return serialize_timestamp(value)


# =============================================================================
# Read Models
# =============================================================================

class AnalysisProjection(BaseModel):
    """Analysis joined with its competitors, as returned to callers."""

    id: int
    keyword: str
    country: str
    language: str
    status: AnalysisStatus
    competitors: list[CompetitorResult] = Field(default_factory=list)
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)
    recommendations: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    @field_serializer("created_at", "completed_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return serialize_timestamp(value)

    @classmethod
    def build(cls, analysis: Analysis, competitors: list[CompetitorResult]) -> "AnalysisProjection":
        """Join an analysis with its competitors, defaulting results until terminal."""
        outcome = analysis.results or AnalysisOutcome()
        return cls(
            id=analysis.id,
            keyword=analysis.keyword,
            country=analysis.country,
            language=analysis.language,
            status=analysis.status,
            competitors=sorted(competitors, key=lambda c: c.rank),
            summary=outcome.summary or AnalysisSummary(),
            recommendations=list(outcome.recommendations),
            error=outcome.error,
            created_at=analysis.created_at,
            completed_at=analysis.completed_at,
        )
