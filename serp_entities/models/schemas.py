from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Device = Literal["desktop", "mobile", "tablet"]
Importance = Literal["high", "medium", "low"]


# --- Requests ---


class SearchParams(BaseModel):
    query: str
    country: str = "us"
    lang: str = "en"
    device: Device = "desktop"
    user_url: Optional[str] = None
    # XMLStock passthrough parameters
    groupby: Optional[int] = None
    domain: Optional[str] = None
    tbm: Optional[str] = None
    hl: Optional[str] = None
    gl: Optional[str] = None

    def extra_params(self) -> dict[str, str]:
        extras = {
            "groupby": self.groupby,
            "domain": self.domain,
            "tbm": self.tbm,
            "hl": self.hl,
            "gl": self.gl,
        }
        return {key: str(value) for key, value in extras.items() if value not in (None, "")}


# --- Acquisition ---


class SearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: int
    title: str
    url: str
    snippet: Optional[str] = None


class PageExtract(BaseModel):
    url: str
    title: Optional[str] = None
    text: str
    word_count: int = 0
    error: Optional[str] = None


# --- Entities ---


class EntityMention(BaseModel):
    name: str
    type: str
    salience: float = Field(ge=0.0, le=1.0)
    mention_count: int = 1
    source_url: str
    mention_texts: list[str] = Field(default_factory=list)
    wikipedia_url: Optional[str] = None


class CanonicalEntity(BaseModel):
    lemma: str
    type: str
    total_salience: float
    doc_count: int
    total_mentions: int
    sources: list[str] = Field(default_factory=list)
    avg_salience: float
    original_forms: list[str] = Field(default_factory=list)

    @property
    def forms_count(self) -> int:
        return len(self.original_forms)


class UserPageAnalysis(BaseModel):
    url: str
    title: Optional[str] = None
    entities: list[EntityMention] = Field(default_factory=list)
    word_count: int = 0
    entity_count: int = 0
    top_entities: list[EntityMention] = Field(default_factory=list)


class EntityGap(BaseModel):
    entity: CanonicalEntity
    importance: Importance
    recommendation: str


class ComparisonResult(BaseModel):
    user_page: UserPageAnalysis
    top_entities: list[CanonicalEntity] = Field(default_factory=list)
    missing_entities: list[CanonicalEntity] = Field(default_factory=list)
    entity_gaps: list[EntityGap] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# --- Results ---


class PipelineResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    top10: list[SearchResult]
    per_url_entities: dict[str, list[EntityMention]] = Field(default_factory=dict)
    aggregate: list[CanonicalEntity] = Field(default_factory=list)
    llm_summary: str = ""
    user_page_analysis: Optional[UserPageAnalysis] = None
    comparison: Optional[ComparisonResult] = None
    errors: dict[str, str] = Field(default_factory=dict)
    processing_time: int = 0
    timestamp: str
    summary_fallback_used: bool = False
