from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ResourceType = Literal["video", "article", "interactive", "course", "book"]
ResourceQuality = Literal["high", "medium", "low"]
DifficultyLevel = Literal["beginner", "intermediate", "advanced"]
CurationStatus = Literal["created", "linked", "unchanged", "skipped"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LearningStyleFit(CamelModel):
    visual: int = Field(ge=0, le=100)
    auditory: int = Field(ge=0, le=100)
    reading: int = Field(ge=0, le=100)
    kinesthetic: int = Field(ge=0, le=100)


class DiscoveredResource(CamelModel):
    url: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    source_type: ResourceType
    source_name: str
    authority_score: int = Field(ge=0, le=100)
    visual_richness: int = Field(ge=0, le=100)
    engagement_score: int = Field(ge=0, le=100)
    freshness_score: int = Field(ge=0, le=100)
    interactivity_score: int = Field(default=40, ge=0, le=100)
    source_quality: ResourceQuality = "medium"
    ranking_score: float = Field(default=0.0, ge=0, le=100)
    estimated_time_minutes: int = Field(ge=0)
    difficulty_level: DifficultyLevel = "intermediate"
    learning_style_fit: LearningStyleFit
    image_url: str | None = None
    author: str | None = None
    publish_date: datetime | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ConceptConnection(CamelModel):
    concept_id: int
    relevance_score: int = Field(ge=0, le=100)
    is_core: bool = False


class CuratedResource(DiscoveredResource):
    id: int
    normalized_url: str
    concept_connections: list[ConceptConnection] = Field(min_length=1)
    date_added: datetime


class SaveResourcesRequest(CamelModel):
    resources: list[DiscoveredResource] = Field(min_length=1)
    relevance_score: int | None = Field(default=None, ge=0, le=100)


class CurationOutcomeOut(CamelModel):
    url: str
    status: CurationStatus
    resource_id: int | None = None
    reason: str | None = None


class SaveResourcesResponse(CamelModel):
    saved_count: int
    resource_ids: list[int]
    results: list[CurationOutcomeOut] = Field(default_factory=list)


class DiscoverAndCurateResponse(SaveResourcesResponse):
    resources: list[DiscoveredResource] = Field(default_factory=list)


class CuratedResourceList(CamelModel):
    resources: list[CuratedResource]


class ResourceConnectionOut(CamelModel):
    source_resource_id: int
    target_resource_id: int
    connection_type: Literal["alternative"] = "alternative"
    connection_strength: int = Field(ge=0, le=100)
    shared_concept_ids: list[int] = Field(default_factory=list)


class ConnectionsResponse(CamelModel):
    connections: list[ResourceConnectionOut]


class ConceptGraphResponse(CamelModel):
    resources: list[CuratedResource]
    connections: list[ResourceConnectionOut]
