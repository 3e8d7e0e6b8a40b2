"""Discovery source descriptors and the immutable registry built from them.

A source is either scraped (HTML + CSS selectors) or queried through a JSON API
(dotted paths into the response). Descriptors are validated once at startup;
the registry keeps them in declaration order, which is also the discovery order
used when merging per-source results.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, TypeAdapter, ValidationError, model_validator

from curator.core.config import Settings
from curator.schemas.resources import ResourceType

logger = logging.getLogger(__name__)

ReputationTier = Literal["top", "recognized", "standard"]
QUERY_PLACEHOLDER = "{query}"


class SourceRegistryError(Exception):
    """Raised when source descriptors are invalid or conflicting."""


class _SourceBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    resource_type: ResourceType | None = None
    reputation_tier: ReputationTier = "standard"
    query_params: dict[str, str] = Field(default_factory=dict)
    max_results: int = Field(default=10, ge=1, le=50)

    def build_params(self, query: str) -> dict[str, str]:
        return {key: value.replace(QUERY_PLACEHOLDER, query) for key, value in self.query_params.items()}


class ScrapeSource(_SourceBase):
    kind: Literal["scrape"] = "scrape"
    base_url: str
    search_path: str | None = None
    result_selector: str
    title_selector: str
    link_selector: str = "a"
    description_selector: str | None = None
    image_selector: str | None = None
    author_selector: str | None = None
    date_selector: str | None = None
    visual_selectors: tuple[str, ...] = ()
    authority_selectors: tuple[str, ...] = ()
    interactivity_selectors: tuple[str, ...] = ()

    @property
    def endpoint(self) -> str:
        if not self.search_path:
            return self.base_url
        return f"{self.base_url.rstrip('/')}/{self.search_path.lstrip('/')}"


class ApiSource(_SourceBase):
    kind: Literal["api"] = "api"
    endpoint: str
    base_url: str
    items_path: str = "items"
    title_path: str
    description_path: str | None = None
    url_path: str | None = None
    url_template: str | None = None
    image_path: str | None = None
    author_path: str | None = None
    date_path: str | None = None
    credential_param: str | None = None
    credential_setting: str | None = None
    requires_credential: bool = False
    credential: SecretStr | None = None

    @model_validator(mode="after")
    def _require_url_mapping(self) -> ApiSource:
        if not self.url_path and not self.url_template:
            raise ValueError(f"api source {self.name!r} needs url_path or url_template")
        return self


SourceDescriptor = Annotated[ScrapeSource | ApiSource, Field(discriminator="kind")]
_DESCRIPTOR_LIST = TypeAdapter(list[SourceDescriptor])


class SourceRegistry:
    """Ordered, read-only collection of source descriptors keyed by unique name."""

    __slots__ = ("_sources",)

    def __init__(self, sources: list[ScrapeSource | ApiSource] | tuple[ScrapeSource | ApiSource, ...]) -> None:
        seen: set[str] = set()
        for source in sources:
            key = source.name.lower()
            if key in seen:
                raise SourceRegistryError(f"duplicate source name: {source.name}")
            seen.add(key)
        self._sources: tuple[ScrapeSource | ApiSource, ...] = tuple(sources)

    def __iter__(self) -> Iterator[ScrapeSource | ApiSource]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    @property
    def names(self) -> list[str]:
        return [source.name for source in self._sources]

    def get(self, name: str) -> ScrapeSource | ApiSource | None:
        lowered = name.lower()
        return next((source for source in self._sources if source.name.lower() == lowered), None)


DEFAULT_SOURCES: tuple[ScrapeSource | ApiSource, ...] = (
    ScrapeSource(
        name="3Blue1Brown",
        base_url="https://www.3blue1brown.com",
        search_path="/topics",
        query_params={"q": QUERY_PLACEHOLDER},
        resource_type="video",
        reputation_tier="recognized",
        result_selector=".video-item",
        title_selector=".video-title",
        description_selector=".video-description",
        image_selector=".video-thumbnail img",
        author_selector=".video-author",
        date_selector=".video-date",
        visual_selectors=(".video-thumbnail", ".has-math-content"),
    ),
    ScrapeSource(
        name="Observable",
        base_url="https://observablehq.com",
        search_path="/search",
        query_params={"query": QUERY_PLACEHOLDER},
        resource_type="interactive",
        reputation_tier="recognized",
        result_selector=".notebook-item",
        title_selector=".notebook-title",
        description_selector=".notebook-description",
        image_selector=".notebook-thumbnail",
        author_selector=".notebook-author",
        date_selector=".notebook-date",
        visual_selectors=(".visualization-thumbnail",),
        interactivity_selectors=(".js-enabled", ".d3-visualization", ".code-block"),
    ),
    ScrapeSource(
        name="Distill",
        base_url="https://distill.pub",
        query_params={"topic": QUERY_PLACEHOLDER},
        resource_type="article",
        reputation_tier="top",
        result_selector=".post",
        title_selector=".post-title",
        description_selector=".post-excerpt",
        image_selector=".post-image",
        author_selector=".post-author",
        date_selector=".post-date",
        visual_selectors=(".post-visualization", ".d-figure", ".katex"),
        authority_selectors=(".author-affiliation",),
    ),
    ScrapeSource(
        name="Khan Academy",
        base_url="https://www.khanacademy.org",
        search_path="/search",
        query_params={"page_search_query": QUERY_PLACEHOLDER},
        resource_type="course",
        reputation_tier="top",
        result_selector=".result-container",
        title_selector=".result-title",
        description_selector=".result-description",
        image_selector=".result-thumbnail",
        visual_selectors=(".video-thumbnail", ".exercise-thumbnail"),
        interactivity_selectors=(".interactive-content",),
    ),
    ScrapeSource(
        name="MIT OpenCourseWare",
        base_url="https://ocw.mit.edu",
        search_path="/search/",
        query_params={"q": QUERY_PLACEHOLDER},
        resource_type="course",
        reputation_tier="top",
        result_selector=".search-result",
        title_selector=".course-title",
        description_selector=".course-description",
        image_selector=".course-thumbnail",
        author_selector=".course-instructor",
        visual_selectors=(".has-video-lectures", ".has-visualizations"),
        authority_selectors=(".mit-faculty",),
    ),
    ApiSource(
        name="YouTube Educational",
        endpoint="https://www.googleapis.com/youtube/v3/search",
        base_url="https://www.youtube.com",
        query_params={
            "part": "snippet",
            "maxResults": "15",
            "q": QUERY_PLACEHOLDER,
            "type": "video",
            "videoCategoryId": "27",
            "relevanceLanguage": "en",
        },
        resource_type="video",
        reputation_tier="recognized",
        max_results=15,
        items_path="items",
        title_path="snippet.title",
        description_path="snippet.description",
        url_template="https://www.youtube.com/watch?v={id.videoId}",
        image_path="snippet.thumbnails.high.url",
        author_path="snippet.channelTitle",
        date_path="snippet.publishedAt",
        credential_param="key",
        credential_setting="youtube_api_key",
        requires_credential=True,
    ),
    ScrapeSource(
        name="Towards Data Science",
        base_url="https://towardsdatascience.com",
        search_path="/search",
        query_params={"q": QUERY_PLACEHOLDER},
        resource_type="article",
        reputation_tier="standard",
        result_selector=".js-postListItem",
        title_selector=".graf--title",
        description_selector=".graf--subtitle",
        image_selector=".graf-image",
        author_selector=".ds-link",
        date_selector=".ui-caption",
        visual_selectors=(".graf--figure", ".graf--chart"),
        interactivity_selectors=(".graf--pre", ".graf--code"),
    ),
    ApiSource(
        name="Wikipedia",
        endpoint="https://en.wikipedia.org/w/api.php",
        base_url="https://en.wikipedia.org",
        query_params={
            "action": "query",
            "list": "search",
            "srsearch": QUERY_PLACEHOLDER,
            "srlimit": "5",
            "format": "json",
        },
        resource_type="article",
        reputation_tier="recognized",
        max_results=5,
        items_path="query.search",
        title_path="title",
        description_path="snippet",
        url_template="https://en.wikipedia.org/wiki/{title}",
        date_path="timestamp",
    ),
)


def load_source_registry(settings: Settings) -> SourceRegistry:
    """Build the registry from ``settings.sources_file`` or the built-in defaults.

    API credentials are resolved here from the settings field each descriptor
    names, so descriptors stay free of secrets on disk.
    """
    if settings.sources_file:
        sources = _read_sources_file(Path(settings.sources_file))
    else:
        sources = list(DEFAULT_SOURCES)

    resolved: list[ScrapeSource | ApiSource] = []
    for source in sources:
        if isinstance(source, ApiSource) and source.credential is None and source.credential_setting:
            raw_value = getattr(settings, source.credential_setting, None)
            if isinstance(raw_value, str) and raw_value.strip():
                source = source.model_copy(update={"credential": SecretStr(raw_value.strip())})
        resolved.append(source)

    registry = SourceRegistry(resolved)
    logger.info("source registry loaded count=%s names=%s", len(registry), ",".join(registry.names))
    return registry


def _read_sources_file(path: Path) -> list[ScrapeSource | ApiSource]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SourceRegistryError(f"unable to read sources file {path}: {exc}") from exc
    try:
        return _DESCRIPTOR_LIST.validate_python(raw)
    except ValidationError as exc:
        raise SourceRegistryError(f"invalid source descriptors in {path}: {exc}") from exc
