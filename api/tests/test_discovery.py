from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
from pydantic import SecretStr

from curator.core.config import Settings
from curator.services.discovery import DiscoveryDispatcher, DiscoveryRun
from curator.services.sources import ApiSource, ScrapeSource, SourceRegistry

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)

VIDEO_SOURCE = ScrapeSource(
    name="Lecture Videos",
    base_url="https://videos.example.com",
    search_path="/search",
    query_params={"q": "{query}"},
    resource_type="video",
    reputation_tier="recognized",
    result_selector=".clip",
    title_selector=".clip-title",
    image_selector=".clip-thumb",
    author_selector=".clip-author",
    visual_selectors=(".has-animation",),
    authority_selectors=(".verified",),
)
ARTICLE_SOURCE = ScrapeSource(
    name="Course Notes",
    base_url="https://notes.example.org",
    search_path="/search",
    query_params={"q": "{query}"},
    resource_type="article",
    reputation_tier="top",
    result_selector=".note",
    title_selector=".note-title",
    description_selector=".note-summary",
)
SLOW_SOURCE = ScrapeSource(
    name="Slow Archive",
    base_url="https://slow.example.net",
    query_params={"q": "{query}"},
    result_selector=".entry",
    title_selector=".entry-title",
)
KEYED_SOURCE = ApiSource(
    name="Keyed Videos",
    endpoint="https://api.example.com/search",
    base_url="https://api.example.com",
    title_path="title",
    url_path="url",
    credential_param="key",
    requires_credential=True,
)

VIDEO_HTML = """
<div class="clip">
  <a href="/watch/eigen"><span class="clip-title">Eigenvectors visualized</span></a>
  <img class="clip-thumb" src="/thumbs/eigen.png">
  <span class="clip-author">Linear Lab</span>
  <span class="verified"></span>
  <span class="has-animation"></span>
</div>
"""
ARTICLE_HTML = """
<div class="note">
  <a href="https://notes.example.org/linear-algebra/eigen"><h3 class="note-title">Eigenvalue notes</h3></a>
  <p class="note-summary">Lecture notes on eigenvalues.</p>
</div>
<div class="note">
  <a href="https://videos.example.com/watch/eigen/?utm_source=notes"><h3 class="note-title">Same video</h3></a>
</div>
"""


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {"discovery_source_timeout_seconds": 0.2, "url_normalization_overrides_json": None}
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


def _discover(
    handler,
    sources: list[ScrapeSource | ApiSource],
    *,
    limit: int = 20,
    settings: Settings | None = None,
) -> DiscoveryRun:
    async def run() -> DiscoveryRun:
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as client:
            dispatcher = DiscoveryDispatcher(SourceRegistry(sources), settings=settings or _settings(), client=client)
            return await dispatcher.discover("eigenvalues", limit=limit, now=NOW)

    return asyncio.run(run())


async def _default_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "videos.example.com":
        return httpx.Response(200, text=VIDEO_HTML, request=request)
    if request.url.host == "notes.example.org":
        return httpx.Response(200, text=ARTICLE_HTML, request=request)
    if request.url.host == "slow.example.net":
        await asyncio.sleep(5)
        return httpx.Response(200, text="", request=request)
    return httpx.Response(404, request=request)


def test_discovery_ranks_video_first_and_isolates_timed_out_source() -> None:
    run = _discover(_default_handler, [VIDEO_SOURCE, ARTICLE_SOURCE, SLOW_SOURCE], limit=2)

    assert [item.source_type for item in run.candidates] == ["video", "article"]
    video, article = run.candidates
    assert (video.authority_score, video.visual_richness) == (85, 90)
    assert (article.authority_score, article.visual_richness) == (90, 60)
    assert video.ranking_score > article.ranking_score

    statuses = {item.source_name: item.status for item in run.diagnostics}
    assert statuses == {"Lecture Videos": "ok", "Course Notes": "ok", "Slow Archive": "timeout"}
    assert run.failed_sources == ["Slow Archive"]


def test_discovery_deduplicates_by_normalized_url_in_registry_order() -> None:
    run = _discover(_default_handler, [VIDEO_SOURCE, ARTICLE_SOURCE])

    urls = [item.url for item in run.candidates]
    assert urls.count("https://videos.example.com/watch/eigen") == 1
    assert "https://videos.example.com/watch/eigen/?utm_source=notes" not in urls
    duplicate = next(item for item in run.candidates if item.url == "https://videos.example.com/watch/eigen")
    assert duplicate.source_name == "Lecture Videos"
    diagnostics = {item.source_name: item for item in run.diagnostics}
    assert diagnostics["Course Notes"].result_count_raw == 2
    assert diagnostics["Course Notes"].result_count_usable == 2


def test_discovery_merge_does_not_depend_on_completion_order() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "videos.example.com":
            await asyncio.sleep(0.05)
        return await _default_handler(request)

    first = _discover(handler, [VIDEO_SOURCE, ARTICLE_SOURCE])
    second = _discover(_default_handler, [VIDEO_SOURCE, ARTICLE_SOURCE])
    assert first.candidates == second.candidates


def test_discovery_records_source_failures_without_aborting() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "videos.example.com":
            return httpx.Response(429, request=request)
        if request.url.host == "notes.example.org":
            return httpx.Response(500, request=request)
        if request.url.host == "slow.example.net":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(404, request=request)

    run = _discover(handler, [VIDEO_SOURCE, ARTICLE_SOURCE, SLOW_SOURCE, KEYED_SOURCE])

    assert run.candidates == []
    diagnostics = {item.source_name: item for item in run.diagnostics}
    assert diagnostics["Lecture Videos"].status == "blocked"
    assert diagnostics["Lecture Videos"].http_status == 429
    assert diagnostics["Course Notes"].status == "error"
    assert diagnostics["Course Notes"].error_code == "http_error"
    assert diagnostics["Slow Archive"].error_code == "request_failed"
    assert diagnostics["Keyed Videos"].status == "skipped"
    assert diagnostics["Keyed Videos"].error_code == "missing_credential"


def test_discovery_reports_unparseable_api_payload() -> None:
    keyed = KEYED_SOURCE.model_copy(update={"requires_credential": False})

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json", request=request)

    run = _discover(handler, [keyed])

    assert run.candidates == []
    assert run.diagnostics[0].status == "error"
    assert run.diagnostics[0].error_code == "parse_failed"


def test_discovery_sends_query_user_agent_and_credential() -> None:
    seen: list[httpx.Request] = []
    keyed = KEYED_SOURCE.model_copy(update={"query_params": {"q": "{query}"}, "credential": SecretStr("k-123")})

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"items": [{"title": "Eigen basics", "url": "https://api.example.com/v/1"}]},
            request=request,
        )

    run = _discover(handler, [keyed], settings=_settings(discovery_user_agent="curator-test/1.0"))

    assert len(run.candidates) == 1
    request = seen[0]
    assert request.url.params["q"] == "eigenvalues"
    assert request.url.params["key"] == "k-123"
    assert request.headers["user-agent"] == "curator-test/1.0"


def test_discovery_rejects_empty_concept_name() -> None:
    dispatcher = DiscoveryDispatcher(SourceRegistry([VIDEO_SOURCE]), settings=_settings())
    with pytest.raises(ValueError):
        asyncio.run(dispatcher.discover("   "))


def test_resolve_limit_applies_default_and_maximum() -> None:
    dispatcher = DiscoveryDispatcher(
        SourceRegistry([]),
        settings=_settings(discovery_default_limit=20, discovery_max_limit=50),
    )
    assert dispatcher.resolve_limit(None) == 20
    assert dispatcher.resolve_limit(500) == 50
    assert dispatcher.resolve_limit(3) == 3
