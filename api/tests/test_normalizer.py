from __future__ import annotations

from datetime import datetime, timezone

import pytest

from curator.services.normalizer import (
    NormalizationError,
    get_path,
    infer_resource_type,
    normalize_payload,
    parse_publish_date,
    render_url_template,
)
from curator.services.sources import DEFAULT_SOURCES, ApiSource, ScrapeSource

DISTILL_HTML = """
<html><body>
  <div class="post">
    <a href="/2017/momentum/"><h2 class="post-title">Why Momentum Really Works</h2></a>
    <p class="post-excerpt">We often think of optimization with momentum as a ball rolling down a hill.</p>
    <img class="post-image" src="/2017/momentum/thumbnail.jpg">
    <span class="post-author">Gabriel Goh</span>
    <span class="author-affiliation">UC Davis</span>
    <time class="post-date" datetime="2017-04-04">April 4, 2017</time>
    <figure class="d-figure"></figure>
  </div>
  <div class="post">
    <h2 class="post-title">Untethered post without a link</h2>
  </div>
  <div class="post">
    <a href="javascript:void(0)"><h2 class="post-title">Script link</h2></a>
  </div>
</body></html>
"""

YOUTUBE_PAYLOAD = {
    "items": [
        {
            "id": {"videoId": "aircAruvnKk"},
            "snippet": {
                "title": "But what is a neural network?",
                "description": "An introduction to neural networks.",
                "thumbnails": {"high": {"url": "https://i.ytimg.com/vi/aircAruvnKk/hqdefault.jpg"}},
                "channelTitle": "3Blue1Brown",
                "publishedAt": "2017-10-05T15:00:02Z",
            },
        },
        {"id": {"kind": "youtube#channel"}, "snippet": {"title": "Channel result"}},
        {"id": {"videoId": "xyz"}, "snippet": {"title": "   "}},
    ]
}


def _source(name: str) -> ScrapeSource | ApiSource:
    return next(source for source in DEFAULT_SOURCES if source.name == name)


def test_scrape_payload_extracts_fields_and_indicators() -> None:
    result = normalize_payload(_source("Distill"), DISTILL_HTML)

    assert result.raw_count == 3
    assert len(result.candidates) == 1
    candidate = result.candidates[0]
    assert candidate.url == "https://distill.pub/2017/momentum/"
    assert candidate.title == "Why Momentum Really Works"
    assert candidate.image_url == "https://distill.pub/2017/momentum/thumbnail.jpg"
    assert candidate.author == "Gabriel Goh"
    assert candidate.publish_date == datetime(2017, 4, 4, tzinfo=timezone.utc)
    assert candidate.resource_type == "article"
    assert candidate.reputation_tier == "top"
    # .d-figure matched plus one for the preview image
    assert candidate.visual_indicators == 2
    assert candidate.authority_indicators == 1
    assert candidate.interactivity_indicators == 0


def test_scrape_payload_respects_max_results() -> None:
    source = _source("Distill").model_copy(update={"max_results": 1})
    html = "".join(
        f'<div class="post"><a href="/p{index}"><span class="post-title">Post {index}</span></a></div>'
        for index in range(5)
    )
    result = normalize_payload(source, html)
    assert result.raw_count == 5
    assert [candidate.url for candidate in result.candidates] == ["https://distill.pub/p0"]


def test_api_payload_uses_dotted_paths_and_url_template() -> None:
    result = normalize_payload(_source("YouTube Educational"), YOUTUBE_PAYLOAD)

    assert result.raw_count == 3
    assert len(result.candidates) == 1
    candidate = result.candidates[0]
    assert candidate.url == "https://www.youtube.com/watch?v=aircAruvnKk"
    assert candidate.author == "3Blue1Brown"
    assert candidate.visual_indicators == 1
    assert candidate.resource_type == "video"
    assert candidate.publish_date == datetime(2017, 10, 5, 15, 0, 2, tzinfo=timezone.utc)


def test_api_payload_without_item_list_is_rejected() -> None:
    with pytest.raises(NormalizationError):
        normalize_payload(_source("YouTube Educational"), {"error": {"code": 403}})


def test_scrape_payload_must_be_text() -> None:
    with pytest.raises(NormalizationError):
        normalize_payload(_source("Distill"), {"items": []})


def test_wikipedia_override_strips_markup_and_builds_article_url() -> None:
    payload = {
        "query": {
            "search": [
                {
                    "title": "Linear algebra",
                    "snippet": '<span class="searchmatch">Linear</span> algebra is the branch of mathematics',
                    "timestamp": "2024-05-01T10:00:00Z",
                }
            ]
        }
    }
    result = normalize_payload(_source("Wikipedia"), payload)

    candidate = result.candidates[0]
    assert candidate.url == "https://en.wikipedia.org/wiki/Linear_algebra"
    assert candidate.description == "Linear algebra is the branch of mathematics"
    assert candidate.resource_type == "article"


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://youtu.be/abc", "video"),
        ("https://example.org/video/intro", "video"),
        ("https://www.coursera.org/learn/ml", "course"),
        ("https://ocw.mit.edu/courses/18-06", "course"),
        ("https://someone.github.io/graph-visualizer", "interactive"),
        ("https://books.google.com/books?id=1", "book"),
        ("https://example.org/blog/post", "article"),
    ],
)
def test_infer_resource_type_from_url(url: str, expected: str) -> None:
    assert infer_resource_type(url) == expected


def test_infer_resource_type_prefers_declared_type() -> None:
    assert infer_resource_type("https://youtu.be/abc", "article") == "article"


def test_parse_publish_date_formats() -> None:
    assert parse_publish_date("2020-01-02T03:04:05Z") == datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_publish_date("March 5, 2021") == datetime(2021, 3, 5, tzinfo=timezone.utc)
    assert parse_publish_date("5 Mar 2021") == datetime(2021, 3, 5, tzinfo=timezone.utc)
    assert parse_publish_date("last Tuesday") is None
    assert parse_publish_date("") is None
    assert parse_publish_date(None) is None


def test_get_path_and_template_helpers() -> None:
    item = {"id": {"videoId": "a b"}, "tags": ["x", "y"]}
    assert get_path(item, "id.videoId") == "a b"
    assert get_path(item, "tags.1") == "y"
    assert get_path(item, "missing.path") is None
    assert render_url_template("https://v.example/{id.videoId}", item) == "https://v.example/a%20b"
    assert render_url_template("https://v.example/{id.missing}", item) is None
