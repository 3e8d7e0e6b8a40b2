from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from curator.core.config import Settings
from curator.services.sources import (
    DEFAULT_SOURCES,
    ApiSource,
    ScrapeSource,
    SourceRegistry,
    SourceRegistryError,
    load_source_registry,
)


def test_default_registry_keeps_declaration_order() -> None:
    registry = load_source_registry(Settings(sources_file=None, youtube_api_key=None))
    assert registry.names == [source.name for source in DEFAULT_SOURCES]
    assert len(registry) == len(DEFAULT_SOURCES)


def test_registry_rejects_duplicate_names() -> None:
    distill = next(source for source in DEFAULT_SOURCES if source.name == "Distill")
    with pytest.raises(SourceRegistryError):
        SourceRegistry([distill, distill.model_copy(update={"name": "distill"})])


def test_youtube_credential_is_resolved_from_settings() -> None:
    registry = load_source_registry(Settings(sources_file=None, youtube_api_key=" secret-key "))
    youtube = registry.get("youtube educational")
    assert isinstance(youtube, ApiSource)
    assert youtube.credential is not None
    assert youtube.credential.get_secret_value() == "secret-key"


def test_registry_loads_descriptors_from_json_file(tmp_path: Path) -> None:
    sources_file = tmp_path / "sources.json"
    sources_file.write_text(
        json.dumps(
            [
                {
                    "kind": "scrape",
                    "name": "Course Notes",
                    "base_url": "https://notes.example.edu",
                    "search_path": "/search",
                    "query_params": {"q": "{query}"},
                    "result_selector": ".hit",
                    "title_selector": ".hit-title",
                },
                {
                    "kind": "api",
                    "name": "Papers",
                    "endpoint": "https://api.example.org/papers",
                    "base_url": "https://example.org",
                    "items_path": "data.results",
                    "title_path": "title",
                    "url_path": "link",
                    "reputation_tier": "top",
                },
            ]
        ),
        encoding="utf-8",
    )

    registry = load_source_registry(Settings(sources_file=str(sources_file)))

    assert registry.names == ["Course Notes", "Papers"]
    notes = registry.get("Course Notes")
    assert isinstance(notes, ScrapeSource)
    assert notes.endpoint == "https://notes.example.edu/search"
    assert notes.build_params("graph theory") == {"q": "graph theory"}


def test_registry_rejects_invalid_descriptor_file(tmp_path: Path) -> None:
    sources_file = tmp_path / "sources.json"
    sources_file.write_text(json.dumps([{"kind": "rss", "name": "Feed"}]), encoding="utf-8")
    with pytest.raises(SourceRegistryError):
        load_source_registry(Settings(sources_file=str(sources_file)))


def test_registry_reports_unreadable_file(tmp_path: Path) -> None:
    with pytest.raises(SourceRegistryError):
        load_source_registry(Settings(sources_file=str(tmp_path / "missing.json")))


def test_source_descriptors_are_immutable() -> None:
    distill = next(source for source in DEFAULT_SOURCES if source.name == "Distill")
    with pytest.raises(ValidationError):
        distill.name = "Other"  # type: ignore[misc]


def test_registry_rejects_api_source_without_url_mapping(tmp_path: Path) -> None:
    sources_file = tmp_path / "sources.json"
    sources_file.write_text(
        json.dumps(
            [
                {
                    "kind": "api",
                    "name": "Papers",
                    "endpoint": "https://api.example.org/papers",
                    "base_url": "https://example.org",
                    "title_path": "title",
                }
            ]
        ),
        encoding="utf-8",
    )
    with pytest.raises(SourceRegistryError, match="url_path or url_template"):
        load_source_registry(Settings(sources_file=str(sources_file)))
