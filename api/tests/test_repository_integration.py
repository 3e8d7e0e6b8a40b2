from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from uuid import uuid4

import pytest

from curator.schemas.resources import ConceptConnection, DiscoveredResource, LearningStyleFit
from curator.services.curation import Curator
from curator.services.repository import PostgresRepository, RepositoryError, RepositoryUnavailableError
from curator.services.store import load_concepts_file

DATABASE_URL = os.getenv("KW_DATABASE_URL")
MIGRATION_PATH = Path(__file__).resolve().parents[2] / "db" / "migrations" / "0001_curated_resources.sql"


def _resource(url: str) -> DiscoveredResource:
    return DiscoveredResource(
        url=url,
        title="Eigenvectors visualized",
        source_type="video",
        source_name="Lecture Videos",
        authority_score=85,
        visual_richness=90,
        engagement_score=50,
        freshness_score=50,
        estimated_time_minutes=10,
        learning_style_fit=LearningStyleFit(visual=100, auditory=85, reading=40, kinesthetic=30),
    )


def test_repository_without_database_url_is_unavailable() -> None:
    repository = PostgresRepository(database_url=None, min_pool_size=1, max_pool_size=1)
    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(repository.get_concept(1))


@pytest.mark.skipif(not DATABASE_URL, reason="KW_DATABASE_URL is not set")
def test_curation_round_trip_against_postgres() -> None:
    async def run() -> None:
        repository = PostgresRepository(database_url=DATABASE_URL, min_pool_size=1, max_pool_size=2)
        try:
            pool = await repository._get_pool()
            await pool.execute(MIGRATION_PATH.read_text(encoding="utf-8"))
            suffix = uuid4().hex
            first_concept = await pool.fetchval(
                "insert into concepts (name) values ($1) returning id", f"Eigenvalues {suffix}"
            )
            second_concept = await pool.fetchval(
                "insert into concepts (name) values ($1) returning id", f"Linear maps {suffix}"
            )
            url = f"https://videos.example.com/{suffix}"
            curator = Curator(repository)

            created = await curator.curate(int(first_concept), [_resource(url)])
            again = await curator.curate(int(first_concept), [_resource(url + "/")])
            linked = await curator.curate(int(second_concept), [_resource(url)], relevance=40)

            assert [item.status for item in created.outcomes] == ["created"]
            assert [item.status for item in again.outcomes] == ["unchanged"]
            assert [item.status for item in linked.outcomes] == ["linked"]
            resource_id = created.resource_ids[0]
            concepts = await repository.list_concept_ids_for_resources([resource_id])
            assert concepts == {resource_id: {int(first_concept), int(second_concept)}}

            resources = await repository.list_curated_resources_for_concept(int(second_concept), 5)
            assert [item.id for item in resources] == [resource_id]
            assert ConceptConnection(concept_id=int(first_concept), relevance_score=80, is_core=True) in (
                resources[0].concept_connections
            )
        finally:
            await repository.close()

    asyncio.run(run())


def test_concepts_file_loads_records_and_rejects_bad_input(tmp_path: Path) -> None:
    concepts_file = tmp_path / "concepts.json"
    concepts_file.write_text(json.dumps([{"id": 3, "name": "Fourier series", "tags": ["math"]}]), encoding="utf-8")
    [concept] = load_concepts_file(concepts_file)
    assert (concept.id, concept.name, concept.description, concept.tags) == (3, "Fourier series", None, ["math"])

    concepts_file.write_text(json.dumps([{"id": 1, "name": "A"}, {"id": 1, "name": "B"}]), encoding="utf-8")
    with pytest.raises(RepositoryError, match="duplicate concept id 1"):
        load_concepts_file(concepts_file)

    concepts_file.write_text(json.dumps([{"name": "No id"}]), encoding="utf-8")
    with pytest.raises(RepositoryError, match="invalid concepts"):
        load_concepts_file(concepts_file)

    with pytest.raises(RepositoryError, match="unable to read"):
        load_concepts_file(tmp_path / "missing.json")
