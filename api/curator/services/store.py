import asyncio
from datetime import datetime, timezone
import json
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from curator.schemas.resources import ConceptConnection, CuratedResource, DiscoveredResource
from curator.services.repository import (
    ConceptRecord,
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
)

_CONCEPT_LIST = TypeAdapter(list[ConceptRecord])


class InMemoryResourceStore:
    """Process-local store for development and tests; mirrors the Postgres repository contract."""

    def __init__(self, concepts: list[ConceptRecord] | None = None) -> None:
        self.concepts: dict[int, ConceptRecord] = {concept.id: concept for concept in concepts or []}
        self.resources: dict[int, CuratedResource] = {}
        self.ids_by_url: dict[str, int] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    def add_concept(self, concept: ConceptRecord) -> None:
        self.concepts[concept.id] = concept

    async def close(self) -> None:
        return None

    async def get_concept(self, concept_id: int) -> ConceptRecord | None:
        return self.concepts.get(concept_id)

    async def get_resource_id_by_url(self, normalized_url: str) -> int | None:
        return self.ids_by_url.get(normalized_url)

    async def create_resource(
        self,
        resource: DiscoveredResource,
        *,
        normalized_url: str,
        connection: ConceptConnection,
    ) -> int:
        async with self._lock:
            if normalized_url in self.ids_by_url:
                raise RepositoryConflictError(f"resource already exists for {normalized_url}")
            if connection.concept_id not in self.concepts:
                raise RepositoryNotFoundError(f"concept {connection.concept_id} not found")
            resource_id = self._next_id
            self._next_id += 1
            self.resources[resource_id] = CuratedResource(
                **resource.model_dump(),
                id=resource_id,
                normalized_url=normalized_url,
                concept_connections=[connection],
                date_added=datetime.now(timezone.utc),
            )
            self.ids_by_url[normalized_url] = resource_id
            return resource_id

    async def add_concept_connection(self, resource_id: int, connection: ConceptConnection) -> bool:
        async with self._lock:
            resource = self.resources.get(resource_id)
            if resource is None:
                raise RepositoryNotFoundError(f"resource {resource_id} not found")
            if connection.concept_id not in self.concepts:
                raise RepositoryNotFoundError(f"concept {connection.concept_id} not found")
            if any(existing.concept_id == connection.concept_id for existing in resource.concept_connections):
                return False
            self.resources[resource_id] = resource.model_copy(
                update={"concept_connections": [*resource.concept_connections, connection]}
            )
            return True

    async def list_concept_ids_for_resources(self, resource_ids: list[int]) -> dict[int, set[int]]:
        concepts: dict[int, set[int]] = {}
        for resource_id in resource_ids:
            resource = self.resources.get(resource_id)
            concepts[resource_id] = (
                {item.concept_id for item in resource.concept_connections} if resource is not None else set()
            )
        return concepts

    async def list_curated_resources_for_concept(self, concept_id: int, limit: int) -> list[CuratedResource]:
        matches: list[tuple[int, int, CuratedResource]] = []
        for resource_id, resource in self.resources.items():
            for connection in resource.concept_connections:
                if connection.concept_id == concept_id:
                    matches.append((-connection.relevance_score, resource_id, resource))
                    break
        matches.sort(key=lambda item: (item[0], item[1]))
        return [resource for _, _, resource in matches[:limit]]


def load_concepts_file(path: str | Path) -> list[ConceptRecord]:
    """Read concepts for the in-memory backend.

    The file is a JSON list of ``{"id", "name", "description", "tags"}`` objects,
    as written by ``scripts/seed_concepts.py --format json``.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise RepositoryError(f"unable to read concepts file {path}: {exc}") from exc
    try:
        concepts = _CONCEPT_LIST.validate_python(raw)
    except ValidationError as exc:
        raise RepositoryError(f"invalid concepts in {path}: {exc}") from exc

    seen: set[int] = set()
    for concept in concepts:
        if concept.id in seen:
            raise RepositoryError(f"duplicate concept id {concept.id} in {path}")
        seen.add(concept.id)
    return concepts
