from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import json
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from curator.core.config import get_settings
from curator.core.urls import canonical_hash
from curator.schemas.resources import ConceptConnection, CuratedResource, DiscoveredResource


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write collides with an existing unique record."""


@dataclass(slots=True)
class ConceptRecord:
    id: int
    name: str
    description: str | None = None
    tags: list[str] = field(default_factory=list)


class ResourceRepository(Protocol):
    async def close(self) -> None: ...

    async def get_concept(self, concept_id: int) -> ConceptRecord | None: ...

    async def get_resource_id_by_url(self, normalized_url: str) -> int | None: ...

    async def create_resource(
        self,
        resource: DiscoveredResource,
        *,
        normalized_url: str,
        connection: ConceptConnection,
    ) -> int: ...

    async def add_concept_connection(self, resource_id: int, connection: ConceptConnection) -> bool: ...

    async def list_concept_ids_for_resources(self, resource_ids: list[int]) -> dict[int, set[int]]: ...

    async def list_curated_resources_for_concept(self, concept_id: int, limit: int) -> list[CuratedResource]: ...


_CONNECTION_ERRORS = (OSError, pg_exc.PostgresConnectionError, pg_exc.InterfaceError)

_RESOURCE_COLUMNS = """
  r.id,
  r.url,
  r.normalized_url,
  r.title,
  r.description,
  r.source_type,
  r.source_name,
  r.authority_score,
  r.visual_richness,
  r.engagement_score,
  r.freshness_score,
  r.interactivity_score,
  r.source_quality,
  r.ranking_score,
  r.estimated_time_minutes,
  r.difficulty_level,
  r.learning_style_fit,
  r.image_url,
  r.author,
  r.publish_date,
  r.date_added
"""


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_concept(self, concept_id: int) -> ConceptRecord | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                select id, name, description, tags
                from concepts
                where id = $1
                """,
                concept_id,
            )
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except pg_exc.PostgresError as exc:
            raise RepositoryError(f"database rejected request: {exc.__class__.__name__}") from exc
        if not row:
            return None
        return ConceptRecord(
            id=int(row["id"]),
            name=row["name"],
            description=row["description"],
            tags=list(row["tags"] or []),
        )

    async def get_resource_id_by_url(self, normalized_url: str) -> int | None:
        pool = await self._get_pool()
        try:
            value = await pool.fetchval(
                "select id from curated_resources where normalized_url = $1",
                normalized_url,
            )
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except pg_exc.PostgresError as exc:
            raise RepositoryError(f"database rejected request: {exc.__class__.__name__}") from exc
        return int(value) if value is not None else None

    async def create_resource(
        self,
        resource: DiscoveredResource,
        *,
        normalized_url: str,
        connection: ConceptConnection,
    ) -> int:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        insert into curated_resources (
                          url,
                          normalized_url,
                          canonical_hash,
                          title,
                          description,
                          source_type,
                          source_name,
                          authority_score,
                          visual_richness,
                          engagement_score,
                          freshness_score,
                          interactivity_score,
                          source_quality,
                          ranking_score,
                          estimated_time_minutes,
                          difficulty_level,
                          learning_style_fit,
                          image_url,
                          author,
                          publish_date
                        )
                        values (
                          $1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                          $11, $12, $13, $14, $15, $16, $17::jsonb, $18, $19, $20
                        )
                        on conflict (normalized_url) do nothing
                        returning id
                        """,
                        resource.url,
                        normalized_url,
                        canonical_hash(normalized_url),
                        resource.title,
                        resource.description,
                        resource.source_type,
                        resource.source_name,
                        resource.authority_score,
                        resource.visual_richness,
                        resource.engagement_score,
                        resource.freshness_score,
                        resource.interactivity_score,
                        resource.source_quality,
                        resource.ranking_score,
                        resource.estimated_time_minutes,
                        resource.difficulty_level,
                        json.dumps(resource.learning_style_fit.model_dump()),
                        resource.image_url,
                        resource.author,
                        resource.publish_date,
                    )
                    if not row:
                        raise RepositoryConflictError(f"resource already exists for {normalized_url}")
                    resource_id = int(row["id"])
                    await conn.execute(
                        """
                        insert into resource_concepts (resource_id, concept_id, relevance_score, is_core)
                        values ($1, $2, $3, $4)
                        """,
                        resource_id,
                        connection.concept_id,
                        connection.relevance_score,
                        connection.is_core,
                    )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError(f"resource already exists for {normalized_url}") from exc
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryNotFoundError(f"concept {connection.concept_id} not found") from exc
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except pg_exc.PostgresError as exc:
            raise RepositoryError(f"database rejected request: {exc.__class__.__name__}") from exc
        return resource_id

    async def add_concept_connection(self, resource_id: int, connection: ConceptConnection) -> bool:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into resource_concepts (resource_id, concept_id, relevance_score, is_core)
                values ($1, $2, $3, $4)
                on conflict (resource_id, concept_id) do nothing
                returning resource_id
                """,
                resource_id,
                connection.concept_id,
                connection.relevance_score,
                connection.is_core,
            )
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryNotFoundError(
                f"resource {resource_id} or concept {connection.concept_id} not found"
            ) from exc
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except pg_exc.PostgresError as exc:
            raise RepositoryError(f"database rejected request: {exc.__class__.__name__}") from exc
        return row is not None

    async def list_concept_ids_for_resources(self, resource_ids: list[int]) -> dict[int, set[int]]:
        if not resource_ids:
            return {}
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                select resource_id, concept_id
                from resource_concepts
                where resource_id = any($1::bigint[])
                """,
                resource_ids,
            )
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except pg_exc.PostgresError as exc:
            raise RepositoryError(f"database rejected request: {exc.__class__.__name__}") from exc
        concepts: dict[int, set[int]] = {resource_id: set() for resource_id in resource_ids}
        for row in rows:
            concepts.setdefault(int(row["resource_id"]), set()).add(int(row["concept_id"]))
        return concepts

    async def list_curated_resources_for_concept(self, concept_id: int, limit: int) -> list[CuratedResource]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    select {_RESOURCE_COLUMNS}
                    from curated_resources r
                    join resource_concepts rc on rc.resource_id = r.id
                    where rc.concept_id = $1
                    order by rc.relevance_score desc, r.id asc
                    limit $2
                    """,
                    concept_id,
                    limit,
                )
                if not rows:
                    return []
                connection_rows = await conn.fetch(
                    """
                    select resource_id, concept_id, relevance_score, is_core
                    from resource_concepts
                    where resource_id = any($1::bigint[])
                    order by resource_id asc, is_core desc, concept_id asc
                    """,
                    [int(row["id"]) for row in rows],
                )
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        except pg_exc.PostgresError as exc:
            raise RepositoryError(f"database rejected request: {exc.__class__.__name__}") from exc

        connections: dict[int, list[ConceptConnection]] = {}
        for row in connection_rows:
            connections.setdefault(int(row["resource_id"]), []).append(
                ConceptConnection(
                    concept_id=int(row["concept_id"]),
                    relevance_score=int(row["relevance_score"]),
                    is_core=bool(row["is_core"]),
                )
            )
        return [self._resource_from_row(row, connections.get(int(row["id"]), [])) for row in rows]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("KW_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _resource_from_row(row: Any, connections: list[ConceptConnection]) -> CuratedResource:
        raw_fit = row["learning_style_fit"]
        fit = json.loads(raw_fit) if isinstance(raw_fit, str) else raw_fit
        return CuratedResource(
            id=int(row["id"]),
            url=row["url"],
            normalized_url=row["normalized_url"],
            title=row["title"],
            description=row["description"] or "",
            source_type=row["source_type"],
            source_name=row["source_name"],
            authority_score=row["authority_score"],
            visual_richness=row["visual_richness"],
            engagement_score=row["engagement_score"],
            freshness_score=row["freshness_score"],
            interactivity_score=row["interactivity_score"],
            source_quality=row["source_quality"],
            ranking_score=float(row["ranking_score"]),
            estimated_time_minutes=row["estimated_time_minutes"],
            difficulty_level=row["difficulty_level"],
            learning_style_fit=fit,
            image_url=row["image_url"],
            author=row["author"],
            publish_date=row["publish_date"],
            concept_connections=connections,
            date_added=row["date_added"],
        )


@lru_cache
def get_repository() -> ResourceRepository:
    settings = get_settings()
    if settings.storage_backend == "memory":
        from curator.services.store import InMemoryResourceStore, load_concepts_file

        concepts = load_concepts_file(settings.memory_concepts_file) if settings.memory_concepts_file else None
        return InMemoryResourceStore(concepts=concepts)
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
