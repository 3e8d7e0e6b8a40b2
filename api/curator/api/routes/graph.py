from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from curator.core.config import Settings, get_settings
from curator.schemas.resources import (
    ConceptGraphResponse,
    ConnectionsResponse,
    CuratedResource,
    ResourceConnectionOut,
)
from curator.services.repository import RepositoryUnavailableError, ResourceRepository, get_repository
from curator.services.resource_graph import ResourceConnection, build_resource_connections

router = APIRouter()


@router.get("/connections", response_model=ConnectionsResponse)
async def get_resource_connections(
    resource_ids: str = Query(alias="resourceIds"),
    repository: ResourceRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> ConnectionsResponse:
    ids = _parse_id_list(resource_ids, "resourceIds", max_items=settings.graph_max_resources)
    try:
        concepts_by_resource = await repository.list_concept_ids_for_resources(ids)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    connections = build_resource_connections(ids, concepts_by_resource)
    return ConnectionsResponse(connections=[_connection_out(item) for item in connections])


@router.get("/concepts", response_model=ConceptGraphResponse)
async def get_concept_graph(
    concept_ids: str = Query(alias="conceptIds"),
    limit: int | None = Query(default=None, ge=1, le=50),
    repository: ResourceRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> ConceptGraphResponse:
    ids = _parse_id_list(concept_ids, "conceptIds", max_items=settings.graph_max_resources)
    per_concept = limit or settings.concept_graph_default_limit

    resources: dict[int, CuratedResource] = {}
    try:
        for concept_id in ids:
            for resource in await repository.list_curated_resources_for_concept(concept_id, per_concept):
                resources.setdefault(resource.id, resource)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    ordered = list(resources.values())[: settings.graph_max_resources]
    concepts_by_resource = {
        resource.id: {connection.concept_id for connection in resource.concept_connections} for resource in ordered
    }
    connections = build_resource_connections([resource.id for resource in ordered], concepts_by_resource)
    return ConceptGraphResponse(resources=ordered, connections=[_connection_out(item) for item in connections])


def _parse_id_list(raw: str, name: str, *, max_items: int) -> list[int]:
    parts = [part.strip() for part in raw.split(",") if part.strip()]
    if not parts:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=f"{name} is required")
    try:
        ids = [int(part) for part in parts]
    except ValueError as exc:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=f"{name} must be a comma-separated list of integers",
        ) from exc
    ids = list(dict.fromkeys(ids))
    if len(ids) > max_items:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=f"{name} accepts at most {max_items} ids",
        )
    return ids


def _connection_out(connection: ResourceConnection) -> ResourceConnectionOut:
    return ResourceConnectionOut(
        source_resource_id=connection.source_resource_id,
        target_resource_id=connection.target_resource_id,
        connection_strength=connection.connection_strength,
        shared_concept_ids=list(connection.shared_concept_ids),
    )
