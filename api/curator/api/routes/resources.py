import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from curator.api.dependencies import get_curator, get_learning_style_weights
from curator.core.config import Settings, get_settings
from curator.schemas.resources import (
    CuratedResourceList,
    CurationOutcomeOut,
    DiscoverAndCurateResponse,
    DiscoveredResource,
    SaveResourcesRequest,
    SaveResourcesResponse,
)
from curator.services.curation import CurationReport, Curator
from curator.services.discovery import DiscoveryDispatcher, DiscoveryRun, get_discovery_dispatcher
from curator.services.page_metadata import PageAnalysisError, analyze_page
from curator.services.ranking import LearningStyleWeights, rank_by_learning_style
from curator.services.repository import (
    ConceptRecord,
    RepositoryUnavailableError,
    ResourceRepository,
    get_repository,
)
from curator.services.scoring import relevance_score

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/discover/{concept_id}", response_model=list[DiscoveredResource])
async def discover_resources(
    concept_id: int,
    limit: int | None = Query(default=None, ge=1),
    repository: ResourceRepository = Depends(get_repository),
    dispatcher: DiscoveryDispatcher = Depends(get_discovery_dispatcher),
    settings: Settings = Depends(get_settings),
) -> list[DiscoveredResource]:
    concept = await _require_concept(repository, concept_id)
    run = await _discover(dispatcher, concept, _checked_limit(limit, settings))
    return run.candidates


@router.post("/discover/{concept_id}", response_model=DiscoverAndCurateResponse)
async def discover_and_curate(
    concept_id: int,
    limit: int | None = Query(default=None, ge=1),
    repository: ResourceRepository = Depends(get_repository),
    dispatcher: DiscoveryDispatcher = Depends(get_discovery_dispatcher),
    curator: Curator = Depends(get_curator),
    settings: Settings = Depends(get_settings),
) -> DiscoverAndCurateResponse:
    concept = await _require_concept(repository, concept_id)
    run = await _discover(dispatcher, concept, _checked_limit(limit, settings))
    relevance_by_url = {
        candidate.url: relevance_score(concept.name, candidate.title, candidate.description)
        for candidate in run.candidates
    }
    report = await curator.curate(concept.id, run.candidates, relevance_by_url=relevance_by_url)
    return DiscoverAndCurateResponse(**_report_fields(report), resources=run.candidates)


@router.post("/save/{concept_id}", response_model=SaveResourcesResponse)
async def save_resources(
    concept_id: int,
    payload: SaveResourcesRequest,
    repository: ResourceRepository = Depends(get_repository),
    curator: Curator = Depends(get_curator),
) -> SaveResourcesResponse:
    concept = await _require_concept(repository, concept_id)
    report = await curator.curate(concept.id, payload.resources, relevance=payload.relevance_score)
    return SaveResourcesResponse(**_report_fields(report))


@router.get("/recommend/{concept_id}", response_model=list[DiscoveredResource])
async def recommend_resources(
    concept_id: int,
    limit: int | None = Query(default=None, ge=1),
    weights: LearningStyleWeights = Depends(get_learning_style_weights),
    repository: ResourceRepository = Depends(get_repository),
    dispatcher: DiscoveryDispatcher = Depends(get_discovery_dispatcher),
    settings: Settings = Depends(get_settings),
) -> list[DiscoveredResource]:
    concept = await _require_concept(repository, concept_id)
    effective_limit = _checked_limit(limit, settings) or settings.recommend_default_limit
    run = await _discover(dispatcher, concept, effective_limit)
    return rank_by_learning_style(run.candidates, weights)


@router.get("/concept/{concept_id}", response_model=CuratedResourceList)
async def list_concept_resources(
    concept_id: int,
    limit: int = Query(default=20, ge=1, le=100),
    repository: ResourceRepository = Depends(get_repository),
) -> CuratedResourceList:
    concept = await _require_concept(repository, concept_id)
    try:
        resources = await repository.list_curated_resources_for_concept(concept.id, limit)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return CuratedResourceList(resources=resources)


@router.get("/analyze", response_model=DiscoveredResource)
async def analyze_resource(
    url: str = Query(min_length=1),
    settings: Settings = Depends(get_settings),
) -> DiscoveredResource:
    try:
        return await analyze_page(url, settings=settings)
    except ValueError as exc:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PageAnalysisError as exc:
        raise HTTPException(status_code=http_status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


async def _require_concept(repository: ResourceRepository, concept_id: int) -> ConceptRecord:
    try:
        concept = await repository.get_concept(concept_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if concept is None:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=f"concept {concept_id} not found")
    return concept


async def _discover(dispatcher: DiscoveryDispatcher, concept: ConceptRecord, limit: int | None) -> DiscoveryRun:
    try:
        run = await dispatcher.discover(concept.name, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if run.failed_sources:
        logger.info("discovery degraded concept_id=%s failed_sources=%s", concept.id, ",".join(run.failed_sources))
    return run


def _checked_limit(limit: int | None, settings: Settings) -> int | None:
    if limit is not None and limit > settings.discovery_max_limit:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=f"limit must be between 1 and {settings.discovery_max_limit}",
        )
    return limit


def _report_fields(report: CurationReport) -> dict:
    return {
        "saved_count": report.saved_count,
        "resource_ids": report.resource_ids,
        "results": [
            CurationOutcomeOut(
                url=item.url,
                status=item.status,
                resource_id=item.resource_id,
                reason=item.reason,
            )
            for item in report.outcomes
        ],
    }
