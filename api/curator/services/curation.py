from __future__ import annotations

from dataclasses import dataclass, field
import logging

from curator.core.urls import URLNormalizationOverride, is_web_url, normalize_url
from curator.schemas.resources import ConceptConnection, CurationStatus, DiscoveredResource
from curator.services.repository import RepositoryConflictError, RepositoryError, ResourceRepository
from curator.services.scoring import recompute_derived_scores

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CurationOutcome:
    url: str
    status: CurationStatus
    resource_id: int | None = None
    reason: str | None = None


@dataclass(slots=True)
class CurationReport:
    outcomes: list[CurationOutcome] = field(default_factory=list)

    @property
    def resource_ids(self) -> list[int]:
        return [item.resource_id for item in self.outcomes if item.resource_id is not None]

    @property
    def saved_count(self) -> int:
        return len(self.resource_ids)


class Curator:
    """Persist candidates against a concept, deduplicating on normalized URL.

    Candidates are processed sequentially in input order. A URL already in the
    store gains a non-core connection to the concept unless it has one; a new
    URL is stored together with a core connection. Failures are confined to the
    candidate that caused them.
    """

    def __init__(
        self,
        repository: ResourceRepository,
        *,
        default_relevance: int = 80,
        normalization_overrides: dict[str, URLNormalizationOverride] | None = None,
    ) -> None:
        self._repository = repository
        self._default_relevance = default_relevance
        self._overrides = normalization_overrides or {}

    async def curate(
        self,
        concept_id: int,
        candidates: list[DiscoveredResource],
        *,
        relevance: int | None = None,
        relevance_by_url: dict[str, int] | None = None,
    ) -> CurationReport:
        report = CurationReport()
        for candidate in candidates:
            score = self._relevance_for(candidate, relevance, relevance_by_url)
            try:
                outcome = await self._curate_one(concept_id, recompute_derived_scores(candidate), score)
            except (RepositoryError, ValueError) as exc:
                logger.warning(
                    "curation skipped concept_id=%s url=%s error=%s",
                    concept_id,
                    candidate.url,
                    exc,
                )
                reason = str(exc) or exc.__class__.__name__
                outcome = CurationOutcome(url=candidate.url, status="skipped", reason=reason)
            report.outcomes.append(outcome)

        logger.info(
            "curation completed concept_id=%s candidates=%s saved=%s skipped=%s",
            concept_id,
            len(candidates),
            report.saved_count,
            sum(1 for item in report.outcomes if item.status == "skipped"),
        )
        return report

    async def _curate_one(self, concept_id: int, candidate: DiscoveredResource, relevance: int) -> CurationOutcome:
        if not is_web_url(candidate.url):
            raise ValueError("url must be an absolute http(s) URL")
        normalized_url = normalize_url(candidate.url, overrides=self._overrides)
        existing_id = await self._repository.get_resource_id_by_url(normalized_url)

        if existing_id is None:
            try:
                resource_id = await self._repository.create_resource(
                    candidate,
                    normalized_url=normalized_url,
                    connection=ConceptConnection(concept_id=concept_id, relevance_score=relevance, is_core=True),
                )
                return CurationOutcome(url=candidate.url, status="created", resource_id=resource_id)
            except RepositoryConflictError:
                # Lost a race with a concurrent insert of the same URL.
                existing_id = await self._repository.get_resource_id_by_url(normalized_url)
                if existing_id is None:
                    raise

        added = await self._repository.add_concept_connection(
            existing_id,
            ConceptConnection(concept_id=concept_id, relevance_score=relevance, is_core=False),
        )
        return CurationOutcome(url=candidate.url, status="linked" if added else "unchanged", resource_id=existing_id)

    def _relevance_for(
        self,
        candidate: DiscoveredResource,
        relevance: int | None,
        relevance_by_url: dict[str, int] | None,
    ) -> int:
        if relevance_by_url and candidate.url in relevance_by_url:
            return relevance_by_url[candidate.url]
        if relevance is not None:
            return relevance
        return self._default_relevance
