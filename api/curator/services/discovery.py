from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
import logging

import httpx
from opentelemetry import trace

from curator.core.config import Settings, get_settings
from curator.core.urls import URLNormalizationOverride, normalize_url, parse_normalization_overrides
from curator.schemas.resources import DiscoveredResource
from curator.services.fetcher import SourceDiagnostics, fetch_source
from curator.services.normalizer import CandidateSignals, NormalizationError, normalize_payload
from curator.services.ranking import rank_candidates
from curator.services.scoring import score_candidate
from curator.services.sources import ApiSource, ScrapeSource, SourceRegistry, load_source_registry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class DiscoveryRun:
    concept_name: str
    evaluated_at: datetime
    candidates: list[DiscoveredResource] = field(default_factory=list)
    diagnostics: list[SourceDiagnostics] = field(default_factory=list)

    @property
    def failed_sources(self) -> list[str]:
        return [item.source_name for item in self.diagnostics if item.status not in {"ok", "no_results"}]


class DiscoveryDispatcher:
    """Fan a concept query out to every registered source and rank the merged candidates.

    One request per source per run, each bounded by its own timeout. A failing
    source contributes nothing and is reported in the run diagnostics; it never
    cancels its siblings. Results are merged in registry order, so the outcome
    does not depend on which source answers first.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        *,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings
        self._client = client
        self._overrides: dict[str, URLNormalizationOverride] = parse_normalization_overrides(
            settings.url_normalization_overrides_json
        )

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    def resolve_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._settings.discovery_default_limit
        return max(1, min(limit, self._settings.discovery_max_limit))

    async def discover(
        self,
        concept_name: str,
        *,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> DiscoveryRun:
        query = concept_name.strip()
        if not query:
            raise ValueError("concept name must not be empty")
        evaluated_at = now or datetime.now(timezone.utc)
        effective_limit = self.resolve_limit(limit)

        if self._client is not None:
            per_source = await self._fan_out(self._client, query)
        else:
            async with httpx.AsyncClient(timeout=self._settings.discovery_source_timeout_seconds) as client:
                per_source = await self._fan_out(client, query)

        merged: list[CandidateSignals] = []
        seen_urls: set[str] = set()
        diagnostics: list[SourceDiagnostics] = []
        for candidates, source_diagnostics in per_source:
            diagnostics.append(source_diagnostics)
            for candidate in candidates:
                key = normalize_url(candidate.url, overrides=self._overrides)
                if key in seen_urls:
                    continue
                seen_urls.add(key)
                merged.append(candidate)

        scored = [score_candidate(candidate, now=evaluated_at) for candidate in merged]
        ranked = rank_candidates(scored, effective_limit)
        logger.info(
            "discovery completed query=%s sources=%s failed=%s merged=%s returned=%s",
            query,
            len(diagnostics),
            sum(1 for item in diagnostics if item.status not in {"ok", "no_results"}),
            len(merged),
            len(ranked),
        )
        return DiscoveryRun(concept_name=query, evaluated_at=evaluated_at, candidates=ranked, diagnostics=diagnostics)

    async def _fan_out(
        self,
        client: httpx.AsyncClient,
        query: str,
    ) -> list[tuple[list[CandidateSignals], SourceDiagnostics]]:
        sources = list(self._registry)
        results = await asyncio.gather(
            *(self._run_source(client, source, query) for source in sources),
            return_exceptions=True,
        )

        collected: list[tuple[list[CandidateSignals], SourceDiagnostics]] = []
        for source, result in zip(sources, results):
            if isinstance(result, Exception):
                logger.error("source task crashed source=%s", source.name, exc_info=result)
                diagnostics = SourceDiagnostics(
                    source_name=source.name,
                    status="error",
                    error_code="unexpected_error",
                    error_message=str(result) or result.__class__.__name__,
                )
                collected.append(([], diagnostics))
            elif isinstance(result, BaseException):
                raise result
            else:
                collected.append(result)
        return collected

    async def _run_source(
        self,
        client: httpx.AsyncClient,
        source: ScrapeSource | ApiSource,
        query: str,
    ) -> tuple[list[CandidateSignals], SourceDiagnostics]:
        timeout = self._settings.discovery_source_timeout_seconds
        with tracer.start_as_current_span("discovery.fetch_source") as span:
            span.set_attribute("discovery.source_name", source.name)
            span.set_attribute("discovery.source_kind", source.kind)
            try:
                candidates, diagnostics = await asyncio.wait_for(
                    self._fetch_and_normalize(client, source, query),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                diagnostics = SourceDiagnostics(
                    source_name=source.name,
                    status="timeout",
                    elapsed_ms=int(timeout * 1000),
                    error_code="timeout",
                    error_message=f"no response within {timeout:g}s",
                )
                logger.warning("source fetch timed out source=%s timeout_seconds=%s", source.name, timeout)
                candidates = []
            span.set_attribute("discovery.status", diagnostics.status)
            span.set_attribute("discovery.result_count", len(candidates))
        return candidates, diagnostics

    async def _fetch_and_normalize(
        self,
        client: httpx.AsyncClient,
        source: ScrapeSource | ApiSource,
        query: str,
    ) -> tuple[list[CandidateSignals], SourceDiagnostics]:
        fetched = await fetch_source(client, source, query, user_agent=self._settings.discovery_user_agent)
        diagnostics = fetched.diagnostics
        if not fetched.succeeded:
            return [], diagnostics

        try:
            normalized = normalize_payload(source, fetched.payload)
        except NormalizationError as exc:
            diagnostics.status = "error"
            diagnostics.error_code = "parse_failed"
            diagnostics.error_message = str(exc)
            logger.warning("source payload rejected source=%s error=%s", source.name, exc)
            return [], diagnostics

        diagnostics.result_count_raw = normalized.raw_count
        diagnostics.result_count_usable = len(normalized.candidates)
        if not normalized.candidates:
            diagnostics.status = "no_results"
        return normalized.candidates, diagnostics


@lru_cache
def get_discovery_dispatcher() -> DiscoveryDispatcher:
    settings = get_settings()
    return DiscoveryDispatcher(load_source_registry(settings), settings=settings)
