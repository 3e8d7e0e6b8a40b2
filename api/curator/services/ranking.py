from __future__ import annotations

from dataclasses import dataclass
import math

from curator.schemas.resources import DiscoveredResource, ResourceType

TYPE_QUOTAS: tuple[tuple[ResourceType, float], ...] = (
    ("video", 0.3),
    ("interactive", 0.2),
    ("article", 0.3),
    ("course", 0.2),
)


@dataclass(frozen=True, slots=True)
class LearningStyleWeights:
    visual: int
    auditory: int
    reading: int
    kinesthetic: int

    @property
    def total(self) -> int:
        return self.visual + self.auditory + self.reading + self.kinesthetic


def type_quotas(limit: int) -> dict[ResourceType, int]:
    return {resource_type: math.ceil(share * limit) for resource_type, share in TYPE_QUOTAS}


def rank_candidates(candidates: list[DiscoveredResource], limit: int) -> list[DiscoveredResource]:
    """Select at most ``limit`` candidates, reserving room for each resource type.

    ``candidates`` must already be in discovery order; that order breaks score
    ties. Quotas are rounded up, so for small limits they can add up to more
    than ``limit`` and the final truncation drops the lowest-scoring picks.
    """
    if limit <= 0 or not candidates:
        return []

    ordered = sorted(enumerate(candidates), key=lambda pair: (-pair[1].ranking_score, pair[0]))
    remaining = type_quotas(limit)
    selected: list[tuple[int, DiscoveredResource]] = []
    selected_indexes: set[int] = set()

    for index, candidate in ordered:
        if remaining.get(candidate.source_type, 0) > 0:
            remaining[candidate.source_type] -= 1
            selected.append((index, candidate))
            selected_indexes.add(index)

    if len(selected) < limit:
        for index, candidate in ordered:
            if len(selected) >= limit:
                break
            if index in selected_indexes:
                continue
            selected.append((index, candidate))
            selected_indexes.add(index)

    selected.sort(key=lambda pair: (-pair[1].ranking_score, pair[0]))
    return [candidate for _, candidate in selected[:limit]]


def learning_style_score(resource: DiscoveredResource, weights: LearningStyleWeights) -> float:
    total = weights.total
    if total <= 0:
        return 0.0
    fit = resource.learning_style_fit
    weighted = (
        fit.visual * weights.visual
        + fit.auditory * weights.auditory
        + fit.reading * weights.reading
        + fit.kinesthetic * weights.kinesthetic
    )
    return weighted / total


def rank_by_learning_style(
    resources: list[DiscoveredResource],
    weights: LearningStyleWeights,
) -> list[DiscoveredResource]:
    if weights.total <= 0:
        return list(resources)
    return sorted(resources, key=lambda resource: -learning_style_score(resource, weights))
