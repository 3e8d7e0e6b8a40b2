from __future__ import annotations

from dataclasses import dataclass

STRENGTH_PER_SHARED_CONCEPT = 25
MAX_STRENGTH = 100


@dataclass(frozen=True, slots=True)
class ResourceConnection:
    source_resource_id: int
    target_resource_id: int
    connection_strength: int
    shared_concept_ids: tuple[int, ...]
    connection_type: str = "alternative"


def build_resource_connections(
    resource_ids: list[int],
    concepts_by_resource: dict[int, set[int]],
) -> list[ResourceConnection]:
    """Connect every pair of resources that share at least one concept.

    Both directions are emitted with the same strength. Duplicate ids are
    ignored and first-seen order is kept, so output order is stable.
    """
    unique_ids = list(dict.fromkeys(resource_ids))
    connections: list[ResourceConnection] = []
    for index, source_id in enumerate(unique_ids):
        source_concepts = concepts_by_resource.get(source_id, set())
        if not source_concepts:
            continue
        for target_id in unique_ids[index + 1 :]:
            shared = source_concepts & concepts_by_resource.get(target_id, set())
            if not shared:
                continue
            strength = min(MAX_STRENGTH, len(shared) * STRENGTH_PER_SHARED_CONCEPT)
            shared_ids = tuple(sorted(shared))
            connections.append(ResourceConnection(source_id, target_id, strength, shared_ids))
            connections.append(ResourceConnection(target_id, source_id, strength, shared_ids))
    return connections
