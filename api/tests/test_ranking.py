from __future__ import annotations

from curator.schemas.resources import DiscoveredResource, LearningStyleFit
from curator.services.ranking import (
    LearningStyleWeights,
    learning_style_score,
    rank_by_learning_style,
    rank_candidates,
    type_quotas,
)


def _resource(
    url: str,
    source_type: str,
    score: float,
    fit: tuple[int, int, int, int] = (50, 50, 50, 50),
) -> DiscoveredResource:
    return DiscoveredResource(
        url=url,
        title=url.rsplit("/", 1)[-1],
        source_type=source_type,  # type: ignore[arg-type]
        source_name="Test",
        authority_score=70,
        visual_richness=70,
        engagement_score=50,
        freshness_score=50,
        ranking_score=score,
        estimated_time_minutes=10,
        learning_style_fit=LearningStyleFit(visual=fit[0], auditory=fit[1], reading=fit[2], kinesthetic=fit[3]),
    )


def test_type_quotas_round_up() -> None:
    assert type_quotas(20) == {"video": 6, "interactive": 4, "article": 6, "course": 4}
    assert type_quotas(2) == {"video": 1, "interactive": 1, "article": 1, "course": 1}


def test_quota_reserves_room_for_less_common_types() -> None:
    candidates = [_resource(f"https://v.example/{index}", "video", 90 - index) for index in range(10)]
    candidates.append(_resource("https://a.example/1", "article", 10))
    candidates.append(_resource("https://c.example/1", "course", 5))

    ranked = rank_candidates(candidates, 5)

    types = [item.source_type for item in ranked]
    assert types.count("article") == 1
    assert types.count("course") == 1
    assert len(ranked) == 5
    assert [item.ranking_score for item in ranked] == sorted((item.ranking_score for item in ranked), reverse=True)


def test_backfill_uses_best_remaining_candidates() -> None:
    candidates = [_resource(f"https://v.example/{index}", "video", 90 - index) for index in range(8)]
    ranked = rank_candidates(candidates, 5)
    assert [item.url for item in ranked] == [f"https://v.example/{index}" for index in range(5)]


def test_ties_keep_discovery_order() -> None:
    candidates = [
        _resource("https://a.example/first", "article", 70),
        _resource("https://a.example/second", "article", 70),
        _resource("https://a.example/third", "article", 70),
    ]
    ranked = rank_candidates(candidates, 3)
    assert [item.url for item in ranked] == [
        "https://a.example/first",
        "https://a.example/second",
        "https://a.example/third",
    ]


def test_small_limit_truncates_oversubscribed_quotas() -> None:
    candidates = [
        _resource("https://a.example/1", "article", 60),
        _resource("https://v.example/1", "video", 80),
        _resource("https://i.example/1", "interactive", 70),
        _resource("https://c.example/1", "course", 50),
    ]
    ranked = rank_candidates(candidates, 2)
    assert [item.url for item in ranked] == ["https://v.example/1", "https://i.example/1"]


def test_rank_candidates_handles_empty_and_short_inputs() -> None:
    assert rank_candidates([], 5) == []
    only = [_resource("https://b.example/book", "book", 40)]
    assert rank_candidates(only, 0) == []
    assert rank_candidates(only, 5) == only


def test_learning_style_ranking_orders_by_weighted_fit() -> None:
    reader = _resource("https://a.example/reader", "article", 50, fit=(40, 20, 95, 10))
    hands_on = _resource("https://i.example/hands-on", "interactive", 50, fit=(70, 30, 40, 95))
    weights = LearningStyleWeights(visual=0, auditory=0, reading=10, kinesthetic=90)

    ranked = rank_by_learning_style([reader, hands_on], weights)

    assert [item.url for item in ranked] == ["https://i.example/hands-on", "https://a.example/reader"]
    assert learning_style_score(hands_on, weights) == (40 * 10 + 95 * 90) / 100


def test_learning_style_ranking_with_zero_weights_keeps_order() -> None:
    first = _resource("https://a.example/1", "article", 50, fit=(10, 10, 10, 10))
    second = _resource("https://a.example/2", "article", 50, fit=(90, 90, 90, 90))
    ranked = rank_by_learning_style([first, second], LearningStyleWeights(0, 0, 0, 0))
    assert ranked == [first, second]
