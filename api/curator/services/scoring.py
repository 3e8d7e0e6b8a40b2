"""Deterministic quality scoring for discovered candidates.

Two separate weighted formulas are in play and must not be conflated:

* composite quality label: ``0.4 * authority + 0.6 * visual`` bucketed into
  high (>= 80), medium (>= 50) and low;
* ranking score: ``0.4 * visual + 0.3 * authority + 0.2 * engagement +
  0.1 * freshness`` rounded to two decimals, used for ordering.

Time only enters through the explicit ``now`` passed by the caller.
"""

from __future__ import annotations

from datetime import datetime
import math

from curator.core.urls import host_of
from curator.schemas.resources import (
    DifficultyLevel,
    DiscoveredResource,
    LearningStyleFit,
    ResourceQuality,
    ResourceType,
)
from curator.services.normalizer import CandidateSignals
from curator.services.sources import ReputationTier

TIER_AUTHORITY: dict[ReputationTier, int] = {"top": 90, "recognized": 75, "standard": 60}
TOP_TIER_HOSTS = (
    "mit.edu",
    "stanford.edu",
    "khanacademy.org",
    "coursera.org",
    "edx.org",
    "nature.com",
    "science.org",
    "acm.org",
    "distill.pub",
)
RECOGNIZED_TIER_HOSTS = (
    "wikipedia.org",
    "github.com",
    "youtube.com",
    "medium.com",
    "dev.to",
    "stackexchange.com",
    "observablehq.com",
    "3blue1brown.com",
)
AUTHOR_BONUS = 5
AUTHORITY_INDICATOR_BONUS = 5
AUTHORITY_INDICATOR_CAP = 15

VISUAL_BASE = 50
VISUAL_INDICATOR_BONUS = 10
VISUAL_TYPE_BONUS: dict[ResourceType, int] = {
    "interactive": 25,
    "video": 20,
    "course": 15,
    "article": 10,
    "book": 10,
}

INTERACTIVITY_BASE: dict[ResourceType, int] = {
    "interactive": 90,
    "video": 70,
    "course": 60,
    "article": 40,
    "book": 30,
}
INTERACTIVITY_INDICATOR_BONUS = 10

FRESHNESS_BANDS = ((30, 100), (90, 90), (180, 80), (365, 70), (730, 60), (1095, 50), (1460, 40))
FRESHNESS_FLOOR = 30
FRESHNESS_UNKNOWN = 50

FIXED_TIME_MINUTES: dict[ResourceType, int] = {"video": 10, "interactive": 15, "course": 60, "book": 240}
BEGINNER_KEYWORDS = ("introduction", "beginner", "basic", "start", "fundamental")
ADVANCED_KEYWORDS = ("advanced", "expert", "in-depth", "deep dive", "complex")
GUIDE_PHRASES = ("how to", "guide", "tutorial")


def clamp_score(value: float) -> int:
    return max(0, min(100, int(round(value))))


def reputation_tier_for_host(url: str) -> ReputationTier | None:
    host = host_of(url)
    if not host:
        return None
    if host.endswith(".edu") or _host_in(host, TOP_TIER_HOSTS):
        return "top"
    if _host_in(host, RECOGNIZED_TIER_HOSTS):
        return "recognized"
    return None


def authority_score(
    url: str,
    source_tier: ReputationTier,
    *,
    has_author: bool = False,
    indicators: int = 0,
) -> int:
    base = TIER_AUTHORITY[source_tier]
    host_tier = reputation_tier_for_host(url)
    if host_tier is not None:
        base = max(base, TIER_AUTHORITY[host_tier])
    bonus = min(AUTHORITY_INDICATOR_CAP, max(0, indicators) * AUTHORITY_INDICATOR_BONUS)
    if has_author:
        bonus += AUTHOR_BONUS
    return clamp_score(base + bonus)


def visual_richness_score(resource_type: ResourceType, indicators: int = 0) -> int:
    return clamp_score(VISUAL_BASE + max(0, indicators) * VISUAL_INDICATOR_BONUS + VISUAL_TYPE_BONUS[resource_type])


def engagement_score(title: str, description: str, visual_richness: int) -> int:
    score = round(visual_richness * 0.5)
    lowered_title = title.lower()
    lowered_description = description.lower()
    if "?" in title:
        score += 5
    if any(phrase in lowered_title for phrase in GUIDE_PHRASES):
        score += 5
    if 10 < len(title) < 70:
        score += 5
    if len(description) > 100:
        score += 10
    if "interactive" in lowered_description or "hands-on" in lowered_description:
        score += 5
    if "learn" in lowered_description or "understand" in lowered_description:
        score += 5
    return clamp_score(score)


def freshness_score(publish_date: datetime | None, now: datetime) -> int:
    """Score recency in age bands; never increases as a resource gets older."""
    if publish_date is None:
        return FRESHNESS_UNKNOWN
    age_days = (now - publish_date).total_seconds() / 86400.0
    if age_days < 0:
        return 100
    for upper_bound, score in FRESHNESS_BANDS:
        if age_days < upper_bound:
            return score
    return FRESHNESS_FLOOR


def interactivity_score(resource_type: ResourceType, indicators: int = 0) -> int:
    return clamp_score(INTERACTIVITY_BASE[resource_type] + max(0, indicators) * INTERACTIVITY_INDICATOR_BONUS)


def composite_quality(authority: int, visual: int) -> ResourceQuality:
    combined = authority * 0.4 + visual * 0.6
    if combined >= 80:
        return "high"
    if combined >= 50:
        return "medium"
    return "low"


def ranking_score(visual: int, authority: int, engagement: int, freshness: int) -> float:
    return round(visual * 0.4 + authority * 0.3 + engagement * 0.2 + freshness * 0.1, 2)


def estimate_time_minutes(resource_type: ResourceType, description: str) -> int:
    if resource_type in FIXED_TIME_MINUTES:
        return FIXED_TIME_MINUTES[resource_type]
    return min(30, max(5, math.ceil(len(description) / 100)))


def difficulty_level(description: str) -> DifficultyLevel:
    lowered = description.lower()
    if any(keyword in lowered for keyword in BEGINNER_KEYWORDS):
        return "beginner"
    if any(keyword in lowered for keyword in ADVANCED_KEYWORDS):
        return "advanced"
    return "intermediate"


def learning_style_fit(resource_type: ResourceType, visual: int) -> LearningStyleFit:
    if resource_type == "video":
        return LearningStyleFit(visual=min(100, visual + 10), auditory=85, reading=40, kinesthetic=30)
    if resource_type == "interactive":
        return LearningStyleFit(visual=80, auditory=40, reading=60, kinesthetic=90)
    if resource_type == "course":
        return LearningStyleFit(visual=70, auditory=75, reading=70, kinesthetic=60)
    if resource_type == "book":
        return LearningStyleFit(visual=min(80, visual), auditory=20, reading=95, kinesthetic=30)
    return LearningStyleFit(visual=visual, auditory=30, reading=90, kinesthetic=20)


def relevance_score(concept_name: str, title: str, description: str) -> int:
    term = concept_name.strip().lower()
    if not term:
        return 0
    return min(100, _count_occurrences(title.lower(), term) * 20 + _count_occurrences(description.lower(), term) * 5)


def score_candidate(candidate: CandidateSignals, *, now: datetime) -> DiscoveredResource:
    authority = authority_score(
        candidate.url,
        candidate.reputation_tier,
        has_author=bool(candidate.author),
        indicators=candidate.authority_indicators,
    )
    visual = visual_richness_score(candidate.resource_type, candidate.visual_indicators)
    engagement = engagement_score(candidate.title, candidate.description, visual)
    freshness = freshness_score(candidate.publish_date, now)
    return DiscoveredResource(
        url=candidate.url,
        title=candidate.title,
        description=candidate.description,
        source_type=candidate.resource_type,
        source_name=candidate.source_name,
        authority_score=authority,
        visual_richness=visual,
        engagement_score=engagement,
        freshness_score=freshness,
        interactivity_score=interactivity_score(candidate.resource_type, candidate.interactivity_indicators),
        source_quality=composite_quality(authority, visual),
        ranking_score=ranking_score(visual, authority, engagement, freshness),
        estimated_time_minutes=estimate_time_minutes(candidate.resource_type, candidate.description),
        difficulty_level=difficulty_level(candidate.description),
        learning_style_fit=learning_style_fit(candidate.resource_type, visual),
        image_url=candidate.image_url,
        author=candidate.author,
        publish_date=candidate.publish_date,
    )


def recompute_derived_scores(resource: DiscoveredResource) -> DiscoveredResource:
    """Replace client-supplied composite label and ranking score with computed values."""
    return resource.model_copy(
        update={
            "source_quality": composite_quality(resource.authority_score, resource.visual_richness),
            "ranking_score": ranking_score(
                resource.visual_richness,
                resource.authority_score,
                resource.engagement_score,
                resource.freshness_score,
            ),
        }
    )


def _host_in(host: str, domains: tuple[str, ...]) -> bool:
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


def _count_occurrences(text: str, term: str) -> int:
    count = 0
    position = text.find(term)
    while position != -1:
        count += 1
        position = text.find(term, position + 1)
    return count
