from fastapi import Depends, Query

from curator.core.config import Settings, get_settings
from curator.core.urls import parse_normalization_overrides
from curator.services.curation import Curator
from curator.services.ranking import LearningStyleWeights
from curator.services.repository import ResourceRepository, get_repository


def get_learning_style_weights(
    visual: int | None = Query(default=None, ge=0, le=100),
    auditory: int | None = Query(default=None, ge=0, le=100),
    reading: int | None = Query(default=None, ge=0, le=100),
    kinesthetic: int | None = Query(default=None, ge=0, le=100),
    settings: Settings = Depends(get_settings),
) -> LearningStyleWeights:
    """Learner profile weights; query values override the configured default profile."""
    return LearningStyleWeights(
        visual=settings.learning_style_visual_weight if visual is None else visual,
        auditory=settings.learning_style_auditory_weight if auditory is None else auditory,
        reading=settings.learning_style_reading_weight if reading is None else reading,
        kinesthetic=settings.learning_style_kinesthetic_weight if kinesthetic is None else kinesthetic,
    )


def get_curator(
    repository: ResourceRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> Curator:
    return Curator(
        repository,
        default_relevance=settings.default_relevance_score,
        normalization_overrides=parse_normalization_overrides(settings.url_normalization_overrides_json),
    )
