from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "knowledgeweave-curator"
    environment: str = "dev"
    log_level: str = "INFO"
    storage_backend: Literal["postgres", "memory"] = "postgres"
    memory_concepts_file: str | None = None
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    discovery_default_limit: int = 20
    discovery_max_limit: int = 50
    discovery_source_timeout_seconds: float = 10.0
    discovery_user_agent: str = "Mozilla/5.0 (compatible; KnowledgeWeaveBot/1.0; +https://knowledgeweave.org)"
    sources_file: str | None = None
    youtube_api_key: str | None = None
    default_relevance_score: int = 80
    graph_max_resources: int = 50
    concept_graph_default_limit: int = 5
    recommend_default_limit: int = 10
    learning_style_visual_weight: int = 80
    learning_style_auditory_weight: int = 60
    learning_style_reading_weight: int = 70
    learning_style_kinesthetic_weight: int = 50
    analyze_timeout_seconds: float = 5.0
    url_normalization_overrides_json: str | None = None
    otel_enabled: bool = True
    otel_service_name: str = "knowledgeweave-curator"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="KW_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
