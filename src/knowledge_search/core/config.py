"""Configuration management."""

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from knowledge_search.domain.models.rate_limit import DEFAULT_RATE_LIMITS, RateLimitRule


class SearchConfig(BaseModel):
    """Immutable tuning knobs for one search pipeline.

    Built once at startup and handed to the orchestrator, which threads it
    through every stage.
    """

    model_config = ConfigDict(frozen=True)

    semantic_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    keyword_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    memory_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    chunk_weight: float = Field(default=0.4, ge=0.0, le=1.0)

    rerank_enabled: bool = True
    rerank_top_k: int = Field(default=10, ge=1)
    rerank_threshold: float = Field(default=0.0, ge=0.0, le=1.0)

    reformulation_enabled: bool = True
    max_sub_queries: int = Field(default=3, ge=0)
    max_concurrent_variants: int = Field(default=4, ge=1)

    verification_enabled: bool = False
    verification_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    rate_limit_enabled: bool = True
    rate_limits: dict[str, RateLimitRule] = Field(default_factory=lambda: dict(DEFAULT_RATE_LIMITS))

    max_chunk_tokens: int = Field(default=500, ge=1)
    overlap_tokens: int = Field(default=50, ge=0)
    memory_chunk_tokens: int = Field(default=300, ge=1)
    memory_overlap_tokens: int = Field(default=30, ge=0)

    embedding_timeout_seconds: float = Field(default=60.0, gt=0)
    rerank_timeout_seconds: float = Field(default=35.0, gt=0)
    variant_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("rate_limits", mode="after")
    @classmethod
    def merge_default_rate_limits(cls, value: dict[str, RateLimitRule]) -> dict[str, RateLimitRule]:
        # Partial overrides from the environment keep the other defaults
        return {**DEFAULT_RATE_LIMITS, **value}


class Settings(BaseSettings):
    # API Keys
    voyage_api_key: SecretStr = SecretStr("")
    logfire_token: str | None = None

    # Providers
    embedding_model: str = "voyage-3"
    embedding_batch_size: int = 100
    rerank_model: str = "rerank-2-lite"
    rerank_large_model: str = "rerank-2"

    # Neo4j
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: SecretStr = SecretStr("password")
    neo4j_database: str | None = None

    # App config
    debug: bool = True
    log_level: str = "INFO"
    disable_maintenance_jobs: bool = False
    rate_limit_sweep_minutes: int = 5

    search: SearchConfig = Field(default_factory=SearchConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_nested_delimiter="__",  # SEARCH__SEMANTIC_WEIGHT=0.8
    )

    @property
    def rerank_configured(self) -> bool:
        return bool(self.voyage_api_key.get_secret_value())

    def search_config(self) -> SearchConfig:
        return self.search


settings = Settings()
