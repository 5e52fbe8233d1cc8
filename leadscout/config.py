from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "LeadScout"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Job persistence
    database_url: str | None = None
    db_pool_size: int = 5
    job_retention_hours: int = 24

    # Providers
    exa_api_key: str | None = None
    tavily_api_key: str | None = None
    perplexity_api_key: str | None = None
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar"

    # Lead generation pipeline
    lead_result_cap: int = 25
    lead_enrichment_batch_size: int = 5
    lead_enrichment_timeout_seconds: float = 8.0
    lead_discovery_timeout_seconds: float = 40.0
    lead_discovery_results_per_query: int = 20
    lead_max_queries: int = 3
    lead_max_candidates: int = 30
    lead_evidence_max_chars: int = 2000
    signal_catalog_path: str | None = None

    # Security
    cors_origins: list[str] = []

    # Sentry
    sentry_dsn: str | None = None

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "leadgen"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    @property
    def search_providers_configured(self) -> list[str]:
        """Return the names of search providers with credentials present."""
        configured = []
        if self.exa_api_key:
            configured.append("exa")
        if self.tavily_api_key:
            configured.append("tavily")
        return configured

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
