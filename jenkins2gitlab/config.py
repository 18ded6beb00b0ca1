"""
Configuration management for the Jenkins to GitLab migration engine
Settings are read from environment variables and an optional .env file
"""
import logging
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""
    app_name: str = "Jenkins to GitLab Migration Engine"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Plugin knowledge base override (YAML or JSON). Built-in table when unset.
    knowledge_base_path: Optional[str] = None

    # Optional LLM enrichment for plugins the knowledge base does not know
    enrichment_enabled: bool = False
    enrichment_base_url: str = "https://api.openai.com/v1"
    enrichment_api_key: Optional[str] = None
    enrichment_model: str = "gpt-4o-mini"
    enrichment_timeout: float = 20.0      # seconds, per call
    enrichment_max_concurrency: int = 5

    # Circuit breaker guarding the enrichment endpoint
    circuit_failure_threshold: int = 5
    circuit_recovery_timeout: float = 60.0  # seconds

    # Enrichment result cache
    enrichment_cache_ttl: float = 24 * 60 * 60
    enrichment_cache_max_entries: int = 1000

    # GitLab CI Lint (optional server-side validation)
    gitlab_url: str = "https://gitlab.com"
    gitlab_token: Optional[str] = None

    class Config:
        env_file = ".env"
        env_prefix = "J2G_"
        extra = "ignore"


settings = Settings()

_logging_configured = False


def configure_logging(level: Optional[str] = None):
    """Apply a basic logging configuration once per process."""
    global _logging_configured
    if _logging_configured:
        return
    level_name = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _logging_configured = True
