"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # examgen/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM provider: openai | anthropic
    examgen_llm_provider: str = "openai"

    # OpenAI
    openai_api_key: str | None = None
    examgen_openai_model: str = "gpt-4o"
    # Cheaper model for summary-based generation
    examgen_openai_model_mini: str = "gpt-4o-mini"

    # Anthropic
    anthropic_api_key: str | None = None
    examgen_anthropic_model: str = "claude-3-5-sonnet-20241022"

    # Every external call is bounded; a timeout counts as a transient failure
    examgen_llm_timeout_seconds: float = 120.0

    # File-backed stores live here when no database is configured
    examgen_data_dir: str = "./data"

    # Postgres URL; when set, jobs/questions/summaries are stored in Postgres
    examgen_database_url: str | None = None

    # Durable queue (Redis + rq)
    redis_url: str = "redis://localhost:6379/0"
    question_queue_name: str = "question-generation"
    question_worker_concurrency: int = Field(default=1, ge=1)
    max_retries: int = Field(default=3, ge=0)
    queue_backoff_seconds: int = Field(default=1, ge=0)
    queue_job_timeout_seconds: int = 3600

    # Wave scheduling
    question_batch_size: int = Field(default=50, ge=1)
    question_min_batch_size: int = Field(default=5, ge=1)
    question_wave_size: int = Field(default=10, ge=1)
    question_batch_delay_ms: int = Field(default=2000, ge=0)
    retry_base_delay_ms: int = Field(default=1000, ge=0)

    # Similarity thresholds (0..1)
    duplicate_similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    summary_topic_overlap_threshold: float = Field(default=0.6, ge=0.0, le=1.0)

    # Source documents
    document_max_chars: int = 60_000
    document_fetch_timeout_seconds: float = 30.0

    # Job status API
    active_jobs_limit: int = 20

    @property
    def data_dir(self) -> Path:
        """Data directory as Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.examgen_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def queue_backoff_intervals(self) -> list[int]:
        """Exponential backoff schedule for queue-level retries, in seconds."""
        return [self.queue_backoff_seconds * (2 ** i) for i in range(max(self.max_retries, 1))]

    def model_for(self, provider_name: str) -> str:
        if provider_name == "anthropic":
            return self.examgen_anthropic_model
        return self.examgen_openai_model

    def api_key_for(self, provider_name: str) -> str | None:
        if provider_name == "anthropic":
            return self.anthropic_api_key
        return self.openai_api_key

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
