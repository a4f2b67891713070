from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────────────────────────
    app_name: str = "Process Template Interview"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # ── AWS Region ───────────────────────────────────────────────────────────
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")

    # ── Storage ──────────────────────────────────────────────────────────────
    # "dynamodb" for deployed environments, "memory" for local runs / tests
    storage_backend: str = Field(default="dynamodb", alias="STORAGE_BACKEND")
    dynamodb_table_name: str = Field(
        default="ProcessInterview", alias="DYNAMODB_TABLE_NAME"
    )
    # Set to http://localhost:8000 to target DynamoDB Local
    dynamodb_endpoint_url: str = Field(default="", alias="DYNAMODB_ENDPOINT_URL")

    # ── Anthropic / Claude ───────────────────────────────────────────────────
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")

    # Sonnet answers the interview, Haiku runs background requirement analysis
    claude_sonnet_model: str = "claude-sonnet-4-6"
    claude_haiku_model: str = "claude-haiku-4-5-20251001"
    llm_max_tokens: int = 2048
    llm_timeout_seconds: float = 60.0

    # ── Conversation limits ──────────────────────────────────────────────────
    history_window_size: int = 12
    history_min_tokens_budget: int = 200
    message_max_length: int = 2000
    session_ttl_minutes: int = 60
    conversation_cache_ttl_seconds: int = 3600
    rate_limit_per_hour: int = 100

    # ── Expired-session cleanup ──────────────────────────────────────────────
    session_cleanup_interval_seconds: int = 3600
    # Expired sessions are deleted once their expiry is this far in the past
    expired_session_retention_days: int = 30

    # ── Retry (generation calls) ─────────────────────────────────────────────
    retry_max_attempts: int = 2
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 30000

    # ── Audit ────────────────────────────────────────────────────────────────
    audit_hash_enabled: bool = Field(default=True, alias="AUDIT_HASH_ENABLED")
    audit_hash_salt: str = Field(default="", alias="AUDIT_HASH_SALT")

    # ── Feature flags ────────────────────────────────────────────────────────
    # Flag that gates persisting the structured draft parsed from a reply
    draft_save_flag: str = "ai_template_draft_save"

    # ── CORS ─────────────────────────────────────────────────────────────────
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"], alias="CORS_ORIGINS"
    )

    @property
    def history_tokens_budget(self) -> int:
        return max(self.history_min_tokens_budget, self.llm_max_tokens)


@lru_cache
def get_settings() -> Settings:
    return Settings()
