from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("adl-payment-autofill", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Anthropic Messages API (extraction + scoring agents)
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    anthropic_base_url: str = Field("https://api.anthropic.com", alias="ANTHROPIC_BASE_URL")
    anthropic_version: str = Field("2023-06-01", alias="ANTHROPIC_VERSION")
    extraction_model: str = Field("claude-sonnet-4-20250514", alias="EXTRACTION_MODEL")
    scoring_model: str = Field("claude-3-5-haiku-20241022", alias="SCORING_MODEL")
    extraction_max_tokens: int = Field(2000, alias="EXTRACTION_MAX_TOKENS")
    scoring_max_tokens: int = Field(1500, alias="SCORING_MAX_TOKENS")
    llm_timeout_seconds: float = Field(60.0, alias="LLM_TIMEOUT_SECONDS")

    # Remote scoring endpoint (e.g. another deployment's /documents/score)
    scoring_endpoint_url: str | None = Field(default=None, alias="SCORING_ENDPOINT_URL")

    # Cost controls
    daily_cost_limit: float = Field(1.0, alias="DAILY_COST_LIMIT")  # USD per UTC day

    # Pipeline host settings
    pipeline_timeout_seconds: float | None = Field(default=None, alias="PIPELINE_TIMEOUT_SECONDS")
    max_upload_bytes: int = Field(5 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    # Document store (empty = in-memory)
    document_db_path: str | None = Field(default=None, alias="DOCUMENT_DB_PATH")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

settings = Settings()
