# interview_engine/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    database_url: str = Field(
        "sqlite:///./interview_engine.db", validation_alias="DATABASE_URL"
    )

    openai_api_key: str | None = Field(None, validation_alias="OPENAI_API_KEY")
    openai_base_url: str | None = Field(None, validation_alias="OPENAI_BASE_URL")
    llm_model: str = Field("gpt-4o-mini", validation_alias="LLM_MODEL")
    llm_max_completion_tokens: int = Field(
        1200, validation_alias="LLM_MAX_COMPLETION_TOKENS"
    )

    # When set, the Azure flavour of the OpenAI client is used and
    # llm_model names the deployment.
    azure_openai_endpoint: str | None = Field(
        None, validation_alias="AZURE_OPENAI_ENDPOINT"
    )
    azure_openai_api_version: str = Field(
        "2024-10-21", validation_alias="AZURE_OPENAI_API_VERSION"
    )

    invitation_session_secret: str | None = Field(
        None, validation_alias="INVITATION_SESSION_SECRET"
    )
    environment: str = Field("development", validation_alias="APP_ENV")

    # External AI calls are blocked entirely (503) when this is on.
    hipaa_mode: bool = Field(False, validation_alias="HIPAA_MODE")
    mock_ai: bool = Field(False, validation_alias="MOCK_AI")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    debug_logging: bool = Field(False, validation_alias="DEBUG_LOGGING")

    interview_rate_limit_max: int = Field(
        120, validation_alias="INTERVIEW_RATE_LIMIT_MAX"
    )
    interview_rate_limit_window_seconds: int = Field(
        900, validation_alias="INTERVIEW_RATE_LIMIT_WINDOW_SECONDS"
    )
    invitation_session_ttl_hours: int = Field(
        1, validation_alias="INVITATION_SESSION_TTL_HOURS"
    )

    transcript_window: int = Field(20, validation_alias="TRANSCRIPT_WINDOW")
    max_questions_listed: int = Field(50, validation_alias="MAX_QUESTIONS_LISTED")

    # Tuning constants for complaint completion and question budget.
    complaint_coverage_threshold: float = Field(
        0.5, validation_alias="COMPLAINT_COVERAGE_THRESHOLD"
    )
    complaint_min_questions: int = Field(8, validation_alias="COMPLAINT_MIN_QUESTIONS")
    base_question_budget: int = Field(10, validation_alias="BASE_QUESTION_BUDGET")
    escalation_budget_factor: float = Field(
        1.5, validation_alias="ESCALATION_BUDGET_FACTOR"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
