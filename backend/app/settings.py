from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

DEFAULT_CONTENT_DIR = Path(__file__).resolve().parent / "content"


class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	# Coach model used for lesson conversation
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Optional: model override used only for grading submissions
	gemini_model_grader: str | None = Field(default=None, validation_alias="GEMINI_MODEL_GRADER")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Writing Coach", validation_alias="OPENROUTER_TITLE")

	# Model call limits; a timed-out call surfaces as a retryable upstream error
	llm_timeout_seconds: float = Field(default=30.0, validation_alias="LLM_TIMEOUT_SECONDS")
	llm_max_output_tokens: int = Field(default=1024, validation_alias="LLM_MAX_OUTPUT_TOKENS")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Lesson / rubric catalog JSON files
	content_dir: Path = Field(default=DEFAULT_CONTENT_DIR, validation_alias="CONTENT_DIR")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Progress defaults
	default_weekly_goal: int = Field(default=3, validation_alias="DEFAULT_WEEKLY_GOAL")
	curriculum_lessons_per_week: int = Field(default=3, validation_alias="CURRICULUM_LESSONS_PER_WEEK")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
