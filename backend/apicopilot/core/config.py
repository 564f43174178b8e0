from typing import Optional, List
from urllib.parse import urlsplit

from pydantic import Field, AliasChoices, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_INSECURE_DB_PASSWORDS = {
    "postgres",
    "password",
    "changeme",
}

_INSECURE_ALLOWED_ORIGINS_DEFAULTS = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
}

_SUPPORTED_AI_PROVIDERS = {"gemini", "openai"}

DEFAULT_AGENT_SYSTEM_PROMPT = """You are UseEmbed, an intelligent AI assistant embedded in a software product.
Your role is to help users accomplish tasks by understanding their requests and executing the appropriate actions through available APIs.

Guidelines:
1. Be helpful, concise, and accurate
2. When users ask to perform actions, use the available tools/functions
3. If you need more information to complete a task, ask clarifying questions
4. Always explain what actions you're taking
5. Handle errors gracefully and suggest alternatives
6. Respect user privacy and data security"""


def _extract_password_from_database_url(database_url: str | None) -> str | None:
    if not database_url:
        return None
    try:
        return urlsplit(database_url).password
    except ValueError:
        return None


class Settings(BaseSettings):
    # Allow comma-separated env vars for list fields like ALLOWED_ORIGINS
    model_config = SettingsConfigDict(env_file=".env", env_parse_delimiter=",", extra="ignore")
    PROJECT_NAME: str = "API Copilot"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # CORS (JSON array or comma-separated string, normalized below)
    ALLOWED_ORIGINS: List[str] | str = Field(
        default_factory=lambda: ["http://localhost:3000"],
        validation_alias=AliasChoices("ALLOWED_ORIGINS", "CORS_ORIGINS"),
    )

    # Database settings
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_SERVER: str = Field(
        default="db",
        validation_alias=AliasChoices("POSTGRES_SERVER", "POSTGRES_HOST"),
    )
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "apicopilot"

    DB_POOL_SIZE: int = Field(default=10, description="Number of persistent DB connections")
    DB_MAX_OVERFLOW: int = Field(default=20, description="Max additional connections under load")

    # Full DB URL. If not provided, we build it from POSTGRES_*.
    DATABASE_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "SQLALCHEMY_DATABASE_URI"),
    )

    SQLALCHEMY_ECHO: bool = False

    # Gemini (primary by default)
    GEMINI_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_MAX_TOKENS: int = 8192
    GEMINI_TEMPERATURE: float = 0.7

    # OpenAI (fallback by default)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 4096
    OPENAI_TEMPERATURE: float = 0.7

    PRIMARY_AI_PROVIDER: str = "gemini"
    FALLBACK_AI_PROVIDER: Optional[str] = "openai"  # only used when its API key is set
    AI_MAX_RETRIES: int = 3
    AI_RETRY_DELAY_SECONDS: float = 1.0  # doubled after every failed attempt
    LLM_REQUEST_TIMEOUT: int = 30  # seconds

    # Conversation engine
    CHAT_HISTORY_LIMIT: int = 20
    MAX_TOOL_ROUNDS: int = Field(default=1, ge=0, description="Tool rounds allowed per user message")
    TOOL_RESULT_MAX_ITEMS: int = 20
    TOOL_HTTP_TIMEOUT: float = 30.0
    SERIALIZE_CONVERSATION_CYCLES: bool = False
    AGENT_SYSTEM_PROMPT: str = DEFAULT_AGENT_SYSTEM_PROMPT
    TITLE_MAX_TOKENS: int = 50

    def model_post_init(self, __context):
        """
        Validate configuration on startup. In production, fail hard if insecure defaults are detected.
        """
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        is_prod = self.ENVIRONMENT.lower() == "production"
        errors = []

        self.PRIMARY_AI_PROVIDER = self.PRIMARY_AI_PROVIDER.lower()
        if self.FALLBACK_AI_PROVIDER:
            self.FALLBACK_AI_PROVIDER = self.FALLBACK_AI_PROVIDER.lower()

        if self.PRIMARY_AI_PROVIDER not in _SUPPORTED_AI_PROVIDERS:
            errors.append(f"PRIMARY_AI_PROVIDER must be one of {sorted(_SUPPORTED_AI_PROVIDERS)}.")
        if self.FALLBACK_AI_PROVIDER and self.FALLBACK_AI_PROVIDER not in _SUPPORTED_AI_PROVIDERS:
            errors.append(f"FALLBACK_AI_PROVIDER must be one of {sorted(_SUPPORTED_AI_PROVIDERS)}.")
        if self.AI_MAX_RETRIES < 1:
            errors.append("AI_MAX_RETRIES must be at least 1.")

        if is_prod:
            if not self.provider_api_key(self.PRIMARY_AI_PROVIDER):
                errors.append(
                    f"An API key for the primary AI provider '{self.PRIMARY_AI_PROVIDER}' is required in production."
                )

            db_url_password = _extract_password_from_database_url(self.DATABASE_URL)
            if db_url_password and db_url_password in _INSECURE_DB_PASSWORDS:
                errors.append("DATABASE_URL contains an insecure password.")

            if not self.ALLOWED_ORIGINS or set(self.ALLOWED_ORIGINS).issubset(_INSECURE_ALLOWED_ORIGINS_DEFAULTS):
                errors.append(
                    "ALLOWED_ORIGINS must be set to your domain(s) in production (not localhost defaults)."
                )

            if self.DEBUG:
                errors.append("DEBUG must be False in production.")

        # Fail hard with all errors at once for easier debugging
        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)

    def provider_api_key(self, provider: str) -> Optional[str]:
        """Return the configured API key for a provider name, if any."""
        return {
            "gemini": self.GEMINI_API_KEY,
            "openai": self.OPENAI_API_KEY,
        }.get(provider.lower())

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

settings = Settings()
