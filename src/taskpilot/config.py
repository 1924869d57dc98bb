from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_ENV: str = "development"
    APP_PORT: int = 8000

    # LLM Configuration (can be changed easily)
    LLM_PROVIDER: str = "openai"  # openai, azure_openai
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_API_KEY: str = ""
    LLM_TEMPERATURE: float = 0.0
    LLM_TIMEOUT_SECONDS: float = 30.0

    # Azure OpenAI (only read when LLM_PROVIDER is azure_openai)
    AZURE_OPENAI_ENDPOINT: str = ""
    AZURE_OPENAI_API_VERSION: str = "2024-05-01-preview"
    AZURE_OPENAI_DEPLOYMENT: str = ""

    # Caller timezone when the request does not carry one
    DEFAULT_TIMEZONE: str = "UTC"

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = ""

    # Conversation memory
    SESSION_TTL_HOURS: int = 24
    MEMORY_MAX_TURNS: int = 10

    ENABLE_SUGGEST_MEETING_TIME: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()


def validate_required_keys(config: Settings = settings):
    """Validate that all required API keys are present"""
    required_keys = [("LLM_API_KEY", config.LLM_API_KEY)]
    if config.LLM_PROVIDER == "azure_openai":
        required_keys.append(("AZURE_OPENAI_ENDPOINT", config.AZURE_OPENAI_ENDPOINT))

    missing_keys = []
    for key_name, key_value in required_keys:
        if not key_value or key_value.strip() == "":
            missing_keys.append(key_name)

    if missing_keys:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing_keys)}. "
            f"Please check your .env file."
        )
