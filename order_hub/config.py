from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/orders"
    log_level: str = "INFO"

    # Browser clients are served from a different origin
    cors_origins: list[str] = ["*"]

    # Localization
    default_language: str = "fr"
    languages: list[str] = ["fr", "en"]

    # Observability (tracing is disabled unless an endpoint is set)
    otlp_endpoint: str | None = None

    model_config = {"env_file": ".env"}


settings = Settings()
