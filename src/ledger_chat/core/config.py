"""Configuration management."""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # API Keys
    voyage_api_key: SecretStr = SecretStr("")
    anthropic_api_key: SecretStr = SecretStr("")

    # Models
    voyage_model: str = "voyage-3"
    anthropic_model: str = "claude-3-5-sonnet-latest"
    anthropic_vision_model: str = "claude-3-5-sonnet-latest"
    generation_temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    generation_max_tokens: int = Field(default=1024, gt=0)

    # Neo4j record source
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: SecretStr = SecretStr("password")
    record_window: int = Field(default=100, gt=0, description="Most recent sales/debts read per user")

    # Bearer tokens issued by the auth service
    jwt_secret_key: SecretStr = SecretStr("change-me")
    jwt_algorithm: str = "HS256"

    # Retrieval
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    retrieval_k: int = Field(default=5, gt=0)
    history_window: int = Field(default=6, ge=0)
    chat_turn_timeout: float = Field(default=60.0, gt=0, description="Seconds allowed for one chat turn")

    # In-process caches
    index_cache_max_entries: int = Field(default=500, gt=0)
    index_cache_ttl_seconds: float = Field(default=3600.0, gt=0)
    conversation_max_entries: int = Field(default=10_000, gt=0)
    conversation_ttl_seconds: float = Field(default=86_400.0, gt=0)

    # Presentation
    currency: str = Field(default="MZN", description="ISO code used for amounts and answers")
    max_image_bytes: int = Field(default=10 * 1024 * 1024, gt=0)

    # App config
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    logfire_token: SecretStr | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # Ignore extra fields in .env file
        env_nested_delimiter="__",
    )


settings = Settings()
