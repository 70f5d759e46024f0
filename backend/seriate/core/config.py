"""Runtime configuration helpers.

Classes:
    Settings: Pydantic settings model capturing environment-driven defaults.

Functions:
    get_settings(): Return a cached Settings instance for dependency injection.
"""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Seriate API"
    database_url: str = "sqlite+aiosqlite:///./data/seriate.db"
    log_level: str = "INFO"
    openai_api_key: SecretStr | None = None
    openai_base_url: str | None = None
    openai_timeout: float = 60.0
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = Field(default=100, ge=1, le=2048)
    embedding_body_max_chars: int = Field(default=8000, ge=1)
    # Hard cap on a single input sent to the provider, well above a composed message.
    openai_input_max_chars: int = Field(default=32000, ge=1)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
