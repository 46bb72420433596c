from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    REDIS_URL: AnyUrl | None = None
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    # Token store backend: "memory" or "redis"
    STORE_BACKEND: Literal["memory", "redis"] = "memory"
    # Authentication
    API_KEYS: str = ""  # Comma-separated list of API keys
    REQUIRE_AUTH: bool = False  # Whether to enforce authentication
    # Token issuance
    TOKEN_ISSUE_MODE: Literal["reuse", "rotate"] = "reuse"
    SENSITIVE_ACTIONS: str = "account_view_pass,account_create"
    HASH_ITERATIONS: int = 480000
    SESSION_TTL_SECONDS: int = 3600

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
