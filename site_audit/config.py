from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    PROJECT_NAME: str = "Site Audit"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"

    API_V1_STR: str = "/api/v1"

    CORS_ORIGINS: str = "*"

    LOG_LEVEL: str = "INFO"

    # Rate Limiting Configuration
    # Backend: "memory" for the per-process map, "redis" to share limits across workers
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_BACKEND: str = "memory"
    RATE_LIMIT_MAX_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_MS: int = 60 * 1000

    REDIS_URL: str = "redis://localhost:6379/0"

    # Audit fetch budget (seconds). Covers redirects and the body read.
    AUDIT_FETCH_TIMEOUT: float = 8.0
    AUDIT_PROBE_TIMEOUT: float = 5.0
    AUDIT_MAX_REDIRECTS: int = 5
    AUDIT_MAX_PAGE_BYTES: int = 5_000_000

    PROBE_MAX_CONTENT_CHARS: int = 10000

    @property
    def cors_origins_list(self) -> List[str]:
        if isinstance(self.CORS_ORIGINS, str):
            return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        return self.CORS_ORIGINS


settings = Settings()
