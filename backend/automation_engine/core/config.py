import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "true").lower() == "true"
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))
    cors_origins_raw: str = os.getenv("CORS_ORIGINS", "http://localhost:5173")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./automation.db")
    platform_api_base_url: str = os.getenv("PLATFORM_API_BASE_URL", "http://localhost:8080/api/v1")
    platform_api_token: str = os.getenv("PLATFORM_API_TOKEN", "")
    dispatch_timeout: float = float(os.getenv("DISPATCH_TIMEOUT", "10"))
    evaluation_interval_seconds: float = float(os.getenv("EVALUATION_INTERVAL_SECONDS", "30"))
    evaluation_max_workers: int = int(os.getenv("EVALUATION_MAX_WORKERS", "4"))
    reading_max_age_seconds: float = float(os.getenv("READING_MAX_AGE_SECONDS", "0"))
    scheduler_enabled: bool = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: str = os.getenv("LOG_DIR", "logs")

    @property
    def cors_origins(self) -> list[str]:
        return [item.strip() for item in self.cors_origins_raw.split(",") if item.strip()]


settings = Settings()
