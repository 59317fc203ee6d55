"""Application configuration and settings."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Configuration
    service_name: str = "clinic-queue"
    clinic_queue_port: int = 8010
    environment: str = "development"
    cors_origins: List[str] = ["http://localhost:3000"]

    # FHIR Server Configuration
    fhir_enabled: bool = False
    fhir_base_url: str = "http://hapi.fhir.org/baseR4"
    fhir_auth_token: Optional[str] = None
    fhir_use_mock: bool = True  # In-memory encounter store when no server
    fhir_timeout_seconds: float = 10.0

    # Triage / Queue
    triage_extension_url: str = "https://ucc.emr/triage-encounter"
    queue_search_limit: int = 200

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
