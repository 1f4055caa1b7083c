from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Clinic AI Visibility Audit"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"

    # ── Logging ─────────────────────────────────
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "logs"
    LOG_FILE_NAME: str = "clinic_audit.log"

    # ── Audit engine ────────────────────────────
    AUDIT_MAX_PAGES: int = 50
    AUDIT_MAX_PAGES_LIMIT: int = 100
    AUDIT_MAX_CONCURRENT: int = 5
    AUDIT_REQUEST_TIMEOUT: float = 10.0  # seconds, per page
    AUDIT_TIMEOUT: float = 120.0  # seconds, whole audit run
    AUDIT_RETRY_BACKOFF: float = 0.5
    AUDIT_USER_AGENT: str = "Mozilla/5.0 (compatible; ClinicAuditBot/1.0)"

    # Caller supplied when a plagiarism check ran; otherwise the neutral default applies
    DEFAULT_UNIQUENESS_PERCENT: float = 90.0

    # ── Enrichment (all optional) ───────────────
    GOOGLE_PLACES_API_KEY: Optional[str] = None
    GOOGLE_SEARCH_API_KEY: Optional[str] = None
    GOOGLE_SEARCH_ENGINE_ID: Optional[str] = None
    ENRICHMENT_TIMEOUT: float = 15.0

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
