"""Configuration management for SheetLens."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _parse_cors_origins() -> list[str]:
    """Parse CORS origins from environment variable."""
    cors_env = os.getenv("CORS_ALLOW_ORIGINS")
    if cors_env:
        return cors_env.split(",")
    return ["*"]


class Settings(BaseModel):
    """Application settings."""

    # Google Sheets / Drive API credentials
    google_credentials_path: Path = Path(os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"))
    google_token_path: Path = Path(os.getenv("GOOGLE_TOKEN_PATH", "token.json"))

    # Local database for snapshots, pending mutations and column overrides
    database_path: Path = Path(os.getenv("DATABASE_PATH", "data/sheetlens.db"))

    # Server settings
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "8000"))
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"

    # CORS settings (comma-separated list of allowed origins, or * for all)
    cors_allow_origins: list[str] = _parse_cors_origins()

    # Snapshot cache
    cache_max_age_seconds: int = int(os.getenv("CACHE_MAX_AGE_SECONDS", "300"))  # 5 minutes
    cache_purge_age_hours: int = int(os.getenv("CACHE_PURGE_AGE_HOURS", "24"))

    # Structure discovery
    header_scan_rows: int = int(os.getenv("HEADER_SCAN_ROWS", "10"))
    fetch_range: str = os.getenv("FETCH_RANGE", "A1:ZZ1000")
    validation_scan_range: str = os.getenv("VALIDATION_SCAN_RANGE", "A1:ZZ10")

    # Connectivity oracle
    connectivity_probe_url: str = os.getenv(
        "CONNECTIVITY_PROBE_URL", "https://sheets.googleapis.com/$discovery/rest?version=v4"
    )
    connectivity_timeout_seconds: float = float(os.getenv("CONNECTIVITY_TIMEOUT_SECONDS", "3.0"))
    offline_mode: bool = os.getenv("OFFLINE_MODE", "false").lower() == "true"  # Force cache-only reads

    # Background drain of the pending mutation queue
    connectivity_poll_seconds: float = float(os.getenv("CONNECTIVITY_POLL_SECONDS", "15.0"))
    drain_retry_base_seconds: float = float(os.getenv("DRAIN_RETRY_BASE_SECONDS", "30.0"))
    drain_retry_max_seconds: float = float(os.getenv("DRAIN_RETRY_MAX_SECONDS", "3600.0"))
    drain_max_attempts: int = int(os.getenv("DRAIN_MAX_ATTEMPTS", "10"))  # Per scheduled request


settings = Settings()
