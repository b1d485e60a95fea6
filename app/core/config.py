"""Application configuration settings."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_database_url() -> str:
    """Get the default database URL, using the mounted volume path if available."""
    if os.path.isdir("/data"):
        return "sqlite:////data/reconciliation.db"
    return "sqlite:///./reconciliation.db"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    PROJECT_NAME: str = "Meter Reconciliation"
    VERSION: str = "0.1.0"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Database - defaults to the volume path if /data exists
    DATABASE_URL: str = _get_default_database_url()

    # Variance bands (absolute percentage of the billed amount)
    VARIANCE_MATCH_PERCENT: float = 5.0
    VARIANCE_PARTIAL_PERCENT: float = 10.0

    # Southern-hemisphere winter / high-demand season
    WINTER_MONTHS: list[int] = [6, 7, 8]

    # Corruption thresholds for a single 30-minute reading
    MAX_KWH_PER_30_MIN: float = 10000
    MAX_KVA_PER_30_MIN: float = 50000
    MAX_METADATA_VALUE: float = 100000


settings = Settings()
