"""
Central settings for the assessment engine (FastAPI) service.

Values come from the environment (or a local `.env`), matched case-insensitively
to the field names below, and fall back to the defaults.

ASSUMPTIONS / CHECK:
- STORE_BACKEND=prisma needs DATABASE_URL and a generated Prisma client (`prisma generate`).
- AUTO_FINISH_INTERVAL_SECONDS=0 disables the background deadline sweep; the
  admin route can still trigger it.
- CALIBRATION_BACKEND_URL points at the external IRT calibration service.
"""
from __future__ import annotations
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = "ecd-assessment-engine"
    version: str = "0.2.0"
    log_level: str = "INFO"

    store_backend: Literal["memory", "prisma"] = "memory"
    prisma_log_queries: bool = False

    # Optional .csv/.xlsx question bank loaded into the store at startup
    question_bank_path: Optional[str] = None

    # Deadline sweep period; 0 disables the background loop
    auto_finish_interval_seconds: float = Field(default=60.0, ge=0)

    calibration_backend_url: str = "http://r-backend:8000"
    calibration_timeout_seconds: float = Field(default=30.0, gt=0)


settings = Settings()
