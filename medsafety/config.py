"""
Service Configuration

Single settings object loaded from environment variables and the project
.env file. Import ``settings`` rather than reading os.environ directly.
"""
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Paths ───────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

# ── Load .env ───────────────────────────────────────────────────────────
load_dotenv(PROJECT_ROOT / ".env")


class Settings(BaseSettings):
    """Runtime configuration for the medication safety service."""

    model_config = SettingsConfigDict(extra="ignore")

    app_name: str = "Medication Safety Review API"
    app_version: str = "1.0.0"

    # Knowledge base tables
    rules_csv_path: Path = DATA_DIR / "rules.csv"
    abnormal_ranges_csv_path: Path = DATA_DIR / "abnormal_ranges.csv"

    # Drug class oracle (Gemini)
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    gemini_model: str = "gemini-2.0-flash"
    oracle_timeout_seconds: float = 50.0
    oracle_temperature: float = 0.0

    # Lab results provider
    lab_results_base_url: str = "https://21rn85vlfa.execute-api.us-east-1.amazonaws.com"
    lab_results_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    cors_origins: List[str] = ["*"]


settings = Settings()
