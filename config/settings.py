"""
Career Import Pipeline - Configuration

Loads settings from environment variables with sensible defaults.
"""

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        default=f"sqlite:///{PROJECT_ROOT}/data/career_import.db"
    )

    @property
    def project_root(self) -> Path:
        """Return project root directory."""
        return PROJECT_ROOT

    # Application
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    LOG_DIR: Path = Field(default=PROJECT_ROOT / "logs")
    LOG_TO_FILE: bool = Field(default=True)

    # Staging sessions
    SESSION_TTL_SECONDS: int = Field(default=24 * 60 * 60)

    # Duplicate detection
    EXACT_MATCH_THRESHOLD: float = Field(default=90.0)
    LIKELY_MATCH_THRESHOLD: float = Field(default=60.0)
    DATE_TOLERANCE_DAYS: int = Field(default=45)
    MATCH_WORKERS: int = Field(default=1)

    # API server
    API_HOST: str = Field(default="127.0.0.1")
    API_PORT: int = Field(default=8000)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
