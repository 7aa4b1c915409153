"""Application configuration using Pydantic Settings."""
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ARENA_* environment variables or a .env file."""

    # Local store
    db_path: str = str(Path.home() / ".triunely_arena" / "arena.db")

    # Faith Coach grading function
    grader_url: str = "http://localhost:54321/functions/v1/faith-coach-grade-drill"
    grader_api_key: str = ""
    grader_timeout: float = 30.0

    # Board
    drills_limit: int = 5

    log_level: str = "WARNING"

    model_config = SettingsConfigDict(env_prefix="ARENA_", env_file=".env", extra="ignore")


settings = Settings()
