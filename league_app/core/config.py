from typing import Optional
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./league.db"
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000

    DEFAULT_DAYS_PER_MATCHDAY: int = 7
    PLAYOFF_DAYS_BETWEEN_ROUNDS: int = 7

    # Fixed seed makes simulated seasons reproducible
    SIMULATION_SEED: Optional[int] = None

    # Go up two levels from core/config.py → project root
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        extra="ignore",
    )


settings = Settings()
