from typing import Optional

from pydantic_settings import BaseSettings
import os


class Settings(BaseSettings):
    database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./dosetrack.db")
    log_level: str = "INFO"
    default_schedule_days: int = 14
    history_limit_max: int = 100
    # patterns may not start further back than this; None disables the check
    max_backdate_days: Optional[int] = 365

    class Config:
        env_prefix = ""
        env_file = ".env"


settings = Settings()
