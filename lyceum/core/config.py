from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings


class Config(BaseSettings):
    db_url: str = "sqlite+aiosqlite:///./lyceum.db"
    env: Literal["prod", "dev"] = "prod"

    # Create tables and seed the baseline catalog on startup
    create_tables: bool = True
    seed_catalog: bool = True

    # JWT settings
    # IMPORTANT: set in environment for production
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 15 * 60  # 15 minutes

    # Compare-and-swap retry budget
    tx_max_attempts: int = 5
    tx_backoff_base_seconds: float = 0.02
    tx_backoff_max_seconds: float = 0.5

    # Progression outbox
    outbox_flush_interval_seconds: float = 30.0
    outbox_max_users: int = 1000

    # Calendar used for daily streaks
    streak_timezone: str = "UTC"

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"


load_dotenv()
settings = Config()
