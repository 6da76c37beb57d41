from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings


class Config(BaseSettings):
    db_url: str = "sqlite+aiosqlite:///./arena.db"
    env: Literal["prod", "dev"] = "prod"

    # JWT & token settings
    # IMPORTANT: set in environment for production
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 15 * 60  # 15 minutes

    # Battles
    session_ttl_seconds: int = 60 * 60  # 1 hour
    rng_seed: int | None = None
    """Fixed seed for every new battle session, random per session when unset"""

    # Logging
    log_level: str = "INFO"
    log_file: str = "arena.log"

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"


load_dotenv()
settings = Config()
