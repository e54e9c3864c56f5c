from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    APP_NAME: str = "Friendss"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    DATABASE_URL: str = "sqlite:///./friendss.db"
    CORS_ORIGINS: List[str] = ["*"]

    # Base used when building shareable room links
    PUBLIC_BASE_URL: str = "http://localhost:5173"

    # Draw rules
    MIN_PARTICIPANTS: int = 5
    MAX_DRAW_ATTEMPTS: int = 100

    # Room lifetime, both measured from room creation
    ROOM_TTL_SECONDS: int = 3600
    DRAWN_ROOM_TTL_SECONDS: int = 300
    EXPIRY_WARNING_SECONDS: int = 60
    TIMER_TICK_SECONDS: float = 1.0

    # Client session timings
    EXIT_GRACE_SECONDS: float = 2.0
    LEAVE_GRACE_SECONDS: float = 1.0
    RESUBSCRIBE_DELAY_SECONDS: float = 1.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
