from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List
from decimal import Decimal
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Carwash Earnings API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./carwash.db"
    # Seconds a persistence call may wait (lock wait / statement timeout)
    DB_TIMEOUT_SECONDS: float = 5.0
    DB_ECHO: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: List[str] = ["*"]
    CORS_HEADERS: List[str] = ["*"]

    # Tokens are issued by the auth service; we only verify them
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080

    # Payment requests
    ENFORCE_NET_EARNINGS_CEILING: bool = True
    ADVANCE_MAX_AMOUNT: Decimal = Decimal("2000.00")
    ADVANCE_EARNINGS_THRESHOLD: Decimal = Decimal("2000.00")

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()
