import os
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from .url_parser import parser

load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "PROPERTY MANAGEMENT CORE"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL", "sqlite+aiosqlite:///./propman.db"
    )
    DATABASE_ECHO: bool = False

    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    ACCESS_EXPIRE_MINUTES: int = 60 * 24
    TOKEN_PEPPER: str = os.getenv("TOKEN_PEPPER", "change-me-token-pepper")

    EMAIL_USER: str | None = os.getenv("EMAIL_USER")
    EMAIL_PASSWORD: str | None = os.getenv("EMAIL_PASSWORD")
    EMAIL_SERVER: str | None = os.getenv("EMAIL_SERVER")
    EMAIL_PORT: int = 587
    EMAIL_USE_TLS: bool = True
    EMAIL_TIMEOUT_SECONDS: int = 15

    TERMII_API_KEY: str | None = os.getenv("TERMII_API_KEY")
    TERMII_SENDER_ID: str | None = os.getenv("TERMII_SENDER_ID")
    TERMII_BASE_URL: str | None = os.getenv("TERMII_BASE_URL")
    SMS_TIMEOUT_SECONDS: int = 10

    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    ALLOWED_HOSTS_RAW: str = os.getenv("ALLOWED_HOSTS", "")

    RATE_LIMIT_REDIS_URL: str | None = os.getenv("RATE_LIMIT_REDIS_URL")
    PUBLIC_RATE_LIMIT_TIMES: int = 20
    PUBLIC_RATE_LIMIT_SECONDS: int = 60
    CELERY_REDIS_URL: str = os.getenv("CELERY_REDIS_URL", "redis://localhost:6379/0")

    INVITE_EXPIRATION_DAYS: int = 7
    INVITE_MAX_RESENDS: int = 5
    INVITE_RESEND_COOLDOWN_HOURS: int = 24
    PUBLIC_LINK_DEFAULT_DAYS: int = 7
    SIDE_EFFECT_MAX_ATTEMPTS: int = 5
    SIDE_EFFECT_BATCH_SIZE: int = 50
    DEFAULT_CURRENCY: str = "UGX"

    @property
    def ALLOWED_HOSTS(self) -> List[str]:
        return parser.parse_url_list(self.ALLOWED_HOSTS_RAW, "ALLOWED_HOSTS")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def sms_enabled(self) -> bool:
        return bool(self.TERMII_API_KEY and self.TERMII_BASE_URL)

    @property
    def email_enabled(self) -> bool:
        return bool(self.EMAIL_SERVER and self.EMAIL_USER)

    class Config:
        env_file = ".env"
        extra = "ignore"
        case_sensitive = False

settings = Settings()
