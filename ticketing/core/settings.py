"""
Environment-driven settings, grouped per concern. Each group reads its own
variable prefix; everything else comes from the process environment or `.env`.
"""

import logging
import secrets
from functools import lru_cache
from typing import List, Optional, Union

from pydantic import EmailStr, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings
from pydantic_settings import SettingsConfigDict

logger = logging.getLogger(__name__)


class DatabaseSettings(PydanticBaseSettings):
    """Database configuration settings"""

    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = "ticketing"

    # Connection Pool Settings
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 30
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600
    DB_POOL_PRE_PING: bool = True
    DB_ECHO: bool = False

    # Connection Timeouts
    DB_COMMAND_TIMEOUT: int = 60
    DB_STATEMENT_TIMEOUT: str = "60s"
    DB_LOCK_TIMEOUT: str = "30s"

    @property
    def database_url(self) -> str:
        """Generate database URL for async connections"""
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    model_config = SettingsConfigDict(case_sensitive=True)


class SecuritySettings(PydanticBaseSettings):
    """Security and authentication settings"""

    SECRET_KEY: str = secrets.token_urlsafe(32)
    JWT_ALGORITHM: str = "HS256"

    # Token Expiration
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8
    PASSWORD_RESET_EXPIRE_MINUTES: int = 10

    # Password Security
    PASSWORD_MIN_LENGTH: int = 8

    model_config = SettingsConfigDict(env_prefix="SECURITY_", case_sensitive=True)


class CelerySettings(PydanticBaseSettings):
    """Background task settings"""

    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    CELERY_TASK_SERIALIZER: str = "json"
    CELERY_RESULT_SERIALIZER: str = "json"
    CELERY_ACCEPT_CONTENT: List[str] = ["json"]
    CELERY_TIMEZONE: str = "UTC"
    CELERY_ENABLE_UTC: bool = True

    model_config = SettingsConfigDict(case_sensitive=True)


class MonitoringSettings(PydanticBaseSettings):
    """Monitoring and observability settings"""

    LOG_LEVEL: str = "INFO"
    ENABLE_PROMETHEUS: bool = True

    model_config = SettingsConfigDict(env_prefix="MONITORING_", case_sensitive=True)


class EmailSettings(PydanticBaseSettings):
    """Email configuration settings"""

    # SendGrid Configuration
    SENDGRID_API_KEY: Optional[str] = None
    SENDGRID_FROM_EMAIL: Optional[EmailStr] = None
    SENDGRID_FROM_NAME: str = "Ticketing"

    @property
    def emails_enabled(self) -> bool:
        return bool(self.SENDGRID_API_KEY and self.SENDGRID_FROM_EMAIL)

    model_config = SettingsConfigDict(env_prefix="EMAIL_", case_sensitive=True)


class StorageSettings(PydanticBaseSettings):
    """Photo storage (S3) settings"""

    S3_BUCKET: str = "ticketing-photos"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="STORAGE_", case_sensitive=True)


class PaymentSettings(PydanticBaseSettings):
    """Stripe settings"""

    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    CURRENCY: str = "usd"
    PASS_FEE_MULTIPLIER: float = 1.03

    model_config = SettingsConfigDict(env_prefix="PAYMENT_", case_sensitive=True)


class Settings(PydanticBaseSettings):
    """Main application settings"""

    # Environment
    ENVIRONMENT: str = "development"
    TESTING: bool = False
    VERSION: str = "1.0.0"

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Ticketing"

    # Frontend used for checkout redirects and emailed links
    FRONTEND_HOST: str = "http://localhost:3000"

    # CORS Configuration
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")  # type: ignore
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, list):
            return v
        return []

    # Component Settings
    database: DatabaseSettings = DatabaseSettings()
    security: SecuritySettings = SecuritySettings()
    celery: CelerySettings = CelerySettings()
    monitoring: MonitoringSettings = MonitoringSettings()
    email: EmailSettings = EmailSettings()
    storage: StorageSettings = StorageSettings()
    payment: PaymentSettings = PaymentSettings()

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        return self.database.database_url

    @property
    def SECRET_KEY(self) -> str:
        return self.security.SECRET_KEY

    @property
    def ACCESS_TOKEN_EXPIRE_MINUTES(self) -> int:
        return self.security.ACCESS_TOKEN_EXPIRE_MINUTES

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, validate_assignment=True, extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
