import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):

    environment: str = "development"

    postgres_user: str = os.getenv("POSTGRES_USER", "user")
    postgres_password: str = os.getenv("POSTGRES_PASSWORD", "password")
    postgres_db: str = os.getenv("POSTGRES_DB", "cbt_db")
    postgres_host: str = os.getenv("POSTGRES_HOST", "db")
    postgres_port: int = 5432

    # Overrides the postgres_* parts when set
    database_url_override: Optional[str] = os.getenv("DATABASE_URL")

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    # Integrity enforcement
    violation_threshold: int = 3

    # Scheduler
    sweep_interval_seconds: float = 60.0
    reminder_lead_minutes: int = 5

    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

    # Mail
    notification_backend: str = "celery"
    smtp_host: Optional[str] = ""
    smtp_port: int = 587
    smtp_user_email: Optional[str] = ""
    smtp_user_password: Optional[str] = ""
    smtp_use_tls: bool = True
    mail_from: str = "no-reply@unidel.edu.ng"

    display_timezone: str = "Africa/Lagos"
    display_time_format: str = "%B %d, %Y %I:%M %p"

    log_level: str = "INFO"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user_email and self.smtp_user_password)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
