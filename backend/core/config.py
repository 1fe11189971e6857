import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_env: str
    database_url: str
    jwt_secret_key: str
    jwt_algorithm: str
    jwt_expires_days: int
    cookie_expires_days: int
    reset_token_expires_minutes: int
    cors_origins: tuple[str, ...]
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_use_tls: bool
    mail_from: str
    log_level: str
    db_retry_attempts: int
    db_retry_backoff_seconds: float

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


def load_settings() -> Settings:
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./feedback.db"),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", "change-me"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_expires_days=int(os.getenv("JWT_EXPIRES_DAYS", "30")),
        cookie_expires_days=int(os.getenv("JWT_COOKIE_EXPIRES_DAYS", "30")),
        reset_token_expires_minutes=int(os.getenv("RESET_TOKEN_EXPIRES_MINUTES", "10")),
        cors_origins=_get_list(os.getenv("CORS_ORIGINS"), ("http://localhost:3000",)),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_use_tls=_get_bool(os.getenv("SMTP_USE_TLS"), default=True),
        mail_from=os.getenv("MAIL_FROM", "Student Feedback <no-reply@localhost>"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        db_retry_attempts=max(1, int(os.getenv("DB_RETRY_ATTEMPTS", "3"))),
        db_retry_backoff_seconds=float(os.getenv("DB_RETRY_BACKOFF_SECONDS", "0.1")),
    )


settings = load_settings()


def validate_runtime_config() -> None:
    if settings.is_production and settings.jwt_secret_key == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
