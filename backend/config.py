from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "Vigora"
    SECRET_KEY: str = "change-me-in-production"
    REFRESH_SECRET_KEY: str = "change-me-refresh-in-production"
    DATABASE_URL: str = "sqlite:///data/vigora.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]
    LOG_LEVEL: str = "INFO"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_MINUTES: int = 15
    REFRESH_TOKEN_DAYS: int = 7
    ADMIN_USERNAME: str = "admin"
    ADMIN_EMAIL: str = "admin@vigora.local"
    ADMIN_PASSWORD: str = "V1gora!admin"
    ADMIN_FIRST_NAME: str = "Vigora"
    ADMIN_LAST_NAME: str = "Admin"
    QR_LOGIN_TTL_SECONDS: int = 120
    QR_SHARE_TTL_SECONDS: int = 300
    PASSWORD_RESET_TTL_MINUTES: int = 60
    FRONTEND_URL: str = "http://localhost:5173"
    EMAIL_ENABLED: bool = False
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    EMAIL_FROM: str = "Vigora <noreply@vigora.pt>"
    MAX_EXERCISES_PER_SESSION: int = 10
    SECURITY_HEADERS_ENABLED: bool = True
    RATE_LIMIT_AUTH_LOGIN_ATTEMPTS: int = 10
    RATE_LIMIT_AUTH_LOGIN_WINDOW_SECONDS: int = 300
    RATE_LIMIT_AUTH_REGISTER_ATTEMPTS: int = 5
    RATE_LIMIT_AUTH_REGISTER_WINDOW_SECONDS: int = 600
    RATE_LIMIT_PASSWORD_RESET_ATTEMPTS: int = 5
    RATE_LIMIT_PASSWORD_RESET_WINDOW_SECONDS: int = 900

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    def validate_security_configuration(self) -> None:
        if not self.is_production_like:
            return

        errors: list[str] = []
        if self.SECRET_KEY == "change-me-in-production":
            errors.append("SECRET_KEY must be changed from the default value")
        if self.REFRESH_SECRET_KEY == "change-me-refresh-in-production":
            errors.append("REFRESH_SECRET_KEY must be changed from the default value")
        if self.SECRET_KEY == self.REFRESH_SECRET_KEY:
            errors.append("REFRESH_SECRET_KEY must differ from SECRET_KEY")
        if self.ADMIN_PASSWORD == "V1gora!admin":
            errors.append("ADMIN_PASSWORD must be changed from the default value")
        if self.EMAIL_ENABLED and not (self.SMTP_USERNAME and self.SMTP_PASSWORD):
            errors.append("EMAIL_ENABLED requires SMTP_USERNAME and SMTP_PASSWORD")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Insecure production configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
