from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App
    APP_ENV: str = "dev"
    SECRET_KEY: str
    JWT_EXPIRES_MIN: int = 1440
    LOG_LEVEL: str = "INFO"

    # CSV of allowed browser origins for the SPA
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:5174"

    # DB
    DB_URL: str

    # Gmail (may be None in dev: mails are only logged then)
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REFRESH_TOKEN: str | None = None
    EMAIL_FROM: str | None = None

    # Base URL of the frontend, used for the verification links in e-mails
    PUBLIC_BASE_URL: str = "http://localhost:5173"

    # Booking
    VERIFICATION_TOKEN_TTL_HOURS: int = 72
    DEFAULT_SLOT_MINUTES: int = 15
    TEACHER_EMAIL_DOMAIN: str = "bksb.nrw"

    # Auto-assignment of verified requests nobody acted upon
    AUTO_ASSIGN_ENABLED: bool = True
    AUTO_ASSIGN_INTERVAL_SEC: int = 300
    AUTO_ASSIGN_AFTER_HOURS: int = 24

    # Bootstrap admin, created at startup if missing
    ADMIN_USERNAME: str | None = None
    ADMIN_PASSWORD: str | None = None

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
