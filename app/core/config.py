from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Carpool Connect API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    RESET_TOKEN_EXPIRE_MINUTES: int = 30
    AUTH_COOKIE_NAME: str = "access_token"
    AUTH_COOKIE_MAX_AGE_SECONDS: int = 7 * 24 * 60 * 60
    # 0 disables the token cache; every request then hits the account store.
    AUTH_CACHE_TTL_SECONDS: int = 30

    DATABASE_URL: str
    STORE_TIMEOUT_SECONDS: int = 10

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    SITE_URL: str = "http://localhost:8000"  # base for links in auth emails

    # Geocoding / routing
    NOMINATIM_BASE_URL: str = "https://nominatim.openstreetmap.org"
    OPENROUTESERVICE_BASE_URL: str = "https://api.openrouteservice.org"
    OPENROUTESERVICE_API_KEY: str = ""  # optional; routing falls back to straight-line estimates

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "no-reply@carpool.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"


settings = Settings()
