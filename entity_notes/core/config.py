"""Application configuration with environment variables."""

from uuid import UUID

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.16.0"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 4

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Notes
    NOTE_MAX_LENGTH: int = 10000
    NOTES_SOFT_DELETE: bool = True  # False = hard delete, never both
    NOTES_HIDE_WHEN_DISABLED: bool = False  # Hide existing notes once a type is disabled
    NOTES_PAGE_SIZE: int = 20
    NOTES_MAX_PAGE_SIZE: int = 100

    # Author of system notes when no human actor is attributable
    SYSTEM_USER_ID: UUID = UUID(int=0)

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets


settings = Settings()
