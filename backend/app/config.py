"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./family_rsvp.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Comma-separated user ids allowed to manage imported attendees
    ADMIN_USER_IDS: str = ""

    # RSVP policy
    ALLOW_PRIMARY_REMOVAL: bool = False
    AUTO_PROMOTE_PRIMARY: bool = True
    AUTO_PROMOTE_WAITLIST: bool = True
    RSVP_PENDING_ENABLED: bool = True

    class Config:
        env_file = ".env"

    @property
    def admin_user_ids(self) -> frozenset[str]:
        return frozenset(uid.strip() for uid in self.ADMIN_USER_IDS.split(",") if uid.strip())


settings = Settings()
