"""Application configuration from environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All config comes from env vars or .env.backend file."""

    DATABASE_URL: str = "sqlite+aiosqlite:///./anonlink.db"
    FILE_STORAGE_PATH: str = "./uploads"
    API_PORT: int = 8080
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Identity provider
    JWT_SECRET: str = "change-me-in-production"
    ACCESS_TOKEN_TTL_HOURS: int = 24

    # File lifecycle
    FILE_TTL_HOURS: int = 24
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    TOKEN_ISSUE_ATTEMPTS: int = 3

    # Expiry reaper
    REAPER_INITIAL_DELAY_SECONDS: float = 10.0
    REAPER_INTERVAL_SECONDS: float = 3600.0

    class Config:
        env_file = ".env.backend"
        env_file_encoding = "utf-8"
