from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    portal_db_url: str = "sqlite+aiosqlite:///data/portal.db"

    # Logging
    portal_log_level: str = "info"

    # Identity tokens issued by the hosted auth backend
    portal_jwt_secret: str = "dev-jwt-secret-change-in-production"
    portal_jwt_algorithm: str = "HS256"
    portal_jwt_audience: str | None = None  # e.g. "authenticated"; None skips the aud check

    # CORS
    portal_cors_origins: str = "http://localhost:5173"

    # Key display
    portal_key_mask_length: int = 20

    model_config = {"env_prefix": "", "case_sensitive": False, "env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
