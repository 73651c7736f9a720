"""
Application configuration settings.

Central configuration module using Pydantic BaseSettings with environment variable support.
Loads from .env file and environment variables.
"""
import json
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists (python-dotenv)
env_path = Path(".env")
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App settings
    APP_NAME: str = "WireGuard Peer Portal"
    APP_ENV: str = Field(default="local", env="APP_ENV")
    DEBUG: bool = Field(default=False, env="DEBUG")

    # Database settings - generic connection string (highest priority)
    DATABASE_URL: Optional[str] = Field(
        default=None,
        env="DATABASE_URL",
        description="Database connection URL",
    )

    # Hosted Postgres raw vars (PG*)
    PGUSER: Optional[str] = Field(default=None, env="PGUSER")
    PGPASSWORD: Optional[str] = Field(default=None, env="PGPASSWORD")
    PGHOST: Optional[str] = Field(default=None, env="PGHOST")
    PGPORT: Optional[str] = Field(default=None, env="PGPORT")
    PGDATABASE: Optional[str] = Field(default=None, env="PGDATABASE")

    # Local docker-compose Postgres settings (fallback for local dev)
    POSTGRES_USER: Optional[str] = Field(default=None, env="POSTGRES_USER")
    POSTGRES_PASSWORD: Optional[str] = Field(default=None, env="POSTGRES_PASSWORD")
    POSTGRES_HOST: Optional[str] = Field(default=None, env="POSTGRES_HOST")
    POSTGRES_PORT: str = Field(default="5432", env="POSTGRES_PORT")
    POSTGRES_DB: str = Field(default="wgportal", env="POSTGRES_DB")

    @property
    def sqlalchemy_database_uri(self) -> str:
        """
        Build SQLAlchemy database URI with priority:
        1. DATABASE_URL (full URL)
        2. PG* vars (hosted Postgres raw env vars)
        3. Local docker-compose Postgres (POSTGRES_*)
        4. SQLite (local development without Docker)
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.PGUSER and self.PGHOST and self.PGDATABASE:
            password = quote_plus(self.PGPASSWORD or "")
            host = self.PGHOST
            port = self.PGPORT or "5432"
            return f"postgresql+psycopg2://{self.PGUSER}:{password}@{host}:{port}/{self.PGDATABASE}"

        # Only use if POSTGRES_HOST env var is explicitly set AND all required vars are present
        if os.getenv("POSTGRES_HOST") and self.POSTGRES_USER and self.POSTGRES_PASSWORD:
            password = quote_plus(self.POSTGRES_PASSWORD)
            return (
                f"postgresql+psycopg2://"
                f"{self.POSTGRES_USER}:{password}@"
                f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return "sqlite:///./wgportal.db"

    # CORS settings
    CORS_ORIGINS: Union[str, List[str]] = Field(
        default='["http://localhost:3000", "http://localhost:4321"]',
        env="CORS_ORIGINS",
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not JSON, treat as comma-separated
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Peer configuration storage
    ENCRYPTION_KEY: Optional[str] = Field(
        default=None,
        env="ENCRYPTION_KEY",
        description="32-byte key for peer config encryption, as 64 hex chars or base64",
    )
    IMPORT_DIR: Optional[str] = Field(
        default=None,
        env="IMPORT_DIR",
        description="Directory scanned recursively for WireGuard *.conf files on import",
    )

    # Peer allocation
    DEFAULT_PEER_LIMIT: int = Field(
        default=3,
        ge=0,
        env="DEFAULT_PEER_LIMIT",
        description="Peer limit assigned to newly provisioned users",
    )
    CLAIM_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        env="CLAIM_MAX_ATTEMPTS",
        description="Candidates tried by a claim before reporting a concurrent claim conflict",
    )

    # Accepted e-mail domains for user provisioning
    ACCEPTED_DOMAINS: Optional[str] = Field(
        default=None,
        env="ACCEPTED_DOMAINS",
        description="Comma-separated list of e-mail domains synced to the database on startup",
    )
    ACCEPTED_DOMAINS_CACHE_TTL: int = Field(
        default=300,
        ge=0,
        env="ACCEPTED_DOMAINS_CACHE_TTL",
        description="Seconds the accepted domain list is cached in memory",
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        env="LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # API Authentication
    API_KEY: Optional[str] = Field(
        default=None,
        env="API_KEY",
        description="Static admin API key. Leave empty to disable authentication.",
    )
    API_KEY_SALT: str = Field(
        default="wgportal_api_key_salt",
        env="API_KEY_SALT",
        description="Salt mixed into stored API key hashes",
    )

    def is_encryption_configured(self) -> bool:
        """Check if an encryption key is configured and not empty."""
        return self.ENCRYPTION_KEY is not None and self.ENCRYPTION_KEY.strip() != ""

    def accepted_domain_list(self) -> List[str]:
        """Parse ACCEPTED_DOMAINS into a list of lowercase domains."""
        if not self.ACCEPTED_DOMAINS:
            return []
        return [d.strip().lower() for d in self.ACCEPTED_DOMAINS.split(",") if d.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
