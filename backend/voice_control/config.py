"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Voice Agent Control API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3001

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "voice_agent_db"
    POSTGRES_USER: str = "voiceagent"
    POSTGRES_PASSWORD: str = "voiceagent"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    TOKEN_ISSUER: str = "voice-agent-control"
    TOKEN_AUDIENCE: str = "voice-agent-users"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12

    # Refresh token registry
    ROTATE_REFRESH_TOKENS: bool = False
    TOKEN_SWEEP_INTERVAL_SECONDS: float = 3600.0
    RUN_TOKEN_SWEEPER: bool = True

    # Rate Limiting
    RATE_LIMIT_PER_WINDOW: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 900
    RATE_LIMIT_PER_MINUTE: int = 100
    RATE_LIMIT_PER_HOUR: int = 1000
    LOGIN_RATE_LIMIT_PER_MINUTE: int = 10
    LOGIN_RATE_LIMIT_PER_HOUR: int = 50

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:5173"]

    # Admin
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "Admin12345"
    ADMIN_EMAIL: str = "admin@example.com"

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """CORS_ORIGINS from the environment: a JSON list or a comma list"""
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if raw.startswith("["):
            origins = json.loads(raw)
        else:
            origins = raw.split(",")
        return [str(origin).strip() for origin in origins if str(origin).strip()]

    @field_validator("BCRYPT_ROUNDS")
    @classmethod
    def _check_bcrypt_rounds(cls, value: int) -> int:
        # bcrypt accepts log2 rounds in [4, 31]
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return value

    def get_log_file(self) -> str:
        if self.LOG_FILE:
            return self.LOG_FILE
        return str(_BASE_DIR / "logs" / "voice_control.log")

    def get_database_url(self) -> str:
        """DATABASE_URL if set, otherwise built from the POSTGRES_* parts"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Refuse to start with token or bootstrap settings that are unsafe.

        Lifetimes are always checked; secrets, admin password and CORS
        origins only when ENVIRONMENT=production.

        Raises:
            ValueError: On the first unsafe setting found.
        """
        if self.ACCESS_TOKEN_EXPIRE_MINUTES <= 0 or self.REFRESH_TOKEN_EXPIRE_DAYS <= 0:
            raise ValueError("Token lifetimes must be positive")
        if self.ACCESS_TOKEN_EXPIRE_MINUTES >= self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60:
            raise ValueError("ACCESS_TOKEN_EXPIRE_MINUTES must be shorter than the refresh token lifetime")

        if self.ENVIRONMENT.lower() != "production":
            return

        known_dev_secrets = {
            "dev-secret-key-change-in-production-use-openssl-rand-hex-32",
            "your-super-secret-jwt-key-change-this-in-production",
        }
        if self.SECRET_KEY in known_dev_secrets or len(self.SECRET_KEY) < 32:
            raise ValueError(
                "Insecure SECRET_KEY for production. Use a strong key (e.g. `openssl rand -hex 32`)."
            )

        if self.ADMIN_PASSWORD in {"12345", "Admin12345"} or len(self.ADMIN_PASSWORD) < 12:
            raise ValueError("Insecure ADMIN_PASSWORD for production. Set ADMIN_PASSWORD before startup.")

        # Credentials are allowed cross-origin, so a wildcard would expose them.
        if "*" in self.CORS_ORIGINS:
            raise ValueError("CORS_ORIGINS may not contain '*' in production")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
