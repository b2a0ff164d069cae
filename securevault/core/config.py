"""
Configuration Management
Loads settings from environment variables with type validation
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "SecureVault"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
    ]

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "securevault"
    POSTGRES_PASSWORD: str = "securevault"
    POSTGRES_DB: str = "securevault"

    # Full SQLAlchemy URL, overrides the POSTGRES_* settings when set
    DATABASE_URL: Optional[str] = None

    @property
    def POSTGRES_URL(self) -> str:
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def SQLALCHEMY_DATABASE_URL(self) -> str:
        return self.DATABASE_URL or self.POSTGRES_URL

    # MinIO
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_ACCESS_KEY: str = "minioadmin"
    MINIO_SECRET_KEY: str = "minioadmin"
    MINIO_USE_SSL: bool = False
    MINIO_BUCKET: str = "securevault-files"
    PRESIGNED_URL_EXPIRES_SECONDS: int = 3600

    # OpenID Connect
    OIDC_ISSUER: str = "http://localhost:8080/realms/securevault"
    OIDC_CLIENT_ID: str = "securevault"
    OIDC_CLIENT_SECRET: Optional[str] = None
    OIDC_REDIRECT_URI: str = "http://localhost:8000/api/callback"
    OIDC_POST_LOGOUT_REDIRECT_URI: str = "http://localhost:3000/"
    OIDC_SCOPES: str = "openid email profile"
    OIDC_ALGORITHMS: List[str] = ["RS256"]
    OIDC_JWKS_CACHE_TTL: int = 3600
    OIDC_JWKS_REFRESH_INTERVAL: int = 60
    OIDC_HTTP_TIMEOUT_SECONDS: float = 10.0

    # Session
    SESSION_COOKIE_NAME: str = "securevault_session"
    SESSION_COOKIE_SECURE: bool = False
    SESSION_COOKIE_MAX_AGE: int = 7 * 24 * 3600
    TRUST_PROXY_HEADERS: bool = False

    # File Upload
    MAX_UPLOAD_SIZE_MB: int = 100
    DEFAULT_BUCKET_MAX_SIZE: int = 1024 * 1024 * 1024

    # Audit log
    AUDIT_LOG_MAX_RETRIES: int = 3
    AUDIT_LOG_RETRY_DELAY_SECONDS: float = 0.2

    # Monitoring
    ENABLE_METRICS: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid = ["development", "staging", "production", "test"]
        if v not in valid:
            raise ValueError(f"ENVIRONMENT must be one of {valid}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}")
        return v_upper

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "allow"


# Global settings instance
settings = Settings()
