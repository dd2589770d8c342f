from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # App
    APP_NAME: str = "FileVault"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "production"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Shared admin credential
    APP_USERNAME: str = ""
    APP_PASSWORD: str = ""

    # JWT
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    SESSION_EXPIRE_HOURS: int = 24
    SESSION_SHORT_EXPIRE_HOURS: int = 1
    SESSION_COOKIE_NAME: str = "auth_token"

    # Object storage (any S3-compatible endpoint)
    STORAGE_KEY_ID: str | None = None
    STORAGE_APP_KEY: str | None = None
    STORAGE_BUCKET_NAME: str = "filevault"
    STORAGE_ENDPOINT_URL: str | None = None
    STORAGE_REGION: str = "us-east-1"
    STORAGE_PUBLIC_URL: str = ""

    # Email
    SENDGRID_API_KEY: str = ""
    FROM_EMAIL: str = ""
    ADMIN_EMAIL: str = ""

    # Folder recovery
    OTP_EXPIRE_MINUTES: int = 10
    RECOVERY_TOKEN_EXPIRE_MINUTES: int = 10
    OTP_SEND_RATE_LIMIT: str = "5/minute"

    # Security
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    ALLOWED_HOSTS: List[str] = ["*"]
    RATE_LIMIT_ENABLED: bool = True
    LOGIN_RATE_LIMIT: str = "10/minute"
    MAX_FILE_SIZE_MB: int = 100

    # Zip export
    ZIP_MAX_ENTRIES: int = 10000
    ZIP_WALK_TIMEOUT_SECONDS: float = 30.0
    ZIP_CHUNK_QUEUE_SIZE: int = 16

    # Monitoring
    SENTRY_DSN: str = ""
    LOG_LEVEL: str = "INFO"
    SLOW_REQUEST_SECONDS: float = 1.0

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
