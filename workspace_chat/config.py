from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings."""

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow"  # Allow extra fields from .env
    )

    # Application
    APP_NAME: str = "Workspace Messaging API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # API
    API_PREFIX: str = "/api/chat"
    HOST: str = "0.0.0.0"
    PORT: int = 8001

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "workspace_chat"

    # Redis (optional - display name cache)
    REDIS_URL: str = ""  # Example: "redis://localhost:6379/0"
    USER_CACHE_TTL: int = 300

    # ========== Bearer tokens (HS256 - shared secret with identity service) ==========
    JWT_SECRET_KEY: str = "dev_secret_key_change_in_production_min_32_chars_required"  # MUST match identity service
    JWT_ALGORITHM: str = "HS256"

    # Messaging
    MESSAGE_MAX_LENGTH: int = 1000
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 100

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    RATE_LIMIT_SEND: str = "20/minute"

    # Push notifications (Expo push service)
    PUSH_NOTIFICATIONS_ENABLED: bool = False
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    PUSH_TIMEOUT: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8081"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]

    # API Documentation (Swagger UI / OpenAPI)
    ENABLE_DOCS: bool = True
    PROJECT_NAME: str = "Workspace - Messaging API"
    API_VERSION: str = "1.0.0"


settings = Settings()
