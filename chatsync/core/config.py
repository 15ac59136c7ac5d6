from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import secrets
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"
    DATABASE_URL: str = "sqlite:///./data/chatsync.db"

    # Bearer credential verification
    AUTH_SECRET: str = ""
    AUTH_ALGORITHM: str = "HS256"

    # Completion / image API
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    SITE_URL: str = "http://localhost:3000"
    APP_TITLE: str = "chatsync"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 4000
    LLM_TIMEOUT: float = 120.0

    # API keys untuk web search, tried in this order
    BING_SEARCH_KEY: str = ""
    BRAVE_SEARCH_KEY: str = ""
    SERPAPI_KEY: str = ""
    SEARCH_RESULT_COUNT: int = 10
    SEARCH_TIMEOUT: float = 15.0

    # Uploads, served back from PUBLIC_BASE_URL/uploads
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    UPLOAD_DIR: str = "./data/uploads"
    MAX_UPLOAD_BYTES: int = 16 * 1024 * 1024
    ALLOWED_UPLOAD_TYPES: List[str] = [
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "text/plain",
    ]

    # Messages left in "generating" longer than this are marked failed
    GENERATION_TIMEOUT_SECONDS: int = 300
    GENERATION_SWEEP_INTERVAL_SECONDS: int = 60

    # "anyone" keeps every table world-readable; "authenticated" requires a token
    READ_PERMISSION: str = "anyone"

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Database pool configuration
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()

# Fix for common SQLAlchemy issues with postgres:// vs postgresql://
if settings.DATABASE_URL.startswith("postgres://"):
    settings.DATABASE_URL = settings.DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Generate a secret for development only
if not settings.AUTH_SECRET:
    if settings.ENVIRONMENT != "production":
        settings.AUTH_SECRET = secrets.token_urlsafe(32)
        logger.warning("⚠️ Using auto-generated AUTH_SECRET for development. Set AUTH_SECRET in production!")
    else:
        raise ValueError("AUTH_SECRET must be set in production environment")

# Cek ketersediaan API keys
if not settings.OPENROUTER_API_KEY:
    logger.warning("⚠️ OPENROUTER_API_KEY not configured - completion and image endpoints will fail")
if not settings.BING_SEARCH_KEY:
    logger.debug("🔍 BING_SEARCH_KEY not configured - Bing search skipped")
if not settings.BRAVE_SEARCH_KEY:
    logger.debug("🔍 BRAVE_SEARCH_KEY not configured - Brave search skipped")
if not settings.SERPAPI_KEY:
    logger.debug("🔍 SERPAPI_KEY not configured - SerpAPI search skipped")
