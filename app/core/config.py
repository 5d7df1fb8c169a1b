# app/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra='ignore')

    # Application Settings
    APP_NAME: str = "Storefront Auth API"
    APP_VERSION: str = "1.0.0"
    BRAND_NAME: str = "Yakuza"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))
    WORKERS: int = 1

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./storefront_auth.db")

    # Security Settings
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    BOOTSTRAP_TOKEN_EXPIRE_SECONDS: int = 60

    # CORS Settings
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")
    CORS_ALLOW_CREDENTIALS: bool = True

    # Middleware settings
    GZIP_MIN_SIZE: int = 500
    MAX_REQUEST_SIZE: int = 16 * 1024

    # OTP Settings
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 10
    OTP_RETENTION_MINUTES: int = 24 * 60
    OTP_PURGE_INTERVAL_SECONDS: int = 15 * 60
    OTP_STORE: str = "sql"  # "sql" or "redis"
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)
    REDIS_OTP_PREFIX: str = "otp:"

    # Identity resolution
    IDENTITY_BACKEND: str = "sql"  # "sql" or "firebase"
    IDENTITY_PAGE_SIZE: int = 50
    IDENTITY_RECOVERY_EXTRA_PAGES: int = 4
    PHONE_LOGIN_EMAIL_DOMAIN: str = "phone.user"

    # Bound applied to every store, dispatch and session call
    EXTERNAL_CALL_TIMEOUT_SECONDS: float = 10.0

    # Twilio Settings
    TWILIO_ACCOUNT_SID: str = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER: str = os.environ.get("TWILIO_PHONE_NUMBER", "")

    # SMTP Settings (email contact verification)
    SMTP_HOST: str = os.environ.get("SMTP_HOST", "")
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = os.environ.get("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.environ.get("SMTP_PASSWORD", "")
    SMTP_SENDER: str = os.environ.get("SMTP_SENDER", "")
    SMTP_USE_TLS: bool = True

    # Firebase Settings
    FIREBASE_PROJECT_ID: str = os.environ.get("FIREBASE_PROJECT_ID", "")
    FIREBASE_PRIVATE_KEY: str = os.environ.get("FIREBASE_PRIVATE_KEY", "").replace('\\n', '\n')
    FIREBASE_CLIENT_EMAIL: str = os.environ.get("FIREBASE_CLIENT_EMAIL", "")
    FIREBASE_WEB_API_KEY: str = os.environ.get("FIREBASE_WEB_API_KEY", "")

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Helper methods for list envs
    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # Normalize ALLOWED_ORIGINS if provided as comma-separated string env var CORS_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
