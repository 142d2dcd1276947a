from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    APP_NAME: str = "Coffee & Tea Store"
    CLIENT_URL: str = "http://localhost:3000"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    SUPPORT_EMAIL: str = "support@coffeetea.vn"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_ECHO: bool = False

    # JWT
    JWT_SECRET: str = "change-me-access-secret"
    JWT_REFRESH_SECRET: str = "change-me-refresh-secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "coffee-tea-ecommerce"
    JWT_AUDIENCE: str = "coffee-tea-users"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Password hashing / account security
    BCRYPT_ROUNDS: int = 12
    MAX_LOGIN_ATTEMPTS: int = 5
    ACCOUNT_LOCK_MINUTES: int = 30
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24

    # OAuth
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"
    FACEBOOK_GRAPH_URL: str = "https://graph.facebook.com/me"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # VNPay
    VNPAY_TMN_CODE: str = "TESTTMNCODE"
    VNPAY_HASH_SECRET: str = "test-vnpay-hash-secret"
    VNPAY_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    VNPAY_RETURN_URL: str = "http://localhost:5000/api/payment/vnpay/return"
    VNPAY_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    VNPAY_USE_SIMULATOR: bool = False

    # Loyalty
    LOYALTY_VND_PER_POINT_EARNED: int = 10000

    # Uploads
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024
    MAX_UPLOAD_FILES: int = 10
    THUMBNAIL_SIZE: int = 300

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
            if v.startswith("postgres://"):
                return v.replace("postgres://", "postgresql+psycopg://", 1)
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def vnpay_simulator_active(self) -> bool:
        """Simulator hashes are only ever honoured outside production."""
        return self.VNPAY_USE_SIMULATOR and not self.is_production


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
