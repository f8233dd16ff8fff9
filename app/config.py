from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes
    DB_CONNECT_TIMEOUT: int = 10  # Seconds to establish a new connection

    # JWT Settings (tokens are issued by the auth service, only decoded here)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "Storefront Checkout"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Razorpay Payment Gateway
    RAZORPAY_KEY_ID: str = ""  # Public key, returned to the checkout page
    RAZORPAY_KEY_SECRET: str = ""  # Signs verify-callback payloads
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None  # Signs webhook bodies
    PAYMENT_CURRENCY: str = "INR"
    PAYMENT_GATEWAY_TIMEOUT: float = 15.0  # Seconds per gateway API call

    # Pending payment sweep
    PAYMENT_SWEEP_ENABLED: bool = True
    PAYMENT_SWEEP_INTERVAL_MINUTES: int = 10
    PAYMENT_SWEEP_MIN_AGE_MINUTES: int = 5  # Leave fresh orders to webhook/verify
    PAYMENT_SWEEP_BATCH_SIZE: int = 100
    PAYMENT_EXPIRY_HOURS: int = 24  # Unpaid orders older than this are cancelled

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
