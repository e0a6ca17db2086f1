"""Application configuration management using Pydantic Settings."""
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the directory where settings.py is located
BASE_DIR = Path(__file__).resolve().parent

class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    app_name: str = "Orderflow"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = Field(default="development", pattern="^(development|staging|production)$")

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Storage
    storage_backend: str = Field(default="mongodb", pattern="^(mongodb|memory)$")

    # MongoDB
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = "orderflow"
    mongodb_order_collection: str = "orders"
    mongodb_product_collection: str = "products"
    mongodb_user_collection: str = "users"
    mongodb_code_collection: str = "verification_codes"
    mongodb_issuance_collection: str = "otp_issuances"
    mongodb_counter_collection: str = "counters"
    mongodb_max_pool_size: int = 10
    mongodb_min_pool_size: int = 1

    # Orders
    order_number_prefix: str = "ORD"
    order_number_width: int = 6
    free_shipping_threshold: float = 50.0
    flat_shipping_fee: float = 5.0
    eta_floor_minutes: int = 30
    delivery_buffer_minutes: int = 15
    default_prep_minutes: int = 15

    # One-time codes
    otp_length: int = 6
    otp_ttl_minutes: int = 10
    otp_max_attempts: int = 5
    otp_hourly_limit: int = 5
    otp_rate_window_minutes: int = 60
    otp_resend_interval_seconds: int = 60

    # Email (SMTP)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = Field(default="", description="SMTP username")
    smtp_password: str = Field(default="", description="SMTP password")
    smtp_from_email: str = Field(default="")

    # SMS gateway (Twilio-compatible REST API)
    sms_base_url: str = "https://api.twilio.com/2010-04-01"
    sms_account_sid: str = Field(default="", description="SMS gateway account SID")
    sms_auth_token: str = Field(default="", description="SMS gateway auth token")
    sms_from_number: str = Field(default="")
    sms_timeout: float = 10.0

    # Log and report success for channels that are not configured
    simulate_delivery: bool = False

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_format: str = "json"

    model_config = SettingsConfigDict(
        env_file= BASE_DIR.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
