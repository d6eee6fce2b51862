"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_name: str = Field(default="mowave", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=5000, description="API port")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5000",
        description="CORS allowed origins (comma-separated)"
    )

    # Authentication
    jwt_secret_key: str = Field(default="mowave-dev-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_expire_minutes: int = Field(default=60 * 24, description="Access token lifetime (minutes)")
    bcrypt_rounds: int = Field(default=12, description="bcrypt cost factor")
    default_admin_email: str = Field(default="admin@mowave.com", description="Seeded admin email")
    default_admin_password: str = Field(default="password", description="Seeded admin password")

    # Store seeding
    seed_default_admin: bool = Field(default=True, description="Create the default admin on startup")
    seed_sample_vouchers: bool = Field(default=True, description="Create sample vouchers on startup")

    # Payment Processing
    currency: str = Field(default="UGX", description="Currency for all amounts")
    min_payment_amount: int = Field(default=1000, description="Minimum payment amount")
    max_payment_amount: int = Field(default=50000, description="Maximum payment amount")
    enforce_network_prefixes: bool = Field(
        default=False, description="Reject phone numbers whose prefix does not match the network"
    )
    mtn_success_probability: float = Field(default=0.85, description="Simulated MTN MoMo success rate")
    airtel_success_probability: float = Field(
        default=0.80, description="Simulated Airtel Money success rate"
    )
    mtn_delay_seconds: float = Field(default=3.0, description="Simulated MTN MoMo latency")
    airtel_delay_seconds: float = Field(default=4.0, description="Simulated Airtel Money latency")
    settlement_workers: int = Field(default=4, description="Concurrent settlement consumers")

    # SMS
    sms_mode: str = Field(default="mock", description="SMS sender (mock/http)")
    sms_gateway_url: str = Field(default="", description="HTTP SMS gateway endpoint")
    sms_api_key: str = Field(default="", description="HTTP SMS gateway API key")
    sms_sender_id: str = Field(default="MoWave", description="SMS sender id")
    sms_timeout_seconds: float = Field(default=10.0, description="HTTP SMS gateway timeout")
    sms_mock_delay_seconds: float = Field(default=1.0, description="Simulated SMS latency")
    sms_log_max_entries: int = Field(default=10000, description="SMS log entries kept in memory")
    sms_log_retention_days: int = Field(default=30, description="Age after which SMS log entries are pruned")
    sms_log_prune_interval_seconds: float = Field(
        default=3600.0, description="Interval between SMS log prunes"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("mtn_success_probability", "airtel_success_probability")
    @classmethod
    def validate_probability(cls, v: float) -> float:
        """Success probabilities must lie in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("Success probability must be between 0 and 1")
        return v

    @field_validator("sms_mode")
    @classmethod
    def validate_sms_mode(cls, v: str) -> str:
        """Validate SMS sender mode."""
        if v.lower() not in ("mock", "http"):
            raise ValueError("Invalid SMS mode. Must be 'mock' or 'http'")
        return v.lower()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def is_mock_sms(self) -> bool:
        """Check if SMS messages are only simulated."""
        return self.sms_mode == "mock"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
