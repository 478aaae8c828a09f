"""
Application settings and configuration management using Pydantic Settings.
"""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application Settings
    app_name: str = Field(default="Booking Flow Engine", description="Application name")
    app_env: str = Field(default="development", description="Environment (development, staging, production)")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Locale
    timezone: str = Field(default="America/Mexico_City", description="Timezone used to resolve booking dates")
    currency: str = Field(default="MXN", description="ISO currency code for prices")

    # Pricing
    tax_rate: float = Field(default=0.16, ge=0.0, le=1.0, description="Tax rate applied to the subtotal")
    default_base_price: float = Field(default=1500.0, ge=0.0, description="Fallback unit price when a service has none")

    # Booking Rules
    booking_horizon_months: int = Field(default=6, ge=1, description="How far ahead a booking may be placed")
    default_max_guests: int = Field(default=10, ge=1, description="Capacity used when a service declares none")
    opening_hour: int = Field(default=9, ge=0, le=23, description="First bookable hour")
    closing_hour: int = Field(default=22, ge=1, le=24, description="Hour at which the last slot ends")
    time_slot_minutes: int = Field(default=30, ge=5, le=120, description="Slot granularity in minutes")

    # Data Refresh
    refresh_page_size: int = Field(default=20, ge=1, description="Page size for paginated refreshes")

    # Form Validation
    validate_on_change: bool = Field(default=True, description="Validate a field whenever its value changes")
    validate_on_blur: bool = Field(default=True, description="Validate a field when it is marked as touched")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed_levels:
            raise ValueError(f"log_level must be one of {allowed_levels}")
        return v_upper

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed_envs = ["development", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed_envs:
            raise ValueError(f"app_env must be one of {allowed_envs}")
        return v_lower

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"


# Global settings instance
settings = Settings()
