"""
Application Configuration
Uses pydantic-settings for environment variable management
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "LawnRoute"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # MongoDB
    MONGO_URL: str = "mongodb://localhost:27017"
    DB_NAME: str = "lawnroute"

    # JWT verification (tokens are issued by the identity provider)
    JWT_SECRET_KEY: str = "CHANGE_ME_IN_PRODUCTION_USE_SECURE_KEY"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Wall clock used for ETAs and progress
    BUSINESS_TIMEZONE: str = "America/New_York"

    # Routing
    ROUTING_PROVIDER: str = "haversine"  # haversine or osrm
    OSRM_BASE_URL: str = "https://router.project-osrm.org"
    GOOGLE_MAPS_API_KEY: Optional[str] = None
    AVERAGE_SPEED_KPH: float = 30.0
    DEFAULT_STOP_DURATION_MINUTES: int = 30
    DEFAULT_ROUTE_START_TIME: str = "08:00"

    # Crew planning
    CREW_DAY_CAPACITY_MINUTES: int = 480

    # Progress tracking
    ON_TIME_THRESHOLD_MINUTES: int = 15
    PROGRESS_UPDATE_INTERVAL_SECONDS: int = 30
    NEARBY_RADIUS_METERS: float = 100.0

    def is_production(self) -> bool:
        """Check if running in production mode"""
        return not self.DEBUG

    def validate_production_settings(self) -> list[str]:
        """Validate that production-critical settings are configured"""
        errors = []
        if self.is_production():
            if self.JWT_SECRET_KEY == "CHANGE_ME_IN_PRODUCTION_USE_SECURE_KEY":
                errors.append("JWT_SECRET_KEY must be changed in production")
            if "*" in self.CORS_ORIGINS:
                errors.append("CORS_ORIGINS should not be '*' in production")
        if self.ROUTING_PROVIDER not in ("haversine", "osrm"):
            errors.append(f"Unknown ROUTING_PROVIDER '{self.ROUTING_PROVIDER}', using haversine")
        return errors


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
