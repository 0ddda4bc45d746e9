"""
Configuration for the Alert Sync Service
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Alert sync configuration"""

    # Service configuration
    SERVICE_NAME: str = "alert_sync"
    HOST: str = "0.0.0.0"
    PORT: int = 8011

    # Push notifications (public VAPID key); unset disables push entirely
    VAPID_PUBLIC_KEY: Optional[str] = None
    PUSH_REGISTRATION_SCOPE: str = "sw.js"

    # Remote alerting backend
    ALERT_BACKEND_URL: str = "http://localhost:3000/alert"
    APP_ORIGIN: str = "http://localhost:8080/"
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Validation: seconds to wait for a price snapshot, unset waits forever
    PRICE_WAIT_TIMEOUT_SECONDS: Optional[float] = 10.0

    # Alert storage; in-memory when no database is configured
    DATABASE_URL: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
