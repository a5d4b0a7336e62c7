"""
Application settings.

All runtime configuration comes from environment variables so the same image
can run in development, test and production without code changes.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import List, Optional


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime settings resolved from the environment"""

    environment: str = "development"
    log_level: str = "INFO"
    database_url: str = "sqlite+aiosqlite:///./photoshare.db"
    jwt_secret_key: Optional[str] = None
    jwt_algorithm: str = "HS256"
    auth_webhook_secret: Optional[str] = None
    admin_api_key: Optional[str] = None
    image_store_upload_url: Optional[str] = None
    image_store_upload_preset: Optional[str] = None
    notification_dedup_window_hours: float = 24.0
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000"]
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def notification_dedup_window(self) -> timedelta:
        return timedelta(hours=self.notification_dedup_window_hours)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development").lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            database_url=os.getenv(
                "DATABASE_URL", "sqlite+aiosqlite:///./photoshare.db"
            ),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            auth_webhook_secret=os.getenv("AUTH_WEBHOOK_SECRET"),
            admin_api_key=os.getenv("ADMIN_API_KEY"),
            image_store_upload_url=os.getenv("IMAGE_STORE_UPLOAD_URL"),
            image_store_upload_preset=os.getenv("IMAGE_STORE_UPLOAD_PRESET"),
            notification_dedup_window_hours=float(
                os.getenv("NOTIFICATION_DEDUP_WINDOW_HOURS", "24")
            ),
            cors_origins=_split_csv(
                os.getenv("CORS_ORIGINS", "http://localhost:3000")
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings instance"""
    return Settings.from_env()
