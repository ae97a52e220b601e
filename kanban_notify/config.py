"""Environment configuration for the board notification service."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./kanban_notify.db")
        self.FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

        # Live distribution bus
        self.CHANNEL_CAPACITY: int = int(os.getenv("CHANNEL_CAPACITY", "256"))
        self.CHANNEL_IDLE_GRACE_SECONDS: int = int(
            os.getenv("CHANNEL_IDLE_GRACE_SECONDS", "300")
        )
        self.CHANNEL_EVICTION_INTERVAL_SECONDS: int = int(
            os.getenv("CHANNEL_EVICTION_INTERVAL_SECONDS", "60")
        )
        self.STREAM_HEARTBEAT_SECONDS: int = int(os.getenv("STREAM_HEARTBEAT_SECONDS", "15"))

        # Webhook dispatcher
        self.WEBHOOK_TIMEOUT_SECONDS: float = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "10"))
        self.WEBHOOK_FAILURE_THRESHOLD: int = int(os.getenv("WEBHOOK_FAILURE_THRESHOLD", "10"))
        self.WEBHOOK_WORKER_COUNT: int = int(os.getenv("WEBHOOK_WORKER_COUNT", "4"))
        self.WEBHOOK_QUEUE_SIZE: int = int(os.getenv("WEBHOOK_QUEUE_SIZE", "1000"))

        # Activity feed paging
        self.ACTIVITY_PAGE_DEFAULT: int = int(os.getenv("ACTIVITY_PAGE_DEFAULT", "50"))
        self.ACTIVITY_PAGE_MAX: int = int(os.getenv("ACTIVITY_PAGE_MAX", "200"))

    def validate(self) -> None:
        """Validate that configured values are usable."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")
        if self.CHANNEL_CAPACITY < 1:
            raise ValueError("CHANNEL_CAPACITY must be at least 1")
        if self.WEBHOOK_WORKER_COUNT < 1:
            raise ValueError("WEBHOOK_WORKER_COUNT must be at least 1")
        if self.WEBHOOK_FAILURE_THRESHOLD < 1:
            raise ValueError("WEBHOOK_FAILURE_THRESHOLD must be at least 1")
        if self.ACTIVITY_PAGE_DEFAULT > self.ACTIVITY_PAGE_MAX:
            raise ValueError("ACTIVITY_PAGE_DEFAULT cannot exceed ACTIVITY_PAGE_MAX")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
