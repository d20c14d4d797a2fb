"""
Application configuration
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional


class Settings(BaseSettings):
    """Application settings, built once at startup and passed to every component"""

    # Supabase (PostgREST)
    SUPABASE_URL: str
    SUPABASE_KEY: str  # anon key, safe for the browser
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None  # server only

    # Resources
    APPOINTMENTS_TABLE: str = "appointments"
    SERVICES_TABLE: str = "services"
    SUBSCRIPTIONS_TABLE: str = "push_subscriptions"
    NOTIFICATION_LOG_TABLE: str = "notification_logs"
    OWNER_LOG_TABLE: str = "telegram_logs"

    # Remote client
    REMOTE_MAX_ATTEMPTS: int = 3
    REMOTE_BACKOFF_BASE_MS: int = 200
    REMOTE_TIMEOUT_SECONDS: float = 10.0

    # Reminders and sweeps
    NOTIFICATION_LEAD_MINUTES: int = 60
    NOTIFY_INTERVAL_SECONDS: int = 60
    CLEANUP_INTERVAL_HOURS: int = 24
    ENABLE_SWEEPS: bool = True
    ANONYMOUS_SUBSCRIBER_POLICY: Literal["broadcast", "skip"] = "broadcast"
    TIMEZONE: Optional[str] = None  # None = host clock

    # Web push
    VAPID_PUBLIC_KEY: Optional[str] = None
    VAPID_PRIVATE_KEY: Optional[str] = None
    VAPID_SUBJECT: str = "mailto:admin@example.com"

    # Telegram for the shop owner
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None

    # Application
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 3333

    class Config:
        env_file = Path(__file__).resolve().parent.parent.parent / ".env"
        case_sensitive = True

    @property
    def rest_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/rest/v1"

    @property
    def admin_key(self) -> str:
        return self.SUPABASE_SERVICE_ROLE_KEY or self.SUPABASE_KEY

    @property
    def push_enabled(self) -> bool:
        return bool(self.VAPID_PUBLIC_KEY and self.VAPID_PRIVATE_KEY)

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.TELEGRAM_BOT_TOKEN and self.TELEGRAM_CHAT_ID)

    @property
    def broadcast_anonymous(self) -> bool:
        return self.ANONYMOUS_SUBSCRIBER_POLICY == "broadcast"


@lru_cache()
def get_settings() -> Settings:
    """Read settings from the environment (cached)"""
    return Settings()
