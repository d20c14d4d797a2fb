"""
Append-only delivery log entries
"""
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class NotificationLog(BaseModel):
    """One push delivery attempt"""

    appointment_id: Optional[Union[int, str]] = None
    subscription_id: Optional[Union[int, str]] = None
    sent_at: str = Field(default_factory=utc_now_iso)
    delivered: bool
    response: Any = None


class OwnerChannelLog(BaseModel):
    """One Telegram message to the shop owner"""

    appointment_id: Optional[Union[int, str]] = None
    chat_id: Optional[str] = None
    sent_at: str = Field(default_factory=utc_now_iso)
    delivered: bool
    response: Any = None
