"""
Appointment row as stored in Supabase
"""
from typing import Any, Optional, Union

from pydantic import BaseModel, field_validator


class Appointment(BaseModel):
    """Booking for one service at one date and time"""

    id: Optional[Union[int, str]] = None
    name: str = ""
    service: str = ""
    date: str = ""  # YYYY-MM-DD
    time: str = ""  # HH:MM
    appointment_at: Optional[str] = None
    notification_at: Optional[str] = None
    notification_sent: bool = False
    user_id: Optional[str] = None
    owner_token: Optional[str] = None

    class Config:
        extra = "allow"

    @field_validator("user_id", "owner_token", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = str(value)
        return value or None

    @field_validator("notification_sent", mode="before")
    @classmethod
    def _null_is_unsent(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "t", "1")
        return bool(value)

    @field_validator("name", "service", "date", "time", mode="before")
    @classmethod
    def _null_is_blank(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def short_time(self) -> str:
        """HH:MM, also when the store returns HH:MM:SS"""
        return self.time[:5]

    def public_dict(self) -> dict:
        """Row without the owner secret, for listings"""
        data = self.model_dump()
        data.pop("owner_token", None)
        return data

    def __repr__(self):
        return f"<Appointment {self.id} {self.date} {self.time} (sent: {self.notification_sent})>"
