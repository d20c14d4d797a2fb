"""
Date and time helpers for bookings, reminders and cleanup
"""
from datetime import date, time, datetime, timedelta, tzinfo
from typing import Optional, Set, Tuple
from zoneinfo import ZoneInfo

from ..config import Settings


class ScheduleService:
    """Local clock of the shop"""

    def __init__(self, settings: Settings):
        self.lead = timedelta(minutes=settings.NOTIFICATION_LEAD_MINUTES)
        self.zone: Optional[tzinfo] = ZoneInfo(settings.TIMEZONE) if settings.TIMEZONE else None

    def now(self) -> datetime:
        """Aware local now"""
        if self.zone is not None:
            return datetime.now(self.zone)
        return datetime.now().astimezone()

    def today(self) -> date:
        return self.now().date()

    def localize(self, value: datetime) -> datetime:
        """Attach the shop zone to a naive local datetime"""
        if value.tzinfo is not None:
            return value
        if self.zone is not None:
            return value.replace(tzinfo=self.zone)
        return value.astimezone()

    @staticmethod
    def parse_date(date_str: str) -> date:
        return datetime.strptime(date_str.strip(), "%Y-%m-%d").date()

    @staticmethod
    def parse_time(time_str: str) -> time:
        """HH:MM, seconds tolerated"""
        value = time_str.strip()
        fmt = "%H:%M:%S" if value.count(":") == 2 else "%H:%M"
        return datetime.strptime(value, fmt).time()

    def appointment_instants(self, date_str: str, time_str: str) -> Tuple[datetime, datetime]:
        """
        Absolute instants for a booking

        Returns:
            (appointment_at, notification_at): aware datetimes, the second one
            NOTIFICATION_LEAD_MINUTES earlier

        Raises:
            ValueError: date or time in a wrong format
        """
        appointment_at = self.localize(
            datetime.combine(self.parse_date(date_str), self.parse_time(time_str))
        )
        return appointment_at, appointment_at - self.lead

    def retained_dates(self, today: Optional[date] = None) -> Set[date]:
        """Dates kept by the cleanup sweep: today and tomorrow"""
        if today is None:
            today = self.today()
        return {today, today + timedelta(days=1)}
