"""
Pydantic models for rows kept in Supabase
"""
from .appointment import Appointment
from .subscription import PushSubscriptionInfo, SubscriptionKeys
from .notification import NotificationLog, OwnerChannelLog

__all__ = [
    "Appointment",
    "PushSubscriptionInfo",
    "SubscriptionKeys",
    "NotificationLog",
    "OwnerChannelLog",
]
