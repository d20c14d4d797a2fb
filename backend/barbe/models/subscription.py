"""
Web push subscription in its canonical shape
"""
from typing import Optional

from pydantic import BaseModel


class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionInfo(BaseModel):
    """Endpoint plus key pair, as the browser Push API hands it out"""

    endpoint: str
    keys: Optional[SubscriptionKeys] = None

    @property
    def usable(self) -> bool:
        return bool(self.endpoint and self.keys)

    def to_webpush(self) -> dict:
        """subscription_info argument for pywebpush"""
        return self.model_dump()
