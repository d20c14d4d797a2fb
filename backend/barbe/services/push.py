"""
Web push delivery (VAPID) through pywebpush
"""
import asyncio
import json
import logging
from typing import Any, Optional

from pywebpush import WebPushException, webpush

from ..config import Settings
from ..models.subscription import PushSubscriptionInfo

logger = logging.getLogger(__name__)


class PushDeliveryError(Exception):
    """Push service refused the message (expired, invalid, unreachable)"""

    def __init__(self, detail: str, status_code: Optional[int] = None, body: Any = None):
        self.detail = detail
        self.status_code = status_code
        self.body = body
        super().__init__(detail)

    @property
    def expired(self) -> bool:
        return self.status_code in (404, 410)

    def to_dict(self) -> dict:
        return {"error": self.detail, "status": self.status_code, "body": self.body}


class PushSender:
    """Sends encrypted payloads to browser push endpoints"""

    def __init__(self, settings: Settings):
        self.public_key = settings.VAPID_PUBLIC_KEY
        self.private_key = settings.VAPID_PRIVATE_KEY
        self.subject = settings.VAPID_SUBJECT
        self.ttl = 60 * 60

    @property
    def enabled(self) -> bool:
        return bool(self.public_key and self.private_key)

    async def send(self, subscription: PushSubscriptionInfo, payload: dict) -> dict:
        """
        Deliver one payload

        Args:
            subscription: canonical subscription with keys
            payload: JSON payload read by the service worker

        Returns:
            dict: status code and body of the push service answer

        Raises:
            PushDeliveryError: push service rejected the message
        """
        if not self.enabled:
            raise PushDeliveryError("web push is not configured")
        if not subscription.usable:
            raise PushDeliveryError("subscription has no keys")

        try:
            response = await asyncio.to_thread(
                webpush,
                subscription_info=subscription.to_webpush(),
                data=json.dumps(payload),
                vapid_private_key=self.private_key,
                # pywebpush adds aud/exp to the claims dict, so pass a fresh one
                vapid_claims={"sub": self.subject},
                ttl=self.ttl,
            )
        except WebPushException as e:
            response = getattr(e, "response", None)
            status_code = getattr(response, "status_code", None)
            body = getattr(response, "text", None)
            logger.error(f"Push to {subscription.endpoint[:60]} failed ({status_code}): {e}")
            raise PushDeliveryError(str(e), status_code, body) from e

        return {
            "status": getattr(response, "status_code", None),
            "body": getattr(response, "text", None),
        }
