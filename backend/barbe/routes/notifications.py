"""
API router for web push subscriptions and the manual sweep triggers
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..config import Settings
from ..database import RemoteStoreError, SupabaseClient
from ..services.cleanup import CleanupSweep
from ..services.dispatcher import NotificationDispatcher
from .deps import get_app_settings, get_cleanup, get_dispatcher, get_store

logger = logging.getLogger(__name__)
router = APIRouter(tags=["notifications"])


# ==================== Schemas ====================

class SubscribeRequest(BaseModel):
    subscription: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


def subscription_row(data: SubscribeRequest) -> dict:
    """
    Canonical row written for every new subscription

    Raises:
        HTTPException: 400 when the endpoint is not a non-empty string or a
            key is present but not a string
    """
    subscription = data.subscription or {}
    endpoint = subscription.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise HTTPException(status_code=400, detail="subscription endpoint missing")

    keys = subscription.get("keys")
    if keys is None:
        keys = {}
    if not isinstance(keys, dict):
        raise HTTPException(status_code=400, detail="subscription keys malformed")
    for name in ("p256dh", "auth"):
        if keys.get(name) is not None and not isinstance(keys[name], str):
            raise HTTPException(status_code=400, detail=f"subscription key {name} malformed")

    return {
        "user_id": data.user_id,
        "endpoint": endpoint,
        "p256dh": keys.get("p256dh"),
        "auth": keys.get("auth"),
        "metadata": data.metadata or {},
    }


# ==================== API Endpoints ====================

@router.get("/vapidPublicKey")
async def get_vapid_public_key(settings: Settings = Depends(get_app_settings)):
    """Key the browser needs for pushManager.subscribe()"""
    return {"publicKey": settings.VAPID_PUBLIC_KEY, "enabled": settings.push_enabled}


@router.post("/subscribe")
async def subscribe(
    data: SubscribeRequest,
    settings: Settings = Depends(get_app_settings),
    store: SupabaseClient = Depends(get_store),
):
    """Store a browser push subscription"""
    row = subscription_row(data)
    response = await store.insert(settings.SUBSCRIPTIONS_TABLE, [row])
    if not response.ok:
        raise RemoteStoreError(response, "subscription insert")

    rows = response.rows()
    return rows[0] if rows else row


@router.post("/processNotifications")
async def process_notifications(dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    """Run the reminder sweep now"""
    report = await dispatcher.run()
    return {"ok": True, **report.to_dict()}


@router.post("/cleanup")
async def run_cleanup(cleanup: CleanupSweep = Depends(get_cleanup)):
    """Run the cleanup sweep now"""
    result = await cleanup.run()
    return {"ok": True, **result}
