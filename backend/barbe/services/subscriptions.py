"""
Push subscription normalization

Rows in the subscriptions table were written by several versions of the
subscribe endpoint, so the endpoint and keys may live in a nested JSON
object or in flat columns. Each reader below either returns the canonical
shape or declines with None; the first one that answers wins.
"""
import json
import logging
from typing import Any, Callable, List, Optional

from ..database import CredentialTier, SupabaseClient
from ..models.subscription import PushSubscriptionInfo, SubscriptionKeys

logger = logging.getLogger(__name__)

# Columns that may hold the whole browser subscription object
NESTED_FIELDS = ("subscription", "subscription_json", "push_subscription", "sub", "data")

# Flat column conventions: (p256dh column, auth column)
FLAT_KEY_COLUMNS = (
    ("p256dh", "auth"),
    ("keys_p256dh", "keys_auth"),
)


def _as_dict(value: Any) -> Optional[dict]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def _keys_from(p256dh: Any, auth: Any) -> Optional[SubscriptionKeys]:
    if isinstance(p256dh, str) and isinstance(auth, str) and p256dh and auth:
        return SubscriptionKeys(p256dh=p256dh, auth=auth)
    return None


def from_nested_object(record: dict) -> Optional[PushSubscriptionInfo]:
    """Browser subscription JSON stored under one of NESTED_FIELDS"""
    for field in NESTED_FIELDS:
        nested = _as_dict(record.get(field))
        if not nested:
            continue
        endpoint = nested.get("endpoint")
        keys = _as_dict(nested.get("keys")) or {}
        parsed = _keys_from(keys.get("p256dh"), keys.get("auth"))
        if isinstance(endpoint, str) and endpoint and parsed:
            return PushSubscriptionInfo(endpoint=endpoint, keys=parsed)
    return None


def from_flat_columns(record: dict) -> Optional[PushSubscriptionInfo]:
    """endpoint + p256dh/auth columns, or a keys JSON column"""
    endpoint = record.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint:
        return None
    for p256dh_column, auth_column in FLAT_KEY_COLUMNS:
        parsed = _keys_from(record.get(p256dh_column), record.get(auth_column))
        if parsed:
            return PushSubscriptionInfo(endpoint=endpoint, keys=parsed)
    keys = _as_dict(record.get("keys")) or {}
    parsed = _keys_from(keys.get("p256dh"), keys.get("auth"))
    if parsed:
        return PushSubscriptionInfo(endpoint=endpoint, keys=parsed)
    return None


def from_endpoint_only(record: dict) -> Optional[PushSubscriptionInfo]:
    """Last resort: endpoint without keys, never sendable"""
    candidates = [record.get("endpoint")]
    for field in NESTED_FIELDS:
        nested = _as_dict(record.get(field))
        if nested:
            candidates.append(nested.get("endpoint"))
    for endpoint in candidates:
        if isinstance(endpoint, str) and endpoint:
            return PushSubscriptionInfo(endpoint=endpoint)
    return None


READERS: List[Callable[[dict], Optional[PushSubscriptionInfo]]] = [
    from_nested_object,
    from_flat_columns,
    from_endpoint_only,
]


def normalize_subscription(record: dict) -> Optional[PushSubscriptionInfo]:
    """
    Rebuild {endpoint, keys} from a stored row

    Returns:
        PushSubscriptionInfo, possibly without keys (check .usable), or None
        when not even an endpoint can be found
    """
    if not isinstance(record, dict):
        return None
    for reader in READERS:
        info = reader(record)
        if info is not None:
            return info
    return None


def is_usable(info: Optional[PushSubscriptionInfo]) -> bool:
    return info is not None and info.usable


async def retire_subscription(store: SupabaseClient, table: str, record: dict) -> str:
    """
    Take an unusable subscription out of rotation

    Patches invalid=true; when the store refuses (e.g. no such column),
    deletes the row instead.

    Returns:
        "invalidated", "deleted" or "failed"
    """
    subscription_id = record.get("id")
    if subscription_id is None:
        logger.warning("Unusable subscription without id, cannot retire it")
        return "failed"

    query = f"id=eq.{subscription_id}"
    patched = await store.update(table, query, {"invalid": True}, tier=CredentialTier.ADMIN)
    if patched.ok:
        logger.warning(f"Subscription {subscription_id} has no usable keys, marked invalid")
        return "invalidated"

    deleted = await store.delete(table, query, tier=CredentialTier.ADMIN)
    if deleted.ok:
        logger.warning(f"Subscription {subscription_id} has no usable keys, deleted")
        return "deleted"

    logger.error(
        f"Could not retire subscription {subscription_id}: "
        f"patch {patched.status}, delete {deleted.status}"
    )
    return "failed"
