"""
API router for services and appointments
"""
import logging
import secrets
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from ..config import Settings
from ..database import CredentialTier, RemoteStoreError, SupabaseClient
from ..models.appointment import Appointment
from ..services.notifications import NotificationType, TelegramNotifier
from ..services.ownership import authorize_delete
from ..services.schedule import ScheduleService
from .deps import get_app_settings, get_notifier, get_schedule, get_store

logger = logging.getLogger(__name__)
router = APIRouter(tags=["appointments"])

OWNER_TOKEN_BYTES = 24


# ==================== Schemas ====================

class BookingRequest(BaseModel):
    # all optional here so that a missing field is a 400, not FastAPI's 422
    name: Optional[str] = None
    service: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    user_id: Optional[str] = None


def generate_owner_token() -> str:
    return secrets.token_urlsafe(OWNER_TOKEN_BYTES)


# ==================== API Endpoints ====================

@router.get("/services")
async def get_services(
    settings: Settings = Depends(get_app_settings),
    store: SupabaseClient = Depends(get_store),
):
    """Service catalogue"""
    response = await store.select(settings.SERVICES_TABLE, "select=id,title,description,price&order=id.asc")
    if not response.ok:
        raise RemoteStoreError(response, "services query")
    return response.body


@router.get("/appointments")
async def list_appointments(
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    settings: Settings = Depends(get_app_settings),
    store: SupabaseClient = Depends(get_store),
    schedule: ScheduleService = Depends(get_schedule),
):
    """Appointments ordered by date and time, optionally for one day"""
    if date:
        try:
            schedule.parse_date(date)
        except ValueError:
            raise HTTPException(status_code=400, detail="invalid date, use YYYY-MM-DD")
        query = f"select=*&date=eq.{date}&order=time.asc"
    else:
        query = "select=*&order=date.asc,time.asc"

    response = await store.select(settings.APPOINTMENTS_TABLE, query)
    if not response.ok:
        raise RemoteStoreError(response, "appointments query")
    return [Appointment(**row).public_dict() for row in response.rows()]


@router.post("/appointments")
async def create_appointment(
    data: BookingRequest,
    settings: Settings = Depends(get_app_settings),
    store: SupabaseClient = Depends(get_store),
    schedule: ScheduleService = Depends(get_schedule),
    notifier: TelegramNotifier = Depends(get_notifier),
):
    """Book an appointment; the answer carries the owner token needed to cancel it"""
    if not data.name or not data.service or not data.date or not data.time:
        raise HTTPException(status_code=400, detail="missing fields")

    try:
        appointment_at, notification_at = schedule.appointment_instants(data.date, data.time)
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid date or time, use YYYY-MM-DD and HH:MM")

    owner_token = generate_owner_token()
    row = {
        "name": data.name,
        "service": data.service,
        "date": data.date,
        "time": data.time,
        "appointment_at": appointment_at.isoformat(),
        "notification_at": notification_at.isoformat(),
        "notification_sent": False,
        "owner_token": owner_token,
    }
    if data.user_id:
        row["user_id"] = data.user_id

    response = await store.insert(settings.APPOINTMENTS_TABLE, [row])
    if not response.ok:
        raise RemoteStoreError(response, "appointment insert")

    rows = response.rows()
    created = dict(rows[0]) if rows else dict(row)
    # the token must reach the client even if the store hides the column
    created["owner_token"] = owner_token

    await notifier.notify(Appointment(**created), NotificationType.NEW_BOOKING)
    return created


@router.delete("/appointments/{appointment_id}")
async def delete_appointment(
    appointment_id: str,
    request: Request,
    settings: Settings = Depends(get_app_settings),
    store: SupabaseClient = Depends(get_store),
    notifier: TelegramNotifier = Depends(get_notifier),
):
    """Cancel an appointment: X-User-Id for user bookings, X-Owner-Token for anonymous ones"""
    query = f"id=eq.{quote(appointment_id, safe='')}"
    response = await store.select(settings.APPOINTMENTS_TABLE, f"select=*&{query}", tier=CredentialTier.ADMIN)
    if not response.ok:
        raise RemoteStoreError(response, "appointment lookup")
    rows = response.rows()
    if not rows:
        raise HTTPException(status_code=404, detail="appointment not found")

    appointment = Appointment(**rows[0])
    decision = authorize_delete(appointment, request.headers)
    if not decision.allowed:
        logger.warning(f"Delete of appointment {appointment_id} denied: {decision.reason.value}")
        raise HTTPException(status_code=decision.status_code, detail=decision.reason.value)

    deleted = await store.delete(settings.APPOINTMENTS_TABLE, query, tier=CredentialTier.ADMIN)
    if not deleted.ok:
        raise RemoteStoreError(deleted, "appointment delete")

    await notifier.notify(appointment, NotificationType.CANCELLED_BOOKING)
    return {"deleted": True, "id": appointment.id}
