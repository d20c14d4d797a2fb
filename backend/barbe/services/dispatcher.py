"""
Reminder sweep: push notifications for appointments that are due

One run:
  1. fetch appointments with notification_sent = false and notification_at <= now
  2. for each, sequentially:
     - resolve subscriptions (the booking user's, or all of them for anonymous
       bookings when the broadcast policy is on)
     - normalize every subscription; retire the unusable ones, push to the rest
     - log every push attempt
     - notify the owner on Telegram
     - mark the appointment as sent, whatever happened to the pushes
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional
from urllib.parse import quote

from ..config import Settings
from ..database import CredentialTier, RemoteStoreError, SupabaseClient
from ..models.appointment import Appointment
from ..models.notification import NotificationLog
from .notifications import NotificationType, TelegramNotifier
from .push import PushDeliveryError, PushSender
from .schedule import ScheduleService
from .subscriptions import is_usable, normalize_subscription, retire_subscription

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    """Counters of one sweep run"""
    appointments: int = 0
    marked_sent: int = 0
    delivered: int = 0
    failed: int = 0
    retired: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "appointments": self.appointments,
            "marked_sent": self.marked_sent,
            "delivered": self.delivered,
            "failed": self.failed,
            "retired": self.retired,
            "errors": self.errors,
        }


def build_payload(appointment: Appointment) -> dict:
    """What the service worker shows"""
    return {
        "title": "Recordatorio de cita",
        "body": f"Tu cita de {appointment.service} es a las {appointment.short_time}.",
        "url": "/",
        "appointment_id": appointment.id,
    }


class NotificationDispatcher:
    """Finds due appointments and fans out their reminders"""

    def __init__(
        self,
        settings: Settings,
        store: SupabaseClient,
        push_sender: PushSender,
        notifier: TelegramNotifier,
        schedule: Optional[ScheduleService] = None,
    ):
        self.store = store
        self.push_sender = push_sender
        self.notifier = notifier
        self.schedule = schedule or ScheduleService(settings)
        self.appointments_table = settings.APPOINTMENTS_TABLE
        self.subscriptions_table = settings.SUBSCRIPTIONS_TABLE
        self.log_table = settings.NOTIFICATION_LOG_TABLE
        self.broadcast_anonymous = settings.broadcast_anonymous

    async def run(self, now: Optional[datetime] = None) -> DispatchReport:
        """
        Process every due appointment once

        Raises:
            RemoteStoreError: the due-appointments query was rejected
            httpx.TransportError: the store could not be reached
        """
        if now is None:
            now = self.schedule.now()
        report = DispatchReport()

        due = await self.fetch_due(now)
        if not due:
            logger.debug("No due appointments")
            return report

        logger.info(f"Dispatching reminders for {len(due)} appointment(s)")
        for appointment in due:
            report.appointments += 1
            try:
                await self.process_appointment(appointment, report)
            except Exception as e:
                logger.exception(f"Appointment {appointment.id} failed during dispatch: {e}")
                report.errors.append(f"{appointment.id}: {e}")

        logger.info(
            f"Dispatch done: {report.appointments} appointment(s), {report.delivered} delivered, "
            f"{report.failed} failed, {report.retired} retired"
        )
        return report

    async def fetch_due(self, now: datetime) -> List[Appointment]:
        cutoff = quote(now.astimezone(timezone.utc).isoformat(), safe="")
        query = (
            f"select=*&notification_sent=eq.false&notification_at=lte.{cutoff}"
            f"&order=notification_at.asc"
        )
        response = await self.store.select(self.appointments_table, query, tier=CredentialTier.ADMIN)
        if not response.ok:
            raise RemoteStoreError(response, "due appointments query")
        return [Appointment(**row) for row in response.rows()]

    async def process_appointment(self, appointment: Appointment, report: DispatchReport) -> None:
        """
        Fan out, notify the owner, mark sent

        The owner notice and the mark run even when the fan-out raised, so a
        broken appointment is never picked up again by the next sweep.
        """
        try:
            if self.push_sender.enabled:
                subscriptions = await self.resolve_subscribers(appointment)
                payload = build_payload(appointment)
                for record in subscriptions:
                    await self.deliver(appointment, record, payload, report)
            else:
                logger.debug("Web push is not configured, skipping push fan-out")
        finally:
            try:
                await self.notifier.notify(appointment, NotificationType.REMINDER)
            finally:
                if await self.mark_sent(appointment):
                    report.marked_sent += 1

    async def resolve_subscribers(self, appointment: Appointment) -> List[dict]:
        """Subscriptions to push to; an unreachable table counts as none"""
        if appointment.user_id:
            query = f"select=*&user_id=eq.{quote(appointment.user_id, safe='')}"
        elif self.broadcast_anonymous:
            query = "select=*"
        else:
            logger.info(f"Appointment {appointment.id} has no user and broadcast is off, no push")
            return []

        try:
            response = await self.store.select(self.subscriptions_table, query, tier=CredentialTier.ADMIN)
        except Exception as e:
            logger.error(f"Could not load subscriptions for appointment {appointment.id}: {e}")
            return []
        if not response.ok:
            logger.error(f"Subscriptions query for appointment {appointment.id} failed ({response.status})")
            return []

        return [
            row for row in response.rows()
            if isinstance(row, dict) and not row.get("invalid")
        ]

    async def deliver(self, appointment: Appointment, record: dict, payload: dict, report: DispatchReport) -> None:
        """Push to one subscription; failures stay inside"""
        try:
            info = normalize_subscription(record)
        except Exception as e:
            logger.warning(f"Subscription {record.get('id')} could not be read: {e}")
            info = None
        if not is_usable(info):
            try:
                outcome = await retire_subscription(self.store, self.subscriptions_table, record)
            except Exception as e:
                logger.error(f"Could not retire subscription {record.get('id')}: {e}")
                outcome = "failed"
            if outcome != "failed":
                report.retired += 1
            return

        try:
            response: Any = await self.push_sender.send(info, payload)
            delivered = True
        except PushDeliveryError as e:
            if e.expired:
                logger.warning(f"Subscription {record.get('id')} expired at the push service ({e.status_code})")
            response = e.to_dict()
            delivered = False
        except Exception as e:
            logger.error(f"Push to subscription {record.get('id')} raised: {e}")
            response = {"error": str(e)}
            delivered = False

        if delivered:
            report.delivered += 1
        else:
            report.failed += 1
        await self.log_attempt(appointment, record.get("id"), delivered, response)

    async def log_attempt(self, appointment: Appointment, subscription_id: Any, delivered: bool, response: Any) -> None:
        entry = NotificationLog(
            appointment_id=appointment.id,
            subscription_id=subscription_id,
            delivered=delivered,
            response=response,
        )
        try:
            result = await self.store.insert(self.log_table, [entry.model_dump()], tier=CredentialTier.ADMIN)
            if not result.ok:
                logger.warning(f"Notification log write rejected ({result.status})")
        except Exception as e:
            logger.warning(f"Notification log write failed: {e}")

    async def mark_sent(self, appointment: Appointment) -> bool:
        """
        Flip notification_sent; guarded on the old value so that a row changed
        or removed meanwhile is left alone
        """
        query = f"id=eq.{appointment.id}&notification_sent=eq.false"
        try:
            response = await self.store.update(
                self.appointments_table, query, {"notification_sent": True}, tier=CredentialTier.ADMIN
            )
        except Exception as e:
            logger.error(f"Could not mark appointment {appointment.id} as sent: {e}")
            return False
        if not response.ok:
            logger.error(f"Marking appointment {appointment.id} as sent failed ({response.status})")
            return False
        if not response.rows():
            logger.info(f"Appointment {appointment.id} was already sent or removed")
            return False
        return True
