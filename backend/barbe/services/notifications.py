"""
Telegram notifications for the shop owner

Best effort: every failure is logged and swallowed, callers never see it.
"""
import logging
from enum import Enum
from typing import Optional

import httpx

from ..config import Settings
from ..database import CredentialTier, SupabaseClient
from ..models.appointment import Appointment
from ..models.notification import OwnerChannelLog

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Why the owner is being notified"""
    NEW_BOOKING = "new_booking"
    REMINDER = "reminder"
    CANCELLED_BOOKING = "cancelled_booking"


class TelegramNotifier:
    """Sends booking events to the owner's Telegram chat"""

    def __init__(
        self,
        settings: Settings,
        store: Optional[SupabaseClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.bot_token = settings.TELEGRAM_BOT_TOKEN
        self.chat_id = settings.TELEGRAM_CHAT_ID
        self.log_table = settings.OWNER_LOG_TABLE
        self.api_url = f"https://api.telegram.org/bot{self.bot_token}"
        self.store = store
        self._client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    @staticmethod
    def format_message(appointment: Appointment, reason: NotificationType) -> str:
        icons = {
            NotificationType.NEW_BOOKING: "🔔",
            NotificationType.REMINDER: "⏰",
            NotificationType.CANCELLED_BOOKING: "❌",
        }
        titles = {
            NotificationType.NEW_BOOKING: "Nueva cita",
            NotificationType.REMINDER: "Cita próxima",
            NotificationType.CANCELLED_BOOKING: "Cita cancelada",
        }
        return (
            f"{icons.get(reason, '📢')} {titles.get(reason, reason.value)}\n\n"
            f"👤 Cliente: {appointment.name or '—'}\n"
            f"✂️ Servicio: {appointment.service or '—'}\n"
            f"📅 Fecha: {appointment.date or '—'}\n"
            f"🕐 Hora: {appointment.short_time or '—'}\n"
            f"ID #{appointment.id}"
        )

    async def send_telegram_message(self, text: str) -> tuple:
        """
        Send text to the owner chat

        Returns:
            (delivered, response body or error text)
        """
        payload = {"chat_id": self.chat_id, "text": text}
        if self._client is not None:
            response = await self._client.post(f"{self.api_url}/sendMessage", json=payload, timeout=10.0)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(f"{self.api_url}/sendMessage", json=payload, timeout=10.0)

        try:
            body = response.json()
        except ValueError:
            body = response.text

        if response.status_code == 200:
            logger.info(f"Owner notified in chat {self.chat_id}")
            return True, body
        logger.error(f"Telegram sendMessage failed: {response.status_code} {response.text[:200]}")
        return False, body

    async def notify(self, appointment: Appointment, reason: NotificationType) -> None:
        """Notify the owner about an appointment; never raises"""
        if not self.enabled:
            logger.debug("Telegram is not configured, skipping owner notification")
            return

        try:
            delivered, response = await self.send_telegram_message(self.format_message(appointment, reason))
        except Exception as e:
            logger.error(f"Exception while notifying owner about {appointment.id}: {e}")
            delivered, response = False, {"error": str(e)}

        await self._log_delivery(appointment, delivered, response)

    async def _log_delivery(self, appointment: Appointment, delivered: bool, response) -> None:
        if self.store is None:
            return
        entry = OwnerChannelLog(
            appointment_id=appointment.id,
            chat_id=self.chat_id,
            delivered=delivered,
            response=response,
        )
        try:
            result = await self.store.insert(self.log_table, [entry.model_dump()], tier=CredentialTier.ADMIN)
            if not result.ok:
                logger.warning(f"Owner log write rejected ({result.status})")
        except Exception as e:
            logger.warning(f"Owner log write failed: {e}")
