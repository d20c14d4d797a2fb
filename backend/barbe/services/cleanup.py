"""
Removes appointments outside the booking window (today and tomorrow)
"""
import logging
from datetime import date
from typing import Optional

from ..config import Settings
from ..database import CredentialTier, RemoteStoreError, SupabaseClient
from .schedule import ScheduleService

logger = logging.getLogger(__name__)


class CleanupSweep:
    """Deletes every appointment whose date is neither today nor tomorrow"""

    def __init__(self, settings: Settings, store: SupabaseClient, schedule: Optional[ScheduleService] = None):
        self.store = store
        self.schedule = schedule or ScheduleService(settings)
        self.table = settings.APPOINTMENTS_TABLE

    async def run(self, today: Optional[date] = None) -> dict:
        """
        Delete stale rows

        Returns:
            dict: the kept dates and the number of deleted rows

        Raises:
            RemoteStoreError: the delete was rejected
            httpx.TransportError: the store could not be reached
        """
        kept = sorted(self.schedule.retained_dates(today))
        kept_list = ",".join(d.isoformat() for d in kept)
        response = await self.store.delete(
            self.table, f"date=not.in.({kept_list})", tier=CredentialTier.ADMIN
        )
        if not response.ok:
            logger.error(f"Cleanup delete failed ({response.status}): {response.body}")
            raise RemoteStoreError(response, "cleanup delete")

        deleted = len(response.rows())
        logger.info(f"Cleanup removed {deleted} appointment(s), kept {kept_list}")
        return {"deleted": deleted, "kept_dates": [d.isoformat() for d in kept]}
