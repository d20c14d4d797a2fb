"""
Who may cancel an appointment
"""
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from ..models.appointment import Appointment

USER_ID_HEADER = "X-User-Id"
OWNER_TOKEN_HEADER = "X-Owner-Token"


class DenyReason(str, Enum):
    MISSING_IDENTITY = "missing-identity"
    MISSING_TOKEN = "missing-token"
    FORBIDDEN = "forbidden"
    NO_OWNER_DATA = "no-owner-data"


# missing credentials are 401, wrong or impossible ones 403
DENY_STATUS = {
    DenyReason.MISSING_IDENTITY: 401,
    DenyReason.MISSING_TOKEN: 401,
    DenyReason.FORBIDDEN: 403,
    DenyReason.NO_OWNER_DATA: 403,
}


@dataclass(frozen=True)
class OwnershipDecision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @property
    def status_code(self) -> int:
        return 200 if self.allowed else DENY_STATUS[self.reason]


ALLOW = OwnershipDecision(allowed=True)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return value or None


def authorize_delete(appointment: Appointment, headers: Mapping[str, str]) -> OwnershipDecision:
    """
    Check the request headers against the appointment's owner data

    Appointments booked by a known user are matched on X-User-Id, anonymous
    ones on the X-Owner-Token handed out at booking time. Comparisons are
    exact string matches.
    """
    if appointment.user_id:
        requester = _header(headers, USER_ID_HEADER)
        if requester is None:
            return OwnershipDecision(False, DenyReason.MISSING_IDENTITY)
        if requester != appointment.user_id:
            return OwnershipDecision(False, DenyReason.FORBIDDEN)
        return ALLOW

    if appointment.owner_token:
        token = _header(headers, OWNER_TOKEN_HEADER)
        if token is None:
            return OwnershipDecision(False, DenyReason.MISSING_TOKEN)
        if not secrets.compare_digest(token.encode(), appointment.owner_token.encode()):
            return OwnershipDecision(False, DenyReason.FORBIDDEN)
        return ALLOW

    return OwnershipDecision(False, DenyReason.NO_OWNER_DATA)
