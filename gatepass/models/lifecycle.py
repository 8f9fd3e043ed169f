import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from gatepass.models.visit import VisitRecord


class VisitState(str, enum.Enum):
    pending_approval = "pending_approval"
    approved = "approved"
    denied = "denied"
    active = "active"
    expired = "expired"
    revoked = "revoked"


TERMINAL_STATES = frozenset({VisitState.denied, VisitState.expired, VisitState.revoked})


class Event(str, enum.Enum):
    approve = "approve"
    deny = "deny"
    revoke = "revoke"
    activate = "activate"
    expire = "expire"


class Reason(str, enum.Enum):
    admitted = "admitted"
    not_yet_valid = "not_yet_valid"
    expired = "expired"
    revoked = "revoked"
    denied = "denied"
    pending_approval = "pending_approval"
    invalid_token = "invalid_token"
    malformed_record = "malformed_record"
    unknown_guest = "unknown_guest"
    timeout = "timeout"
    conflict = "conflict"


MESSAGES = {
    Reason.admitted: "Access granted",
    Reason.not_yet_valid: "Access period has not started yet",
    Reason.expired: "Guest pass has expired",
    Reason.revoked: "Guest access has been revoked",
    Reason.denied: "Guest access was denied by the resident",
    Reason.pending_approval: "Guest is waiting for resident approval",
    Reason.invalid_token: "Invalid or corrupted QR code",
    Reason.malformed_record: "QR code could not be read",
    Reason.unknown_guest: "Guest not found",
    Reason.timeout: "Verification timed out",
    Reason.conflict: "Guest was updated during the scan, scan again",
}


@dataclass(frozen=True)
class LifecycleState:
    guest_id: str
    apartment_id: str
    nonce: bytes
    state: VisitState
    window_start: datetime
    window_end: datetime
    version: int = 0
    decided_by: Optional[str] = None
    decision_note: Optional[str] = None
    revoked_by: Optional[str] = None


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    reason: Reason
    state: Optional[VisitState] = None
    record: Optional[VisitRecord] = None

    @classmethod
    def admit(cls, state: VisitState = VisitState.active) -> "AdmissionDecision":
        return cls(True, Reason.admitted, state)

    @classmethod
    def deny(cls, reason: Reason, state: Optional[VisitState] = None) -> "AdmissionDecision":
        return cls(False, reason, state)

    @property
    def message(self) -> str:
        return MESSAGES[self.reason]
