import secrets
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

from gatepass.errors import InvalidVisit
from gatepass.models.lifecycle import LifecycleState
from gatepass.models.visit import NONCE_SIZE, ApprovalType, GuestType, VisitRecord
from gatepass.services import cipher, codec
from gatepass.services.lifecycle import LifecycleMachine


@dataclass(frozen=True)
class IssuedCredential:
    record: VisitRecord
    state: LifecycleState
    token: str


class IssuanceService:
    def __init__(self, key: bytes, machine: LifecycleMachine):
        self.key = key
        self.machine = machine

    def build_record(
        self,
        apartment_id: str,
        guest_type: GuestType,
        approval_type: ApprovalType,
        valid_from: date,
        issued_at: datetime,
        valid_to: Optional[date] = None,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        **details,
    ) -> VisitRecord:
        guest_type = GuestType(guest_type)
        if valid_to is None:
            if guest_type is GuestType.frequent:
                raise InvalidVisit("valid_to is required for frequent guests")
            # one-time guests are valid until the end of their day
            valid_to = valid_from

        return VisitRecord(
            guest_id=uuid.uuid4().hex,
            apartment_id=apartment_id,
            guest_type=guest_type,
            approval_type=approval_type,
            valid_from=valid_from,
            valid_to=valid_to,
            issued_at=issued_at,
            nonce=secrets.token_bytes(NONCE_SIZE),
            start_time=start_time,
            end_time=end_time,
            **details,
        )

    def issue(self, *args, **kwargs) -> IssuedCredential:
        """Create a visit, record its initial lifecycle state and seal its token."""
        record = self.build_record(*args, **kwargs)
        token = cipher.seal(self.key, codec.encode(record))
        state = self.machine.create(record)
        return IssuedCredential(record=record, state=state, token=token)
