import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional

from gatepass.errors import InvalidVisit

NONCE_SIZE = 16
END_OF_DAY = time(23, 59, 59, 999999)


class GuestType(str, enum.Enum):
    one_time = "one_time"
    frequent = "frequent"


class ApprovalType(str, enum.Enum):
    preapproved = "preapproved"
    private = "private"
    needs_approval = "needs_approval"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class VisitRecord:
    """The data a guest credential stands for.

    Dates are community-local calendar days and both bounds are inclusive.
    ``issued_at`` is always kept as an aware UTC datetime so that two equal
    records encode to the same bytes.
    """

    guest_id: str
    apartment_id: str
    guest_type: GuestType
    approval_type: ApprovalType
    valid_from: date
    valid_to: date
    issued_at: datetime
    nonce: bytes
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    community_id: str = ""
    guest_name: str = ""
    guest_phone: str = ""
    total_members: int = 1
    vehicle_number: str = ""
    purpose: str = ""

    def __post_init__(self):
        try:
            object.__setattr__(self, "guest_type", GuestType(self.guest_type))
            object.__setattr__(self, "approval_type", ApprovalType(self.approval_type))
        except ValueError as e:
            raise InvalidVisit(str(e)) from e
        object.__setattr__(self, "issued_at", _as_utc(self.issued_at))

        if not self.guest_id:
            raise InvalidVisit("guest_id is required")
        if not self.apartment_id:
            raise InvalidVisit("apartment_id is required")
        if isinstance(self.valid_from, datetime) or isinstance(self.valid_to, datetime):
            raise InvalidVisit("valid_from and valid_to are calendar dates")
        if self.valid_to < self.valid_from:
            raise InvalidVisit("valid_to is before valid_from")
        if len(self.nonce) != NONCE_SIZE:
            raise InvalidVisit(f"nonce must be {NONCE_SIZE} bytes")
        if not 1 <= self.total_members <= 0xFFFF:
            raise InvalidVisit("total_members out of range")
        for t in (self.start_time, self.end_time):
            if t is not None and t.tzinfo is not None:
                raise InvalidVisit("time-of-day bounds are local, naive times")
        if self.window_end < self.window_start:
            raise InvalidVisit("visit window ends before it starts")

    @property
    def window_start(self) -> datetime:
        return datetime.combine(self.valid_from, self.start_time or time.min)

    @property
    def window_end(self) -> datetime:
        return datetime.combine(self.valid_to, self.end_time or END_OF_DAY)
