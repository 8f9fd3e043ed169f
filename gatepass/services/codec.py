"""Canonical binary form of a visit record.

Layout (big-endian)::

    u8   format version
    str  guest_id, str apartment_id          (u16 length + UTF-8)
    u8   guest type, u8 approval type
    u32  valid_from ordinal, u32 valid_to ordinal
    opt  start_time, opt end_time             (u8 flag + u64 microseconds of day)
    i64  issued_at, microseconds since the Unix epoch (UTC)
    16B  nonce
    str  community_id, str guest_name, str guest_phone
    u16  total_members
    str  vehicle_number, str purpose

A record has exactly one encoding. New fields go behind a new version byte so
that scanners running an older build reject them instead of misreading them.
"""
import struct
from datetime import date, datetime, time, timedelta, timezone

from gatepass.errors import InvalidVisit, MalformedRecord, UnknownVersion
from gatepass.models.visit import NONCE_SIZE, ApprovalType, GuestType, VisitRecord

FORMAT_VERSION = 1

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MICROSECOND = timedelta(microseconds=1)
MICROSECONDS_PER_DAY = 86_400_000_000

GUEST_TYPE_CODES = {GuestType.one_time: 1, GuestType.frequent: 2}
APPROVAL_TYPE_CODES = {
    ApprovalType.preapproved: 1,
    ApprovalType.private: 2,
    ApprovalType.needs_approval: 3,
}
GUEST_TYPES = {code: value for value, code in GUEST_TYPE_CODES.items()}
APPROVAL_TYPES = {code: value for value, code in APPROVAL_TYPE_CODES.items()}

_U8 = struct.Struct(">B")
_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")
_I64 = struct.Struct(">q")


def _pack_str(value: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > 0xFFFF:
        raise InvalidVisit("text field longer than 65535 bytes")
    return _U16.pack(len(raw)) + raw


def _pack_time(value) -> bytes:
    if value is None:
        return _U8.pack(0)
    micros = ((value.hour * 60 + value.minute) * 60 + value.second) * 1_000_000 + value.microsecond
    return _U8.pack(1) + _U64.pack(micros)


def encode(record: VisitRecord) -> bytes:
    parts = [
        _U8.pack(FORMAT_VERSION),
        _pack_str(record.guest_id),
        _pack_str(record.apartment_id),
        _U8.pack(GUEST_TYPE_CODES[record.guest_type]),
        _U8.pack(APPROVAL_TYPE_CODES[record.approval_type]),
        _U32.pack(record.valid_from.toordinal()),
        _U32.pack(record.valid_to.toordinal()),
        _pack_time(record.start_time),
        _pack_time(record.end_time),
        _I64.pack((record.issued_at - EPOCH) // MICROSECOND),
        record.nonce,
        _pack_str(record.community_id),
        _pack_str(record.guest_name),
        _pack_str(record.guest_phone),
        _U16.pack(record.total_members),
        _pack_str(record.vehicle_number),
        _pack_str(record.purpose),
    ]
    return b"".join(parts)


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def take(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.data):
            raise MalformedRecord("record is truncated")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def unpack(self, fmt: struct.Struct) -> int:
        return fmt.unpack(self.take(fmt.size))[0]

    def text(self) -> str:
        raw = self.take(self.unpack(_U16))
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRecord("text field is not valid UTF-8") from e

    def optional_time(self):
        flag = self.unpack(_U8)
        if flag == 0:
            return None
        if flag != 1:
            raise MalformedRecord("bad time flag")
        micros = self.unpack(_U64)
        if micros >= MICROSECONDS_PER_DAY:
            raise MalformedRecord("time of day out of range")
        seconds, micro = divmod(micros, 1_000_000)
        minutes, second = divmod(seconds, 60)
        hour, minute = divmod(minutes, 60)
        return time(hour, minute, second, micro)

    def ordinal_date(self) -> date:
        try:
            return date.fromordinal(self.unpack(_U32))
        except ValueError as e:
            raise MalformedRecord("date out of range") from e


def decode(data: bytes) -> VisitRecord:
    if not data:
        raise MalformedRecord("empty record")
    if data[0] != FORMAT_VERSION:
        raise UnknownVersion(f"unsupported record version {data[0]}")

    reader = _Reader(data)
    reader.take(1)
    guest_id = reader.text()
    apartment_id = reader.text()
    guest_type = GUEST_TYPES.get(reader.unpack(_U8))
    approval_type = APPROVAL_TYPES.get(reader.unpack(_U8))
    if guest_type is None or approval_type is None:
        raise MalformedRecord("unknown guest or approval type")
    valid_from = reader.ordinal_date()
    valid_to = reader.ordinal_date()
    start_time = reader.optional_time()
    end_time = reader.optional_time()
    try:
        issued_at = EPOCH + reader.unpack(_I64) * MICROSECOND
    except OverflowError as e:
        raise MalformedRecord("issued_at out of range") from e
    nonce = reader.take(NONCE_SIZE)
    community_id = reader.text()
    guest_name = reader.text()
    guest_phone = reader.text()
    total_members = reader.unpack(_U16)
    vehicle_number = reader.text()
    purpose = reader.text()

    if reader.pos != len(data):
        raise MalformedRecord("trailing bytes after record")

    try:
        return VisitRecord(
            guest_id=guest_id,
            apartment_id=apartment_id,
            guest_type=guest_type,
            approval_type=approval_type,
            valid_from=valid_from,
            valid_to=valid_to,
            issued_at=issued_at,
            nonce=nonce,
            start_time=start_time,
            end_time=end_time,
            community_id=community_id,
            guest_name=guest_name,
            guest_phone=guest_phone,
            total_members=total_members,
            vehicle_number=vehicle_number,
            purpose=purpose,
        )
    except InvalidVisit as e:
        raise MalformedRecord(str(e)) from e
