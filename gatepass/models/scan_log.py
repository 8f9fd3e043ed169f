from sqlalchemy import Boolean, Column, DateTime, Integer, String
from datetime import datetime
from gatepass.database.connection import Base


class ScanLog(Base):
    __tablename__ = "scan_logs"

    id = Column(Integer, primary_key=True, index=True)
    guest_id = Column(String(64), nullable=True, index=True)  # null when the token never decoded
    apartment_id = Column(String(64), nullable=True)
    community_id = Column(String(64), nullable=True)
    scanned_by = Column(String(128), nullable=False)

    admitted = Column(Boolean, nullable=False, default=False)
    reason = Column(String(32), nullable=False)  # admitted, expired, revoked, invalid_token, ...

    # What the guard saw on the pass at the gate
    total_members_present = Column(Integer, nullable=False, default=1)
    vehicle_number = Column(String(32), nullable=True)

    scanned_at = Column(DateTime, default=datetime.utcnow)
