from sqlalchemy import Column, DateTime, Integer, LargeBinary, String, Text
from datetime import datetime
from gatepass.database.connection import Base


class GuestLifecycle(Base):
    __tablename__ = "guest_lifecycle"

    guest_id = Column(String(64), primary_key=True, index=True)
    apartment_id = Column(String(64), nullable=False, index=True)
    nonce = Column(LargeBinary(16), nullable=False)  # binds the row to one issued credential

    state = Column(String(32), nullable=False)  # pending_approval, approved, denied, active, expired, revoked
    window_start = Column(DateTime, nullable=False)
    window_end = Column(DateTime, nullable=False)

    # Optimistic concurrency: every write is "UPDATE ... WHERE version = expected"
    version = Column(Integer, nullable=False, default=1)

    decided_by = Column(String(128), nullable=True)
    decision_note = Column(Text, nullable=True)
    revoked_by = Column(String(128), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
