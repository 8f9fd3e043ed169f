from sqlalchemy.orm import Session
from gatepass.models.scan_log import ScanLog
from gatepass.models.lifecycle import AdmissionDecision
from datetime import datetime


def log_scan(db: Session, decision: AdmissionDecision, scanned_by: str, scanned_at: datetime = None, guest_id: str = None):
    """Add a scan log entry for one verification at the gate.

    ``guest_id`` is only used when the decision carries no decoded record.
    """
    record = decision.record
    entry = ScanLog(
        guest_id=record.guest_id if record else guest_id,
        apartment_id=record.apartment_id if record else None,
        community_id=(record.community_id or None) if record else None,
        scanned_by=scanned_by,
        admitted=decision.admitted,
        reason=decision.reason.value,
        total_members_present=record.total_members if record else 1,
        vehicle_number=(record.vehicle_number or None) if record else None,
        scanned_at=scanned_at or datetime.utcnow(),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def get_guest_scans(db: Session, guest_id: str):
    return (
        db.query(ScanLog)
        .filter(ScanLog.guest_id == guest_id)
        .order_by(ScanLog.scanned_at.desc(), ScanLog.id.desc())
        .all()
    )
