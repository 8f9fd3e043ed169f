from typing import Optional

from sqlalchemy.orm import Session

from gatepass.models.guest_lifecycle import GuestLifecycle
from gatepass.models.lifecycle import VisitState


def get_apartment_guests(db: Session, apartment_id: str, status: Optional[VisitState] = None):
    """Guests issued for an apartment, newest first. Retired passes are included."""
    query = db.query(GuestLifecycle).filter(GuestLifecycle.apartment_id == apartment_id)
    if status is not None:
        query = query.filter(GuestLifecycle.state == status.value)
    return query.order_by(GuestLifecycle.created_at.desc(), GuestLifecycle.guest_id).all()
