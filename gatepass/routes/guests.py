from datetime import date, datetime, time, timezone
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gatepass.database.connection import get_db
from gatepass.errors import InvalidTransition, InvalidVisit, RecordNotFound, VersionConflict
from gatepass.models.lifecycle import LifecycleState, VisitState
from gatepass.models.visit import ApprovalType, GuestType
from gatepass.services.guest_history_service import get_apartment_guests
from gatepass.services.scan_log_service import get_guest_scans
from gatepass.services.store import row_to_state

router = APIRouter(prefix="/guests", tags=["Guests"])


class GuestCreate(BaseModel):
    apartment_id: str
    guest_type: GuestType
    approval_type: ApprovalType
    valid_from: date
    valid_to: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    community_id: str = ""
    guest_name: str = ""
    guest_phone: str = ""
    total_members: int = Field(1, ge=1, le=0xFFFF)
    vehicle_number: str = ""
    purpose: str = ""


def _state_out(state: LifecycleState) -> dict:
    return {
        "guest_id": state.guest_id,
        "apartment_id": state.apartment_id,
        "status": state.state.value,
        "valid_from": state.window_start.isoformat(),
        "valid_to": state.window_end.isoformat(),
        "version": state.version,
        "decided_by": state.decided_by,
        "decision_note": state.decision_note,
        "revoked_by": state.revoked_by,
    }


def _transition(action, guest_id: str, *args) -> dict:
    try:
        return _state_out(action(guest_id, *args))
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Guest not found")
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except VersionConflict:
        raise HTTPException(status_code=409, detail="Guest was updated concurrently, fetch it and retry")


@router.post("", status_code=201)
def create_guest(data: GuestCreate, request: Request):
    issuance = request.app.state.issuance
    try:
        issued = issuance.issue(
            data.apartment_id,
            data.guest_type,
            data.approval_type,
            data.valid_from,
            datetime.now(timezone.utc),
            valid_to=data.valid_to,
            start_time=data.start_time,
            end_time=data.end_time,
            community_id=data.community_id,
            guest_name=data.guest_name,
            guest_phone=data.guest_phone,
            total_members=data.total_members,
            vehicle_number=data.vehicle_number,
            purpose=data.purpose,
        )
    except InvalidVisit as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = _state_out(issued.state)
    result["token"] = issued.token
    return result


@router.get("")
def list_guests(apartment_id: str, status: str = "all", db: Session = Depends(get_db)):
    if status == "all":
        wanted = None
    else:
        try:
            wanted = VisitState(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status filter '{status}'")

    result = []
    for row in get_apartment_guests(db, apartment_id, wanted):
        item = _state_out(row_to_state(row))
        item["created_at"] = row.created_at.strftime("%Y-%m-%d %H:%M:%S")
        result.append(item)
    return {"count": len(result), "guests": result}


@router.get("/{guest_id}")
def get_guest(guest_id: str, request: Request):
    state = request.app.state.machine.get(guest_id)
    if not state:
        raise HTTPException(status_code=404, detail="Guest not found")
    return _state_out(state)


@router.post("/{guest_id}/approve")
def approve_guest(guest_id: str, request: Request, x_actor_id: str = Header(...)):
    return _transition(request.app.state.machine.approve, guest_id, x_actor_id)


@router.post("/{guest_id}/deny")
def deny_guest(
    guest_id: str,
    request: Request,
    reason: Optional[str] = Body(None, embed=True),
    x_actor_id: str = Header(...),
):
    return _transition(request.app.state.machine.deny, guest_id, x_actor_id, reason)


@router.post("/{guest_id}/revoke")
def revoke_guest(guest_id: str, request: Request, x_actor_id: str = Header(...)):
    return _transition(request.app.state.machine.revoke, guest_id, x_actor_id)


@router.get("/{guest_id}/scans")
def guest_scans(guest_id: str, db: Session = Depends(get_db)):
    logs = get_guest_scans(db, guest_id)
    result = []
    for log in logs:
        result.append({
            "id": log.id,
            "scanned_by": log.scanned_by,
            "admitted": log.admitted,
            "reason": log.reason,
            "community_id": log.community_id,
            "total_members_present": log.total_members_present,
            "vehicle_number": log.vehicle_number,
            "timestamp": log.scanned_at.strftime("%Y-%m-%d %H:%M:%S"),
        })
    return {"count": len(result), "scans": result}
