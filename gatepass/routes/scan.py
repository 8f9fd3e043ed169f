import asyncio
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gatepass.database.connection import get_db
from gatepass.errors import StoreError
from gatepass.models.lifecycle import AdmissionDecision, Reason
from gatepass.services.scan_log_service import log_scan
from gatepass.utils.logger import logger

router = APIRouter(prefix="/scan", tags=["Gate Scan"])


class ScanRequest(BaseModel):
    token: str


def _guest_info(decision: AdmissionDecision):
    record = decision.record
    if record is None:
        return None
    return {
        "guest_id": record.guest_id,
        "apartment_id": record.apartment_id,
        "community_id": record.community_id,
        "guest_name": record.guest_name,
        "guest_phone": record.guest_phone,
        "guest_type": record.guest_type.value,
        "approval_type": record.approval_type.value,
        "total_members": record.total_members,
        "vehicle_number": record.vehicle_number,
        "purpose": record.purpose,
        "valid_from": record.valid_from.isoformat(),
        "valid_to": record.valid_to.isoformat(),
    }


async def _log(db: Session, decision: AdmissionDecision, scanned_by: str, guest_id: str = None):
    # The gate still gets its answer when the audit write fails
    try:
        await run_in_threadpool(log_scan, db, decision, scanned_by, None, guest_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to log scan by %s", scanned_by)


@router.post("")
async def scan_qr(
    data: ScanRequest,
    request: Request,
    db: Session = Depends(get_db),
    x_actor_id: str = Header(...),
):
    state = request.app.state
    now = datetime.now()
    try:
        decision = await asyncio.wait_for(
            run_in_threadpool(state.verifier.verify, state.settings.qr_key, data.token, now),
            timeout=state.settings.scan_timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("Scan by %s timed out after %ss", x_actor_id, state.settings.scan_timeout)
        decision = AdmissionDecision.deny(Reason.timeout)
    except StoreError as e:
        logger.warning("Scan by %s hit a lifecycle conflict: %s", x_actor_id, e)
        await _log(db, AdmissionDecision.deny(Reason.conflict), x_actor_id, getattr(e, "guest_id", None))
        raise HTTPException(status_code=409, detail="Guest was updated during the scan, retry the scan")

    await _log(db, decision, x_actor_id)

    return {
        "access_granted": decision.admitted,
        "reason": decision.reason.value,
        "message": decision.message,
        "status": decision.state.value if decision.state else None,
        "guest_info": _guest_info(decision),
    }
