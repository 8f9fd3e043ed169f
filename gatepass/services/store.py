"""Lifecycle store: where per-guest state lives between scans.

Both implementations honour the same optimistic-concurrency contract:
``put(state, expected_version)`` succeeds only when the stored version still
equals ``expected_version`` (``0`` meaning "must not exist yet") and raises
``VersionConflict`` otherwise. The written state carries
``expected_version + 1``.
"""
import dataclasses
import threading
from typing import Dict, Optional, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from gatepass.errors import VersionConflict
from gatepass.models.guest_lifecycle import GuestLifecycle
from gatepass.models.lifecycle import LifecycleState, VisitState


class LifecycleStore(Protocol):
    def get(self, guest_id: str) -> Optional[LifecycleState]:
        ...

    def put(self, state: LifecycleState, expected_version: int) -> LifecycleState:
        ...


class InMemoryLifecycleStore:
    def __init__(self):
        self._rows: Dict[str, LifecycleState] = {}
        self._lock = threading.Lock()

    def get(self, guest_id: str) -> Optional[LifecycleState]:
        with self._lock:
            return self._rows.get(guest_id)

    def put(self, state: LifecycleState, expected_version: int) -> LifecycleState:
        with self._lock:
            current = self._rows.get(state.guest_id)
            current_version = current.version if current else 0
            if current_version != expected_version:
                raise VersionConflict(state.guest_id, expected_version)
            stored = dataclasses.replace(state, version=expected_version + 1)
            self._rows[state.guest_id] = stored
            return stored


def row_to_state(row: GuestLifecycle) -> LifecycleState:
    return LifecycleState(
        guest_id=row.guest_id,
        apartment_id=row.apartment_id,
        nonce=bytes(row.nonce),
        state=VisitState(row.state),
        window_start=row.window_start,
        window_end=row.window_end,
        version=row.version,
        decided_by=row.decided_by,
        decision_note=row.decision_note,
        revoked_by=row.revoked_by,
    )


class SqlLifecycleStore:
    """Lifecycle store on any SQLAlchemy database."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get(self, guest_id: str) -> Optional[LifecycleState]:
        db = self.session_factory()
        try:
            row = db.query(GuestLifecycle).filter(GuestLifecycle.guest_id == guest_id).first()
            return row_to_state(row) if row else None
        finally:
            db.close()

    def put(self, state: LifecycleState, expected_version: int) -> LifecycleState:
        if expected_version == 0:
            return self._insert(state)

        db = self.session_factory()
        try:
            result = db.execute(
                update(GuestLifecycle)
                .where(
                    GuestLifecycle.guest_id == state.guest_id,
                    GuestLifecycle.version == expected_version,
                )
                .values(
                    state=state.state.value,
                    version=expected_version + 1,
                    decided_by=state.decided_by,
                    decision_note=state.decision_note,
                    revoked_by=state.revoked_by,
                )
            )
            if result.rowcount != 1:
                db.rollback()
                raise VersionConflict(state.guest_id, expected_version)
            db.commit()
        finally:
            db.close()
        return dataclasses.replace(state, version=expected_version + 1)

    def _insert(self, state: LifecycleState) -> LifecycleState:
        db = self.session_factory()
        try:
            db.add(GuestLifecycle(
                guest_id=state.guest_id,
                apartment_id=state.apartment_id,
                nonce=state.nonce,
                state=state.state.value,
                window_start=state.window_start,
                window_end=state.window_end,
                version=1,
                decided_by=state.decided_by,
                decision_note=state.decision_note,
                revoked_by=state.revoked_by,
            ))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise VersionConflict(state.guest_id, 0) from None
        finally:
            db.close()
        return dataclasses.replace(state, version=1)
