"""Approval and expiry state machine for guest visits.

Transitions for one guest are serialized by a per-guest lock inside this
process and by the store's version check across processes. Different guests
never wait on each other.
"""
import dataclasses
import threading
import weakref
from datetime import date, datetime
from typing import Optional, Union

from gatepass.errors import InvalidTransition, RecordNotFound, VersionConflict
from gatepass.models.lifecycle import (
    AdmissionDecision,
    Event,
    LifecycleState,
    Reason,
    VisitState,
)
from gatepass.models.visit import ApprovalType, VisitRecord
from gatepass.utils.logger import logger

TRANSITIONS = {
    (VisitState.pending_approval, Event.approve): VisitState.approved,
    (VisitState.pending_approval, Event.deny): VisitState.denied,
    (VisitState.pending_approval, Event.revoke): VisitState.revoked,
    (VisitState.approved, Event.activate): VisitState.active,
    (VisitState.approved, Event.expire): VisitState.expired,
    (VisitState.approved, Event.revoke): VisitState.revoked,
    (VisitState.active, Event.activate): VisitState.active,
    (VisitState.active, Event.expire): VisitState.expired,
    (VisitState.active, Event.revoke): VisitState.revoked,
}

# Deny reasons for states that can never admit, whatever the clock says
CLOSED_STATE_REASONS = {
    VisitState.pending_approval: Reason.pending_approval,
    VisitState.denied: Reason.denied,
    VisitState.expired: Reason.expired,
    VisitState.revoked: Reason.revoked,
}


def transition(state: VisitState, event: Event) -> VisitState:
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event) from None


def initial_state(approval_type: ApprovalType) -> VisitState:
    if ApprovalType(approval_type) is ApprovalType.needs_approval:
        return VisitState.pending_approval
    return VisitState.approved


def _as_datetime(now: Union[date, datetime]) -> datetime:
    if isinstance(now, datetime):
        # Windows are community wall-clock times
        return now.replace(tzinfo=None)
    return datetime(now.year, now.month, now.day)


class LifecycleMachine:
    max_retries = 3

    def __init__(self, store):
        self.store = store
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, guest_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(guest_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[guest_id] = lock
            return lock

    def get(self, guest_id: str) -> Optional[LifecycleState]:
        return self.store.get(guest_id)

    def create(self, record: VisitRecord, approval_type: Optional[ApprovalType] = None) -> LifecycleState:
        state = LifecycleState(
            guest_id=record.guest_id,
            apartment_id=record.apartment_id,
            nonce=record.nonce,
            state=initial_state(approval_type or record.approval_type),
            window_start=record.window_start,
            window_end=record.window_end,
        )
        with self._lock_for(record.guest_id):
            stored = self.store.put(state, 0)
        logger.info("Guest %s created in state %s", stored.guest_id, stored.state.value)
        return stored

    def approve(self, guest_id: str, approver: str) -> LifecycleState:
        return self._apply(guest_id, Event.approve, decided_by=approver)

    def deny(self, guest_id: str, approver: str, reason: str = None) -> LifecycleState:
        return self._apply(guest_id, Event.deny, decided_by=approver, decision_note=reason)

    def revoke(self, guest_id: str, by_whom: str) -> LifecycleState:
        return self._apply(guest_id, Event.revoke, revoked_by=by_whom)

    def _apply(self, guest_id: str, event: Event, **changes) -> LifecycleState:
        with self._lock_for(guest_id):
            current = self.store.get(guest_id)
            if current is None:
                raise RecordNotFound(guest_id)
            new_state = transition(current.state, event)
            stored = self.store.put(
                dataclasses.replace(current, state=new_state, **changes), current.version
            )
        logger.info("Guest %s: %s -> %s (%s)", guest_id, current.state.value, new_state.value, event.value)
        return stored

    def evaluate(self, guest_id: str, now: Union[date, datetime]) -> AdmissionDecision:
        now = _as_datetime(now)
        for attempt in range(1, self.max_retries + 1):
            with self._lock_for(guest_id):
                current = self.store.get(guest_id)
                if current is None:
                    return AdmissionDecision.deny(Reason.unknown_guest)
                try:
                    return self._evaluate(current, now)
                except VersionConflict:
                    if attempt == self.max_retries:
                        raise
                    logger.warning("Guest %s changed during evaluation, retrying (%d)", guest_id, attempt)

    def _evaluate(self, current: LifecycleState, now: datetime) -> AdmissionDecision:
        reason = CLOSED_STATE_REASONS.get(current.state)
        if reason is not None:
            return AdmissionDecision.deny(reason, current.state)

        if now < current.window_start:
            return AdmissionDecision.deny(Reason.not_yet_valid, current.state)

        if now > current.window_end:
            expired = transition(current.state, Event.expire)
            self.store.put(dataclasses.replace(current, state=expired), current.version)
            logger.info("Guest %s expired at %s", current.guest_id, now.isoformat())
            return AdmissionDecision.deny(Reason.expired, expired)

        active = transition(current.state, Event.activate)
        if active is not current.state:
            self.store.put(dataclasses.replace(current, state=active), current.version)
            logger.info("Guest %s is now active", current.guest_id)
        return AdmissionDecision.admit(active)
