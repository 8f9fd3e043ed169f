import os
from datetime import date, datetime, timezone

import pytest

from gatepass.models.visit import ApprovalType, GuestType, VisitRecord
from gatepass.services.lifecycle import LifecycleMachine
from gatepass.services.store import InMemoryLifecycleStore
from gatepass.services.verification import VerificationService

ISSUED_AT = datetime(2024, 1, 5, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def key():
    return os.urandom(32)


@pytest.fixture
def store():
    return InMemoryLifecycleStore()


@pytest.fixture
def machine(store):
    return LifecycleMachine(store)


@pytest.fixture
def verifier(machine):
    return VerificationService(machine)


@pytest.fixture
def make_record():
    def _make(**overrides):
        fields = dict(
            guest_id="guest-1",
            apartment_id="A1",
            guest_type=GuestType.frequent,
            approval_type=ApprovalType.preapproved,
            valid_from=date(2024, 1, 10),
            valid_to=date(2024, 1, 12),
            issued_at=ISSUED_AT,
            nonce=bytes(range(16)),
        )
        fields.update(overrides)
        return VisitRecord(**fields)
    return _make

