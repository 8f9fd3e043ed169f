from dataclasses import replace
from datetime import date, datetime
from typing import Union

from gatepass.errors import CipherError, DecodeError
from gatepass.models.lifecycle import AdmissionDecision, Reason
from gatepass.services import cipher, codec
from gatepass.services.lifecycle import LifecycleMachine
from gatepass.utils.logger import logger


class VerificationService:
    """Turns a scanned token into an admit/deny decision.

    Holds no state of its own; everything mutable lives behind the lifecycle
    machine's store. Callers get coarse reasons only, never the underlying
    cryptographic or parsing error.
    """

    def __init__(self, machine: LifecycleMachine):
        self.machine = machine

    def verify(self, key: bytes, token: str, now: Union[date, datetime]) -> AdmissionDecision:
        try:
            data = cipher.open_token(key, token)
        except CipherError:
            logger.info("Scan rejected: token did not open")
            return AdmissionDecision.deny(Reason.invalid_token)

        try:
            record = codec.decode(data)
        except DecodeError as e:
            logger.info("Scan rejected: %s", e)
            return AdmissionDecision.deny(Reason.malformed_record)

        stored = self.machine.get(record.guest_id)
        if stored is None:
            logger.info("Scan rejected: unknown guest %s", record.guest_id)
            return replace(AdmissionDecision.deny(Reason.unknown_guest), record=record)

        # The token must come from the issuance the stored state belongs to
        if stored.nonce != record.nonce or stored.apartment_id != record.apartment_id:
            logger.info("Scan rejected: guest %s token does not match issued credential", record.guest_id)
            return AdmissionDecision.deny(Reason.invalid_token)

        decision = self.machine.evaluate(record.guest_id, now)
        if not decision.admitted:
            logger.info("Guest %s denied: %s", record.guest_id, decision.reason.value)
        return replace(decision, record=record)
