class GatepassError(Exception):
    """Base class for every error raised by the credential core."""


# Codec
class DecodeError(GatepassError):
    pass


class MalformedRecord(DecodeError):
    pass


class UnknownVersion(DecodeError):
    pass


# Cipher
class CipherError(GatepassError):
    pass


class InvalidToken(CipherError):
    pass


# State machine
class TransitionError(GatepassError):
    pass


class InvalidTransition(TransitionError):
    def __init__(self, state, event):
        self.state = state
        self.event = event
        super().__init__(f"Cannot apply '{event.value}' to a visit in state '{state.value}'")


# Lifecycle store
class StoreError(GatepassError):
    pass


class RecordNotFound(StoreError):
    def __init__(self, guest_id: str):
        self.guest_id = guest_id
        super().__init__(f"No lifecycle record for guest {guest_id}")


class VersionConflict(StoreError):
    def __init__(self, guest_id: str, expected_version: int):
        self.guest_id = guest_id
        self.expected_version = expected_version
        super().__init__(f"Guest {guest_id} changed since version {expected_version}")


class InvalidVisit(GatepassError, ValueError):
    """A visit record was built from inconsistent fields."""
