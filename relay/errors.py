"""Exceptions raised by the relay core."""


class RelayError(Exception):
    """Base class for relay errors."""


class RegistrationError(RelayError):
    """A peer could not be registered.

    Carries a short machine-readable ``code`` alongside the human message so
    the dispatcher can report it to the peer as-is.
    """

    code = "registration_failed"
    default_message = "Registration failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_payload(self) -> dict:
        return {"error": self.message, "code": self.code}


class InvalidPairingCode(RegistrationError):
    code = "invalid_code"
    default_message = "Invalid pairing code"


class ControllerGone(RegistrationError):
    code = "controller_gone"
    default_message = "Controller not found"


class RoleConflict(RegistrationError):
    code = "role_conflict"
    default_message = "Connection is already registered"


class DuplicateCodeCollision(RelayError):
    """A generated pairing code is already live. Never leaves the pairing store."""


class ProtocolError(RelayError):
    """An inbound frame could not be decoded."""

    code = "protocol_error"
