# Overview: Error taxonomy shared by the slip services and the HTTP layer.

"""
Payment slip errors.

Every error carries the HTTP status the routes answer with. Services raise
these; routes translate them into JSON bodies.
"""


class SlipError(Exception):
    """Base class for payment slip operation errors."""

    status_code = 500
    public_message = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.public_message or self.message}


class ValidationError(SlipError):
    """400-level input problem (missing file, bad cart id, bad amount)."""

    status_code = 400


class NotFoundError(SlipError):
    """Referenced slip, cart or order does not exist."""

    status_code = 404


class InvalidTransitionError(SlipError):
    """Requested slip status is not one of PENDING / APPROVED / REJECTED."""

    status_code = 400


class StorageError(SlipError):
    """Slip file could not be written or deleted."""

    public_message = "Slip file storage failed"


class DatabaseError(SlipError):
    """Query or transaction failure after rollback (and, for uploads, file cleanup)."""

    public_message = "Database operation failed, please retry"
