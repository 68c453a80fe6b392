"""Typed errors raised by the stock ledger services.

Every error carries a machine-readable ``code`` and an HTTP status so the API
layer can render it without inspecting messages::

    LedgerError
    +-- InvalidInputError   validation_error  400
    +-- NotFoundError       not_found         404
    +-- InvalidStateError   invalid_state     409
    +-- ConflictError       conflict          409  (lock wait timed out, retry)
    +-- InternalError       internal          500
"""

from fastapi import status


class LedgerError(Exception):
    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInputError(LedgerError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateError(LedgerError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class ConflictError(LedgerError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InternalError(LedgerError):
    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
