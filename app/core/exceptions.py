# app/core/exceptions.py
"""
Domain errors raised by the services layer.

Endpoints never build HTTP responses for these by hand; app.main registers
one handler per class.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """Duplicate record (second scoring job, second score insert race)."""

    status_code = 409


class InvalidStateError(DomainError):
    """Operation not allowed for the record's current lifecycle state."""

    status_code = 409


class ValidationError(DomainError):
    status_code = 400
