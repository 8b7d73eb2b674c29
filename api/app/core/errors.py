"""
Business-rule failures raised by the services.

Each subclass carries the HTTP status the API layer answers with; the services
themselves never touch HTTP. Anything that is not a ``DomainError`` is an
unexpected failure and is reported generically by the app-level handler.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Conflict(DomainError):
    """Uniqueness clash: apartment number, invoice period, fee name, email."""

    status_code = 409


class NotFound(DomainError):
    status_code = 404


class IntegrityFault(NotFound):
    """Stored data breaks an invariant (e.g. a household without a host)."""


class InvariantViolation(DomainError):
    """The operation would break a business rule (debt, settled invoice, overpayment)."""

    status_code = 400


class Unauthenticated(DomainError):
    status_code = 401


class Forbidden(DomainError):
    status_code = 403
