"""Failures raised by the ledger core."""


class LedgerError(Exception):
    """Base class for all ledger failures."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationFailure(LedgerError):
    """Missing or invalid input; nothing was written."""

    status_code = 422


class ConflictFailure(ValidationFailure):
    """The requested username is already taken."""

    status_code = 409


class AuthFailure(LedgerError):
    """Credentials did not match a single account."""

    status_code = 401


class AuthorizationFailure(AuthFailure):
    """The acting user may not operate on the target account."""

    status_code = 403


class NotFound(LedgerError):
    """A referenced user does not exist."""

    status_code = 404


class StoreFailure(LedgerError):
    """The database could not complete a read or write."""

    status_code = 500
