from typing import Optional


class FinanceError(Exception):
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class Unauthenticated(FinanceError):
    status_code = 401
    public_message = "Unauthorized"


class Forbidden(FinanceError):
    status_code = 403
    public_message = "Forbidden"


class ValidationError(FinanceError, ValueError):
    status_code = 400
    public_message = "Invalid request"

    def __init__(self, field: Optional[str], message: str) -> None:
        super().__init__(message)
        self.field = field


class NotFound(FinanceError, ValueError):
    status_code = 404
    public_message = "Not found"


class Conflict(FinanceError):
    status_code = 409
    public_message = "Resource was modified by another request"


class PersistenceFailure(FinanceError):
    """A store operation failed; the cause is logged, never returned."""

    status_code = 500
