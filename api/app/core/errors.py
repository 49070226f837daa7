"""
Domain errors raised by the services layer.

Each error carries the HTTP status and the client-facing detail it maps to;
`app.main` registers a single handler for `PortalError`.  Access errors use a
generic detail and `NotFound` is uniform so that responses never reveal
whether an out-of-scope id exists.
"""
from typing import Any


class PortalError(Exception):
    status_code: int = 500
    detail: str = "Internal error"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)

    def payload(self) -> dict[str, Any]:
        return {"detail": self.detail}


class Unauthenticated(PortalError):
    status_code = 401
    detail = "Unauthorized"


class Forbidden(PortalError):
    status_code = 403
    detail = "Unauthorized"


class NotFound(PortalError):
    status_code = 404
    detail = "Not found"


class ValidationFailed(PortalError):
    status_code = 422
    detail = "Validation failed"

    def __init__(self, errors: dict[str, list[str]]):
        super().__init__()
        self.errors = errors

    def payload(self) -> dict[str, Any]:
        return {"detail": self.detail, "errors": self.errors}


class InvalidState(PortalError):
    status_code = 400
    detail = "Operation not allowed in current status"


class InvalidTransition(PortalError):
    status_code = 400
    detail = "Package already submitted"


class PreconditionFailed(PortalError):
    status_code = 400
    detail = "Precondition failed"


class Conflict(PortalError):
    """Raised when a unique resource already exists; carries the existing row."""

    status_code = 409
    detail = "Already exists"

    def __init__(self, existing: Any = None, detail: str | None = None):
        super().__init__(detail)
        self.existing = existing


class EmptyPackage(PortalError):
    status_code = 400
    detail = "No statements to download"


class BundlingFailed(PortalError):
    status_code = 502
    detail = "Could not fetch any statement files"
