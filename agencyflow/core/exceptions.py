"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from agencyflow.core.exceptions import NotFoundError, ForbiddenError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ForbiddenError("Controllers can only delete projects assigned to them")
    raise ValidationError("File data is required for upload")

Storage failures are not wrapped: ``sqlalchemy.exc.SQLAlchemyError`` propagates
from mutation paths after the service has logged it and rolled back.
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the caller's scope.

    Used for BOTH genuinely missing records AND scoped lookups that match
    nothing (a controller reading another controller's project). A 403 would
    confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Notification").
        resource_id: The PK that was looked up. Included in the message.
        owner_id: Optional owner/assignee the lookup was scoped to. Logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        owner_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.owner_id = owner_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ForbiddenError(Exception):
    """Raised when the requester's role or ownership fails a policy check.

    The message names the exact rule that was violated; the HTTP layer shows
    it to the user verbatim.

    Maps to HTTP 403.
    """

    def __init__(self, message: str, *, requester_id: int | None = None, role: str | None = None) -> None:
        self.requester_id = requester_id
        self.role = role
        super().__init__(message)


class ValidationError(Exception):
    """Raised when input is missing or violates a business rule.

    Examples: missing file metadata, a non-PDF requirement upload, a missing
    recipient id, an illegal status transition.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)

