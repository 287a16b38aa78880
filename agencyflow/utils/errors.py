"""JSON error bodies for the AgencyFlow API.

Every error response has the shape ``{"error": <message>, "code": <E.*>}``
plus an optional ``details`` object. Policy denials reach the client with
their rule text unchanged, e.g. ``"Clients cannot send notifications"``.

Usage
-----
    from agencyflow.utils.errors import E, api_error, register_service_error_handlers

    register_service_error_handlers(project_bp)
    return api_error(E.VALIDATION_REQUIRED, "title is required")
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from agencyflow.core.exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class E:
    """Error codes, each bound to one HTTP status."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # 400: malformed request body
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # 422: well-formed but rejected
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_STATUS = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, details: dict | None = None):
    """Return ``(response, status)`` for a Flask view."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), _STATUS.get(code, 400)


def register_service_error_handlers(bp: Blueprint) -> None:
    """Map service-layer exceptions raised inside ``bp`` to JSON errors.

    NotFoundError -> 404, ForbiddenError -> 403 (rule text as message),
    ValidationError -> 422 with its details, SQLAlchemyError -> 500.
    """

    @bp.errorhandler(NotFoundError)
    def _not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ForbiddenError)
    def _forbidden(error: ForbiddenError):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(ValidationError)
    def _invalid(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(SQLAlchemyError)
    def _database(error: SQLAlchemyError):
        logger.error(
            "Database error in %s endpoint=%s: %s", bp.name, request.endpoint, error,
            extra={"event_type": f"{bp.name}.database_error"},
        )
        return api_error(E.DATABASE, "Database error")
