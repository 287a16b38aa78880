"""
Requester Context Middleware: builds ``g.requester`` from gateway headers.

Token verification happens upstream. The auth gateway forwards the verified
identity as two headers:

    X-User-Id:   integer user id
    X-User-Role: admin | controller | client

Missing or malformed headers leave ``g.requester = None``; blueprints decide
whether that is a 401.
"""

import logging

from flask import g, request

from agencyflow.core.requester import Requester
from agencyflow.models.user import USER_ROLES

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

# Paths that never carry a requester
SKIP_PREFIXES = (
    "/api/v1/health",
)


def parse_requester(headers) -> Requester | None:
    raw_id = (headers.get(USER_ID_HEADER) or "").strip()
    raw_role = (headers.get(USER_ROLE_HEADER) or "").strip().lower()
    if not raw_id or not raw_role:
        return None

    try:
        user_id = int(raw_id)
    except ValueError:
        logger.warning("Ignoring malformed %s header: %r", USER_ID_HEADER, raw_id)
        return None

    if raw_role not in USER_ROLES:
        logger.warning("Ignoring unknown role %r for user=%s", raw_role, user_id)
        return None
    return Requester(id=user_id, role=raw_role)


def init_requester_context(app):
    """Register the requester middleware as a before_request hook."""

    @app.before_request
    def _load_requester():
        g.requester = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        g.requester = parse_requester(request.headers)


def current_requester() -> Requester | None:
    return getattr(g, "requester", None)
