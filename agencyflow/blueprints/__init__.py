"""
AgencyFlow Project Management Platform
Blueprint registry and shared request helpers.
"""

from agencyflow.core.requester import Requester
from agencyflow.middleware.requester_context import current_requester
from agencyflow.utils.errors import E, api_error


def requester_required() -> tuple[Requester | None, tuple | None]:
    """Return ``(requester, None)`` or ``(None, 401 response)``.

    Usage::

        requester, err = requester_required()
        if err:
            return err
    """
    requester = current_requester()
    if requester is None:
        return None, api_error(E.UNAUTHENTICATED, "Authentication required")
    return requester, None
