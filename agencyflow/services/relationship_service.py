"""
Relationship Resolver: is a user reachable by a controller?

A user is related to a controller when the user owns (as client) at least one
project assigned to that controller. Used by controller-scoped notification
queries; admin and client paths never consult it.

The check is fail-closed: a storage error is logged and answered with
``False`` so that an outage denies access instead of granting it.

Usage:
    from agencyflow.services.relationship_service import is_user_related_to_controller

    if not is_user_related_to_controller(user_id, requester.id):
        raise ForbiddenError("...")
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from agencyflow.models import db
from agencyflow.models.project import Project

logger = logging.getLogger(__name__)


def client_project_ids(user_id: int) -> list[int]:
    """Return ids of every project owned by ``user_id`` as client."""
    return list(
        db.session.execute(
            select(Project.id).where(Project.client_id == user_id)
        ).scalars()
    )


def is_user_related_to_controller(user_id: int, controller_id: int) -> bool:
    """True iff ``user_id`` owns a project assigned to ``controller_id``.

    Not cached; recomputed on every call.
    """
    try:
        project_ids = client_project_ids(user_id)
        if not project_ids:
            return False

        shared = db.session.execute(
            select(Project.id)
            .where(Project.id.in_(project_ids), Project.controller_id == controller_id)
            .limit(1)
        ).first()
        related = shared is not None
    except SQLAlchemyError:
        logger.exception(
            "Relationship check failed for user=%s controller=%s; denying",
            user_id, controller_id,
        )
        db.session.rollback()
        return False

    logger.debug(
        "Checked user-controller relationship user=%s controller=%s related=%s",
        user_id, controller_id, related,
    )
    return related
