"""
Authorization Policy: role and ownership rules for projects, files and
notifications.

Every rule comes in two flavours:

    *_denial(...)  -> str | None   # reason text, or None when allowed
    check_*(...)   -> None         # raises ForbiddenError(reason)

The reason strings are user-facing: the HTTP layer returns them verbatim, so
each one names the exact rule that was violated.

Roles:
    admin       unrestricted on projects; may act on anyone's notifications
    controller  only on projects where controller_id == requester.id;
                notifications of self or of related users
    client      only on projects where client_id == requester.id, with a
                restricted field set on update; own notifications only

Usage:
    from agencyflow.services import project_policy as policy

    policy.check_update(requester, project, patch)
    data = policy.prepare_create(requester, data)
"""

from __future__ import annotations

from agencyflow.core.exceptions import ForbiddenError, ValidationError
from agencyflow.core.requester import Requester
from agencyflow.models.project import CLIENT_EDITABLE_FIELDS, Project, ProjectFile
from agencyflow.models.user import ROLE_ADMIN, ROLE_CLIENT, ROLE_CONTROLLER
from agencyflow.services.relationship_service import is_user_related_to_controller

PDF_MIME_TYPE = "application/pdf"

CREATE_ROLES = {ROLE_ADMIN, ROLE_CLIENT, ROLE_CONTROLLER}


def _raise_if(reason: str | None, requester: Requester) -> None:
    if reason:
        raise ForbiddenError(reason, requester_id=requester.id, role=requester.role)


# ── Projects: create ─────────────────────────────────────────────────────────


def prepare_create(requester: Requester, data: dict) -> dict:
    """Apply the create rules and return the data to insert.

    - client:     client_id is forced to the requester (cannot create for others)
    - controller: controller_id is forced to the requester (self-assignment)
    - admin:      client_id must be supplied

    Raises:
        ForbiddenError: role may not create projects.
        ValidationError: no owning client could be determined.
    """
    if requester.role not in CREATE_ROLES:
        raise ForbiddenError(
            "Only admins, clients, and controllers can create projects",
            requester_id=requester.id, role=requester.role,
        )

    prepared = dict(data)
    if requester.is_client:
        prepared["client_id"] = requester.id
    if requester.is_controller:
        prepared["controller_id"] = requester.id

    if not prepared.get("client_id"):
        raise ValidationError("client_id is required", details={"client_id": "required"})
    return prepared


# ── Projects: update / progress / delete ─────────────────────────────────────


def update_denial(requester: Requester, project: Project, patch: dict) -> str | None:
    """Reason the requester may not apply ``patch`` to ``project``, or None."""
    if requester.is_client:
        if project.client_id != requester.id:
            return "Clients can only update their own projects"
        # All-or-nothing: one disallowed non-null field rejects the whole patch.
        invalid = [
            key for key, value in patch.items()
            if value is not None and key not in CLIENT_EDITABLE_FIELDS
        ]
        if invalid:
            return f"Clients can only update: {', '.join(CLIENT_EDITABLE_FIELDS)}"
    elif requester.is_controller:
        if project.controller_id != requester.id:
            return "Controllers can only update projects assigned to them"
    elif not requester.is_admin:
        return "Only admins, controllers, and project owners can update projects"

    if "client_id" in patch and patch["client_id"] is not None and patch["client_id"] != project.client_id:
        return "client_id cannot be changed"
    return None


def check_update(requester: Requester, project: Project, patch: dict) -> None:
    _raise_if(update_denial(requester, project, patch), requester)


def progress_denial(requester: Requester, project: Project) -> str | None:
    if not (requester.is_admin or requester.is_controller):
        return "Only admins and controllers can add progress"
    if requester.is_controller and project.controller_id != requester.id:
        return "Controllers can only add progress to projects assigned to them"
    return None


def check_progress(requester: Requester, project: Project) -> None:
    _raise_if(progress_denial(requester, project), requester)


def delete_denial(requester: Requester, project: Project) -> str | None:
    if not (requester.is_admin or requester.is_controller):
        return "Only admins and controllers can delete projects"
    if requester.is_controller and project.controller_id != requester.id:
        return "Controllers can only delete projects assigned to them"
    return None


def check_delete(requester: Requester, project: Project) -> None:
    _raise_if(delete_denial(requester, project), requester)


# ── Files ────────────────────────────────────────────────────────────────────


def upload_denial(requester: Requester, project: Project) -> str | None:
    """Admin, controller-of-record or client owner may attach files."""
    if requester.is_admin:
        return None
    if requester.is_controller:
        if project.controller_id != requester.id:
            return "Controllers can only upload files to projects assigned to them"
        return None
    if requester.is_client:
        if project.client_id != requester.id:
            return "Clients can only upload files to their own projects"
        return None
    return "Unauthorized to upload files for this project"


def check_upload(requester: Requester, project: Project) -> None:
    _raise_if(upload_denial(requester, project), requester)


def requirement_pdf_denial(requester: Requester, project: Project) -> str | None:
    if requester.is_admin:
        return None
    if requester.is_controller:
        if project.controller_id != requester.id:
            return "Controllers can only update requirement PDF for projects assigned to them"
        return None
    if requester.is_client:
        if project.client_id != requester.id:
            return "Clients can only update requirement PDF for their own projects"
        return None
    return "Only admins, controllers, and project owners can update project requirement PDF"


def check_requirement_pdf(requester: Requester, project: Project) -> None:
    _raise_if(requirement_pdf_denial(requester, project), requester)


def check_requirement_mime(mimetype: str | None) -> None:
    """Requirement documents must be exactly ``application/pdf``."""
    if mimetype != PDF_MIME_TYPE:
        raise ValidationError(
            "Only PDF files are allowed for project requirements",
            details={"mimetype": mimetype},
        )


def file_delete_denial(requester: Requester, file: ProjectFile, project: Project | None) -> str | None:
    """Admin, the uploader, or the controller-of-record of the owning project."""
    if requester.is_admin or file.uploaded_by == requester.id:
        return None
    if requester.is_controller and project is not None and project.controller_id == requester.id:
        return None
    return "Unauthorized to delete this file"


def check_file_delete(requester: Requester, file: ProjectFile, project: Project | None) -> None:
    _raise_if(file_delete_denial(requester, file, project), requester)


# ── Notifications ────────────────────────────────────────────────────────────

# action -> (client denial, controller denial)
_TARGET_MESSAGES = {
    "view": (
        "Clients can only view their own notifications",
        "Controllers can only view notifications for users related to their projects",
    ),
    "unread_count": (
        "Clients can only check their own unread notification count",
        "Controllers can only check unread count for users related to their projects",
    ),
    "mark_read": (
        "Clients cannot mark other users' notifications as read",
        "Controllers can only mark notifications as read for users related to their projects",
    ),
    "delete": (
        "Clients cannot delete other users' notifications",
        "Controllers can only delete notifications for users related to their projects",
    ),
    "send": (
        "Clients cannot send notifications",
        "Controllers can only send notifications to users related to their projects",
    ),
}

# Actions a client may not perform even on their own account.
_CLIENT_FORBIDDEN_ACTIONS = {"send"}


def notification_target_denial(requester: Requester, target_user_id: int, action: str = "view") -> str | None:
    """May ``requester`` perform ``action`` on ``target_user_id``'s notifications?

    admin:      any user
    controller: self, or a user related through a shared project
    client:     self only
    """
    client_msg, controller_msg = _TARGET_MESSAGES.get(action, _TARGET_MESSAGES["view"])

    if requester.is_admin:
        return None
    if requester.is_controller:
        if target_user_id == requester.id:
            return None
        if is_user_related_to_controller(target_user_id, requester.id):
            return None
        return controller_msg
    if requester.is_client:
        if action in _CLIENT_FORBIDDEN_ACTIONS or target_user_id != requester.id:
            return client_msg
        return None
    return "Unauthorized to access notifications for this user"


def check_notification_target(requester: Requester, target_user_id: int, action: str = "view") -> None:
    _raise_if(notification_target_denial(requester, target_user_id, action), requester)


def broadcast_denial(requester: Requester) -> str | None:
    if requester.is_client:
        return "Clients cannot broadcast notifications"
    if not (requester.is_admin or requester.is_controller):
        return "Unauthorized to broadcast notifications"
    return None


def check_broadcast(requester: Requester) -> None:
    _raise_if(broadcast_denial(requester), requester)


def check_list_all_notifications(requester: Requester) -> None:
    if not requester.is_admin:
        _raise_if("Only admins can view all notifications", requester)
