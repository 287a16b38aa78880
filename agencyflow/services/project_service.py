"""
Project Lifecycle Manager: create, read, update, progress, delete and file
attachment for projects.

Every mutation follows the same shape:

    1. load the project row (``FOR UPDATE`` where the engine supports it)
    2. consult ``project_policy`` before touching anything
    3. compute the fields that actually change; nothing changed -> return as-is
    4. write and commit in one transaction
    5. hand a ``ProjectEvent`` to the notification dispatcher

Notifications are dispatched strictly after commit and can never fail or roll
back the mutation that produced them.

Reads are scoped by role in the query itself:

    admin       every project
    controller  controller_id == requester.id
    client      client_id == requester.id

A scoped detail lookup that matches nothing is a NotFoundError, whether the
row is missing or belongs to someone else.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from agencyflow.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from agencyflow.core.requester import Requester
from agencyflow.models import db
from agencyflow.models.project import (
    PROGRESS_FIELDS,
    PROJECT_STATUSES,
    PROJECT_TRANSITIONS,
    TERMINAL_STATUSES,
    UPDATABLE_FIELDS,
    Project,
    ProjectFile,
    _utcnow,
)
from agencyflow.services import notification_service
from agencyflow.services import project_policy as policy
from agencyflow.services.notification_service import ProjectEvent
from agencyflow.utils.helpers import parse_date, parse_decimal, parse_int

logger = logging.getLogger(__name__)

DEFAULT_REQUIREMENT_URL_PREFIX = "/uploads/storage/project-files"

# Lock only the projects row; client/controller are outer-joined eagerly.
_ROW_LOCK = {"of": Project}


# ── Internals ────────────────────────────────────────────────────────────────


def _event(kind: str, project: Project) -> ProjectEvent:
    return ProjectEvent(
        kind=kind,
        project_id=project.id,
        project_title=project.title,
        client_id=project.client_id,
        controller_id=project.controller_id,
    )


def _notify(event: ProjectEvent) -> None:
    """Fire-and-forget fan-out; failures are logged and dropped here."""
    try:
        notification_service.dispatch_project_event(event)
    except Exception:
        logger.exception(
            "Notification dispatch for project=%s (%s) failed", event.project_id, event.kind,
            extra={"event_type": f"project.{event.kind}.notify_failed", "project_id": event.project_id},
        )


def _commit(event_type: str, project_id: int | None) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Project write failed (%s) project=%s", event_type, project_id,
            extra={"event_type": f"{event_type}_failed", "project_id": project_id},
        )
        raise


def _lock_project(project_id: int) -> Project:
    """Load a project for a read-modify-write. Raises NotFoundError."""
    project = db.session.get(Project, project_id, with_for_update=_ROW_LOCK)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def _coerce(field: str, value):
    if field in ("start_date", "end_date"):
        return parse_date(value, field)
    if field == "amount":
        return parse_decimal(value, field)
    if field in ("progress", "service_id"):
        return parse_int(value, field)
    return value


def _changed_fields(project: Project, patch: dict, allowed) -> dict:
    """Fields of ``patch`` (restricted to ``allowed``) whose value differs.

    ``None`` means "not provided" and never clears a column.
    """
    changes = {}
    for field in allowed:
        value = patch.get(field)
        if value is None:
            continue
        value = _coerce(field, value)
        if getattr(project, field) != value:
            changes[field] = value
    return changes


def _validate_changes(project: Project, changes: dict) -> None:
    if "progress" in changes and not 0 <= changes["progress"] <= 100:
        raise ValidationError("progress must be between 0 and 100", details={"progress": changes["progress"]})
    if "title" in changes and not str(changes["title"]).strip():
        raise ValidationError("title cannot be empty", details={"title": "required"})

    if "status" in changes and current_app.config.get("PROJECT_STRICT_TRANSITIONS"):
        current, target = project.status, changes["status"]
        if target not in PROJECT_STATUSES:
            raise ValidationError(f"Unknown status '{target}'", details={"allowed": sorted(PROJECT_STATUSES)})
        if current in TERMINAL_STATUSES:
            raise ValidationError(f"Project is {current}; its status can no longer change", details={"allowed": []})
        allowed = PROJECT_TRANSITIONS.get(current, set())
        if target not in allowed:
            raise ValidationError(
                f"Invalid status transition: '{current}' → '{target}'",
                details={"allowed": sorted(allowed)},
            )


def _apply(project: Project, changes: dict) -> None:
    for field, value in changes.items():
        setattr(project, field, value)
    project.updated_at = _utcnow()


def _scoped_query(requester: Requester):
    stmt = select(Project)
    if requester.is_admin:
        return stmt
    if requester.is_controller:
        return stmt.where(Project.controller_id == requester.id)
    if requester.is_client:
        return stmt.where(Project.client_id == requester.id)
    return None


# ── Create ───────────────────────────────────────────────────────────────────


def create_project(data: dict, requester: Requester) -> Project:
    """Insert a new ``pending`` project and fan out the creation notices."""
    prepared = policy.prepare_create(requester, data or {})

    title = str(prepared.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    progress = parse_int(prepared.get("progress"), "progress") or 0
    if not 0 <= progress <= 100:
        raise ValidationError("progress must be between 0 and 100", details={"progress": progress})

    project = Project(
        title=title,
        description=prepared.get("description"),
        service_id=parse_int(prepared.get("service_id"), "service_id"),
        client_id=prepared["client_id"],
        controller_id=prepared.get("controller_id"),
        status="pending",
        progress=progress,
        amount=parse_decimal(prepared.get("amount")),
        amount_description=prepared.get("amount_description"),
        start_date=parse_date(prepared.get("start_date"), "start_date"),
        end_date=parse_date(prepared.get("end_date"), "end_date"),
    )
    db.session.add(project)
    _commit("project.create", None)

    logger.info(
        "Project created id=%s client=%s controller=%s by=%s",
        project.id, project.client_id, project.controller_id, requester.id,
        extra={"event_type": "project.created", "project_id": project.id, "user_id": requester.id},
    )
    _notify(_event("created", project))
    return project


# ── Read ─────────────────────────────────────────────────────────────────────


def list_projects(requester: Requester) -> list[Project]:
    """Role-scoped project list, newest first. ``[]`` on storage errors."""
    stmt = _scoped_query(requester)
    if stmt is None:
        return []
    try:
        return list(
            db.session.execute(
                stmt.order_by(Project.created_at.desc(), Project.id.desc())
            ).scalars().unique()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to list projects for user=%s role=%s", requester.id, requester.role,
            extra={"event_type": "project.list_failed", "user_id": requester.id},
        )
        return []


def get_project(project_id: int, requester: Requester) -> Project:
    """Role-scoped detail lookup.

    Raises:
        NotFoundError: missing, or outside the requester's scope.
    """
    stmt = _scoped_query(requester)
    project = None
    if stmt is not None:
        project = db.session.execute(stmt.where(Project.id == project_id)).scalars().first()
    if project is None:
        raise NotFoundError("Project", project_id, owner_id=requester.id)
    return project


def get_project_progress(project_id: int) -> dict | None:
    try:
        project = db.session.get(Project, project_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to read progress for project=%s", project_id,
            extra={"event_type": "project.read_failed", "project_id": project_id},
        )
        return None
    if project is None:
        return None
    return {
        "project_id": project.id,
        "progress": project.progress,
        "status": project.status,
        "updated_at": project.updated_at.isoformat() if project.updated_at else None,
    }


# ── Update ───────────────────────────────────────────────────────────────────


def update_project(project_id: int, patch: dict, requester: Requester) -> Project:
    """Sparse update under the caller's field restrictions.

    Notifies when the patch carries ``status`` or ``progress`` and the write
    is not a no-op.
    """
    patch = patch or {}
    project = _lock_project(project_id)
    policy.check_update(requester, project, patch)

    changes = _changed_fields(project, patch, UPDATABLE_FIELDS)
    if not changes:
        db.session.rollback()
        logger.info(
            "Project update was a no-op id=%s by=%s", project_id, requester.id,
            extra={"event_type": "project.update_noop", "project_id": project_id},
        )
        return project

    _validate_changes(project, changes)
    _apply(project, changes)
    _commit("project.update", project_id)

    logger.info(
        "Project updated id=%s fields=%s by=%s", project_id, sorted(changes), requester.id,
        extra={"event_type": "project.updated", "project_id": project_id, "user_id": requester.id},
    )
    if any(patch.get(field) is not None for field in ("status", "progress")):
        _notify(_event("updated", project))
    return project


def add_progress(project_id: int, patch: dict, requester: Requester) -> Project:
    """Progress/status update by an admin or the controller of record."""
    patch = patch or {}
    project = _lock_project(project_id)
    policy.check_progress(requester, project)

    changes = _changed_fields(project, patch, PROGRESS_FIELDS)
    if not changes:
        db.session.rollback()
        logger.info(
            "Project progress update was a no-op id=%s by=%s", project_id, requester.id,
            extra={"event_type": "project.progress_noop", "project_id": project_id},
        )
        return project

    _validate_changes(project, changes)
    _apply(project, changes)
    _commit("project.progress", project_id)

    logger.info(
        "Project progress updated id=%s progress=%s status=%s by=%s",
        project_id, project.progress, project.status, requester.id,
        extra={"event_type": "project.progress", "project_id": project_id, "user_id": requester.id},
    )
    _notify(_event("progress", project))
    return project


# ── Delete ───────────────────────────────────────────────────────────────────


def delete_project(project_id: int, requester: Requester) -> dict:
    """Physically delete a project (files go with it). Missing ids are not an error."""
    project = db.session.get(Project, project_id, with_for_update=_ROW_LOCK)
    if project is None:
        return {"message": "Project not found", "deleted": False}
    policy.check_delete(requester, project)

    event = _event("deleted", project)
    result = db.session.execute(delete(Project).where(Project.id == project_id))
    _commit("project.delete", project_id)

    if not result.rowcount:
        return {"message": "Project not found", "deleted": False}

    logger.info(
        "Project deleted id=%s by=%s", project_id, requester.id,
        extra={"event_type": "project.deleted", "project_id": project_id, "user_id": requester.id},
    )
    _notify(event)
    return {"message": "Project deleted successfully", "deleted": True}


# ── Files ────────────────────────────────────────────────────────────────────


def upload_project_file(project_id: int, file_meta: dict | None, requester: Requester) -> dict:
    """Record an uploaded file against a project.

    ``file_meta`` carries what the storage layer already handled:
    ``original_name`` (required), ``filename`` (stored name), ``path``,
    ``mimetype`` and ``size``.
    """
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    policy.check_upload(requester, project)

    if not file_meta or not file_meta.get("original_name"):
        raise ValidationError("File data is required for upload")

    record = ProjectFile(
        project_id=project_id,
        file_name=file_meta["original_name"],
        file_path=file_meta.get("path"),
        file_type=file_meta.get("mimetype"),
        file_size=parse_int(file_meta.get("size"), "size"),
        uploaded_by=requester.id,
    )
    db.session.add(record)
    _commit("project.file_upload", project_id)

    logger.info(
        "Project file uploaded project=%s file=%s by=%s", project_id, record.id, requester.id,
        extra={"event_type": "project.file_uploaded", "project_id": project_id, "user_id": requester.id},
    )
    _notify(_event("file_uploaded", project))

    return {
        "message": "File uploaded successfully",
        "project_id": project_id,
        "file_id": record.id,
        "file_info": {
            "filename": record.file_name,
            "path": record.file_path,
            "mimetype": record.file_type,
            "size": record.file_size,
            "uploaded_by": requester.id,
            "uploaded_at": record.uploaded_at.isoformat() if record.uploaded_at else None,
        },
    }


def update_requirement_pdf(project_id: int, path: str, requester: Requester) -> Project:
    project = _lock_project(project_id)
    policy.check_requirement_pdf(requester, project)

    if not path:
        raise ValidationError("Requirement document path is required")
    if project.requirements_pdf == path:
        db.session.rollback()
        return project

    _apply(project, {"requirements_pdf": path})
    _commit("project.requirement_update", project_id)

    logger.info(
        "Project requirement document set project=%s by=%s", project_id, requester.id,
        extra={"event_type": "project.requirement_updated", "project_id": project_id, "user_id": requester.id},
    )
    _notify(_event("requirement_updated", project))
    return project


def upload_requirement(project_id: int, file_meta: dict | None, requester: Requester) -> dict:
    """Attach a PDF requirement document and point the project at it.

    The MIME gate runs before anything is written.
    """
    if not file_meta or not file_meta.get("original_name"):
        raise ValidationError("File data is required for upload")
    policy.check_requirement_mime(file_meta.get("mimetype"))

    uploaded = upload_project_file(project_id, file_meta, requester)

    prefix = current_app.config.get("REQUIREMENT_URL_PREFIX", DEFAULT_REQUIREMENT_URL_PREFIX)
    stored_name = file_meta.get("filename") or file_meta["original_name"]
    public_path = f"{prefix.rstrip('/')}/{stored_name}"

    project = update_requirement_pdf(project_id, public_path, requester)
    return {
        **uploaded,
        "message": "Requirement document uploaded successfully",
        "requirements_pdf": project.requirements_pdf,
    }


def get_project_files(project_id: int) -> list[ProjectFile]:
    """Unscoped file listing, newest first. ``[]`` on storage errors."""
    try:
        return list(
            db.session.execute(
                select(ProjectFile)
                .where(ProjectFile.project_id == project_id)
                .order_by(ProjectFile.uploaded_at.desc(), ProjectFile.id.desc())
            ).scalars().unique()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to list files for project=%s", project_id,
            extra={"event_type": "project.files_failed", "project_id": project_id},
        )
        return []


def get_project_files_for_controller(project_id: int, requester: Requester) -> list[ProjectFile]:
    """File listing for a controller; re-validates the assignment first."""
    if not requester.is_controller:
        raise ForbiddenError(
            "Only controllers can use the controller file listing",
            requester_id=requester.id, role=requester.role,
        )
    project = db.session.get(Project, project_id)
    if project is None or project.controller_id != requester.id:
        raise NotFoundError("Project", project_id, owner_id=requester.id)
    return get_project_files(project_id)


def list_project_files(project_id: int, requester: Requester) -> list[ProjectFile]:
    if requester.is_controller:
        return get_project_files_for_controller(project_id, requester)
    get_project(project_id, requester)
    return get_project_files(project_id)


def delete_project_file(file_id: int, requester: Requester) -> dict:
    record = db.session.get(ProjectFile, file_id)
    if record is None:
        return {"message": "File not found", "deleted": False}

    project = db.session.get(Project, record.project_id)
    policy.check_file_delete(requester, record, project)

    project_id = record.project_id
    db.session.delete(record)
    _commit("project.file_delete", project_id)

    logger.info(
        "Project file deleted file=%s project=%s by=%s", file_id, project_id, requester.id,
        extra={"event_type": "project.file_deleted", "project_id": project_id, "user_id": requester.id},
    )
    return {"message": "File deleted successfully", "deleted": True}
