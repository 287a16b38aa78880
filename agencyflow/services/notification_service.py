"""
Notification Dispatcher: fan-out, delivery and read-state management.

Fan-out resolves one logical event into independent per-recipient
notification rows:

    "admin"       every user with role = admin (none -> no-op)
    "client"      the single supplied user id
    "controller"  the single supplied user id
    broadcast     the explicit target list, or every active user

Delivery is best-effort. Each recipient is committed on its own; a failure
for one recipient is logged, rolled back and skipped, and never reaches the
caller of the operation that triggered it. A project mutation therefore never
fails or rolls back because a notification could not be written.

Read paths degrade to empty/zero results on storage errors; write paths log,
roll back and re-raise.

Usage:
    from agencyflow.services import notification_service as notifications

    notifications.send_to("admin", title="...", message="...")
    notifications.dispatch_project_event(event)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError

from agencyflow.core.exceptions import NotFoundError, ValidationError
from agencyflow.core.requester import Requester
from agencyflow.models import db
from agencyflow.models.notification import (
    NOTIFICATION_TYPE_ANNOUNCEMENT,
    NOTIFICATION_TYPE_PROJECT_UPDATE,
    NOTIFICATION_TYPE_SYSTEM,
    Notification,
)
from agencyflow.models.user import ROLE_ADMIN, ROLE_CLIENT, ROLE_CONTROLLER, User
from agencyflow.services import project_policy as policy

logger = logging.getLogger(__name__)

RECIPIENT_ADMIN = ROLE_ADMIN
RECIPIENT_CLIENT = ROLE_CLIENT
RECIPIENT_CONTROLLER = ROLE_CONTROLLER


# ── Project events ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectEvent:
    """Outbound record of a committed project mutation.

    Built by the lifecycle manager from the pre-mutation snapshot and handed
    to ``dispatch_project_event`` after the mutation has been committed.
    """

    kind: str
    project_id: int
    project_title: str
    client_id: int
    controller_id: int | None = None


# kind -> recipient class -> (title, message template)
PROJECT_EVENT_TEMPLATES = {
    "created": {
        RECIPIENT_ADMIN: ("New Project Created", 'A new project "{title}" has been created.'),
        RECIPIENT_CLIENT: (
            "Project Created",
            'Your project "{title}" has been successfully created and is awaiting approval.',
        ),
        RECIPIENT_CONTROLLER: ("New Project Assigned", 'A new project "{title}" has been assigned to you.'),
    },
    "updated": {
        RECIPIENT_ADMIN: ("Project Updated", 'Project "{title}" has been updated.'),
        RECIPIENT_CLIENT: ("Project Updated", 'Your project "{title}" has been updated.'),
        RECIPIENT_CONTROLLER: ("Project Updated", 'Project "{title}" has been updated.'),
    },
    "progress": {
        RECIPIENT_ADMIN: ("Project Progress Updated", 'Progress updated for project "{title}".'),
        RECIPIENT_CLIENT: ("Project Progress Updated", 'Progress updated for your project "{title}".'),
        RECIPIENT_CONTROLLER: ("Project Progress Updated", 'Progress updated for project "{title}".'),
    },
    "deleted": {
        RECIPIENT_ADMIN: ("Project Deleted", 'Project "{title}" has been deleted.'),
        RECIPIENT_CLIENT: ("Project Deleted", 'Your project "{title}" has been deleted.'),
        RECIPIENT_CONTROLLER: ("Project Deleted", 'Project "{title}" has been deleted.'),
    },
    "file_uploaded": {
        RECIPIENT_ADMIN: ("Project File Uploaded", 'New file uploaded for project "{title}".'),
        RECIPIENT_CLIENT: ("Project File Uploaded", 'New file uploaded for your project "{title}".'),
        RECIPIENT_CONTROLLER: ("Project File Uploaded", 'New file uploaded for project "{title}".'),
    },
    "requirement_updated": {
        RECIPIENT_ADMIN: (
            "Project Requirement Updated",
            'New requirement document uploaded for project "{title}".',
        ),
        RECIPIENT_CLIENT: (
            "Project Requirement Updated",
            'New requirement document uploaded for your project "{title}".',
        ),
        RECIPIENT_CONTROLLER: (
            "Project Requirement Updated",
            'New requirement document uploaded for project "{title}".',
        ),
    },
}


# ── Create ───────────────────────────────────────────────────────────────────


def create_notification(*, user_id: int, title: str, message: str = "",
                        notification_type: str = NOTIFICATION_TYPE_SYSTEM,
                        is_read: bool = False) -> Notification:
    """Insert and commit a single notification row.

    Raises:
        SQLAlchemyError: after logging and rolling back.
    """
    notif = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        is_read=bool(is_read),
    )
    try:
        db.session.add(notif)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to create notification for user=%s title=%r", user_id, title,
            extra={"event_type": "notification.create_failed", "user_id": user_id},
        )
        raise

    logger.info(
        "Notification created id=%s user=%s type=%s", notif.id, user_id, notification_type,
        extra={"event_type": "notification.created", "notification_id": notif.id, "user_id": user_id},
    )
    return notif


def _deliver(user_id: int, title: str, message: str, notification_type: str) -> bool:
    """Best-effort delivery to one recipient. Never raises."""
    try:
        create_notification(
            user_id=user_id, title=title, message=message, notification_type=notification_type,
        )
        return True
    except Exception:
        db.session.rollback()
        logger.exception(
            "Notification delivery to user=%s failed; continuing", user_id,
            extra={"event_type": "notification.delivery_failed", "user_id": user_id},
        )
        return False


def _deliver_all(user_ids, title: str, message: str, notification_type: str) -> tuple[int, int]:
    delivered = failed = 0
    for uid in user_ids:
        if _deliver(uid, title, message, notification_type):
            delivered += 1
        else:
            failed += 1
    return delivered, failed


# ── Recipient resolution ─────────────────────────────────────────────────────


def admin_user_ids() -> list[int]:
    return list(db.session.execute(select(User.id).where(User.role == ROLE_ADMIN)).scalars())


def active_user_ids() -> list[int]:
    return list(db.session.execute(select(User.id).where(User.is_active.is_(True))).scalars())


def resolve_recipients(recipient: str, user_id: int | None = None) -> list[int]:
    """Turn a recipient class into concrete user ids."""
    if recipient == RECIPIENT_ADMIN:
        return admin_user_ids()
    if recipient in (RECIPIENT_CLIENT, RECIPIENT_CONTROLLER):
        return [user_id] if user_id is not None else []
    raise ValueError(f"Unknown recipient class: {recipient!r}")


def send_to(recipient: str, *, title: str, message: str = "",
            notification_type: str = NOTIFICATION_TYPE_PROJECT_UPDATE,
            user_id: int | None = None) -> int:
    """Fan a message out to a recipient class. Returns the number delivered.

    Fire-and-forget: resolution and delivery errors are logged, never raised.
    """
    try:
        recipients = resolve_recipients(recipient, user_id)
    except (SQLAlchemyError, ValueError):
        db.session.rollback()
        logger.exception(
            "Could not resolve %s recipients for %r", recipient, title,
            extra={"event_type": "notification.resolve_failed"},
        )
        return 0

    delivered, _ = _deliver_all(recipients, title, message, notification_type)
    return delivered


def dispatch_project_event(event: ProjectEvent) -> int:
    """Notify admins, the owning client and (if assigned) the controller."""
    templates = PROJECT_EVENT_TEMPLATES[event.kind]
    targets = [
        (RECIPIENT_ADMIN, None),
        (RECIPIENT_CLIENT, event.client_id),
    ]
    if event.controller_id:
        targets.append((RECIPIENT_CONTROLLER, event.controller_id))

    delivered = 0
    for recipient, uid in targets:
        title, template = templates[recipient]
        delivered += send_to(
            recipient,
            title=title,
            message=template.format(title=event.project_title),
            notification_type=NOTIFICATION_TYPE_PROJECT_UPDATE,
            user_id=uid,
        )

    logger.debug(
        "Project event %s for project=%s delivered=%d", event.kind, event.project_id, delivered,
        extra={"event_type": f"project.{event.kind}", "project_id": event.project_id},
    )
    return delivered


def send_to_user(requester: Requester, *, user_id: int | None, title: str, message: str = "",
                 notification_type: str = NOTIFICATION_TYPE_SYSTEM) -> Notification:
    """Targeted send from an admin or a controller to a (related) user."""
    policy.check_notification_target(requester, user_id or requester.id, "send")
    if not user_id:
        raise ValidationError("User ID is required for sending notification to a specific user")
    return create_notification(
        user_id=user_id, title=title, message=message, notification_type=notification_type,
    )


def broadcast(*, title: str, message: str = "", notification_type: str = NOTIFICATION_TYPE_ANNOUNCEMENT,
              target_users: list[int] | None = None) -> dict:
    """Send one notification per target user, or per active user if none given.

    Per-recipient failures are isolated and counted; a failure to resolve the
    active-user audience is a storage failure and propagates.
    """
    broadcast_to_all = not target_users
    if broadcast_to_all:
        try:
            recipients = active_user_ids()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(
                "Failed to resolve broadcast audience for %r", title,
                extra={"event_type": "notification.broadcast_failed"},
            )
            raise
    else:
        recipients = list(dict.fromkeys(target_users))

    delivered, failed = _deliver_all(recipients, title, message, notification_type)

    logger.info(
        "Broadcast notification sent title=%r delivered=%d failed=%d all=%s",
        title, delivered, failed, broadcast_to_all,
        extra={"event_type": "notification.broadcast"},
    )
    return {
        "message": "Broadcast notification sent successfully",
        "delivered": delivered,
        "failed": failed,
        "broadcast_to_all": broadcast_to_all,
    }


def broadcast_for(requester: Requester, **kwargs) -> dict:
    policy.check_broadcast(requester)
    return broadcast(**kwargs)


# ── Query ────────────────────────────────────────────────────────────────────


def list_for_user(user_id: int) -> list[Notification]:
    """Notifications for one recipient, newest first. ``[]`` on storage errors."""
    try:
        items = (
            Notification.query
            .filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to fetch notifications for user=%s", user_id,
            extra={"event_type": "notification.read_failed", "user_id": user_id},
        )
        return []

    logger.info(
        "Notifications fetched for user=%s count=%d", user_id, len(items),
        extra={"event_type": "notification.read", "user_id": user_id},
    )
    return items


def notifications_for(requester: Requester, user_id: int) -> list[Notification]:
    policy.check_notification_target(requester, user_id, "view")
    return list_for_user(user_id)


def paginate_for_user(user_id: int, page: int = 1, limit: int = 10) -> dict:
    """One page of a recipient's notifications plus paging totals."""
    page = max(int(page or 1), 1)
    limit = max(int(limit or 10), 1)
    try:
        q = Notification.query.filter_by(user_id=user_id)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to paginate notifications for user=%s", user_id,
            extra={"event_type": "notification.read_failed", "user_id": user_id},
        )
        total, items = 0, []

    return {
        "data": [n.to_dict() for n in items],
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def get_for_user(notification_id: int, user_id: int) -> Notification:
    """Scoped lookup by (id, owner). Raises NotFoundError if nothing matches."""
    notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if notif is None:
        raise NotFoundError("Notification", notification_id, owner_id=user_id)
    logger.info(
        "Notification fetched id=%s user=%s", notification_id, user_id,
        extra={"event_type": "notification.read", "notification_id": notification_id, "user_id": user_id},
    )
    return notif


def list_all(requester: Requester) -> list[Notification]:
    """Every notification in the system (admin only). ``[]`` on storage errors."""
    policy.check_list_all_notifications(requester)
    try:
        items = Notification.query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to fetch all notifications", extra={"event_type": "notification.read_failed"})
        return []
    logger.info("All notifications fetched count=%d", len(items), extra={"event_type": "notification.read"})
    return items


def unread_count(user_id: int) -> int:
    try:
        count = Notification.query.filter_by(user_id=user_id, is_read=False).count()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to count unread notifications for user=%s", user_id,
            extra={"event_type": "notification.read_failed", "user_id": user_id},
        )
        return 0
    logger.info(
        "Unread notification count user=%s count=%d", user_id, count,
        extra={"event_type": "notification.read", "user_id": user_id},
    )
    return count


def unread_count_for(requester: Requester, user_id: int) -> dict:
    policy.check_notification_target(requester, user_id, "unread_count")
    return {"unread_count": unread_count(user_id)}


def notification_stats(user_id: int) -> dict:
    """Total / unread / read counts for a recipient; all zero on storage errors."""
    try:
        row = db.session.execute(
            select(
                func.count(Notification.id),
                func.coalesce(func.sum(case((Notification.is_read.is_(False), 1), else_=0)), 0),
            ).where(Notification.user_id == user_id)
        ).one()
        total, unread = int(row[0] or 0), int(row[1] or 0)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to compute notification stats for user=%s", user_id,
            extra={"event_type": "notification.read_failed", "user_id": user_id},
        )
        return {"total": 0, "unread": 0, "read": 0}
    return {"total": total, "unread": unread, "read": total - unread}


# ── Actions ──────────────────────────────────────────────────────────────────


def _commit_or_raise(event_type: str, description: str, write=None, **fields):
    """Run ``write`` (if given) and commit; roll back, log and re-raise on failure."""
    try:
        result = write() if write is not None else None
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to %s", description,
            extra={"event_type": f"{event_type}_failed", **fields},
        )
        raise
    return result


def _acknowledge_to_admins(requester: Requester, description: str, **fields) -> None:
    # Client read acknowledgements are surfaced to admins through the audit log.
    if requester.is_client:
        logger.info(
            "Admin notification: user=%s %s", requester.id, description,
            extra={"event_type": "notification.client_acknowledged", "user_id": requester.id, **fields},
        )


def mark_read(notification_id: int, requester: Requester) -> Notification:
    """Mark any notification the requester is allowed to manage as read."""
    notif = db.session.get(Notification, notification_id)
    if notif is None:
        raise NotFoundError("Notification", notification_id)
    policy.check_notification_target(requester, notif.user_id, "mark_read")

    notif.mark_read()
    _commit_or_raise("notification.mark_read", f"mark notification {notification_id} as read",
                     notification_id=notification_id)
    logger.info(
        "Notification marked as read id=%s by=%s", notification_id, requester.id,
        extra={"event_type": "notification.mark_read", "notification_id": notification_id,
               "user_id": notif.user_id},
    )
    _acknowledge_to_admins(requester, "marked notification as read", notification_id=notification_id)
    return notif


def mark_read_for_user(notification_id: int, requester: Requester) -> Notification:
    """Mark one of the requester's own notifications as read."""
    notif = get_for_user(notification_id, requester.id)
    notif.mark_read()
    _commit_or_raise("notification.mark_read", f"mark notification {notification_id} as read",
                     notification_id=notification_id, user_id=requester.id)
    logger.info(
        "Notification marked as read by owner id=%s user=%s", notification_id, requester.id,
        extra={"event_type": "notification.mark_read", "notification_id": notification_id,
               "user_id": requester.id},
    )
    _acknowledge_to_admins(requester, "marked notification as read", notification_id=notification_id)
    return notif


def mark_all_read(requester: Requester, user_id: int | None = None) -> dict:
    """Mark every unread notification of ``user_id`` (default: requester) as read."""
    target = requester.id if user_id is None else user_id
    policy.check_notification_target(requester, target, "mark_read")

    now = datetime.now(timezone.utc)
    count = _commit_or_raise(
        "notification.mark_all_read", f"mark all notifications of user {target} as read",
        write=lambda: (
            Notification.query
            .filter_by(user_id=target, is_read=False)
            .update(
                {"is_read": True, "read_at": now, "updated_at": now},
                synchronize_session=False,
            )
        ),
        user_id=target,
    )
    logger.info(
        "All notifications marked as read user=%s count=%d", target, count,
        extra={"event_type": "notification.mark_all_read", "user_id": target},
    )
    if count:
        _acknowledge_to_admins(requester, f"marked all notifications as read ({count})")
    return {"message": f"Marked {count} notifications as read", "count": count}


def delete_notification(notification_id: int, requester: Requester) -> dict:
    """Delete a notification by id (manager path). Missing ids are not an error."""
    notif = db.session.get(Notification, notification_id)
    if notif is None:
        return {"message": "Notification not found", "deleted": False}
    policy.check_notification_target(requester, notif.user_id, "delete")

    db.session.delete(notif)
    _commit_or_raise("notification.delete", f"delete notification {notification_id}",
                     notification_id=notification_id)
    logger.info(
        "Notification deleted id=%s by=%s", notification_id, requester.id,
        extra={"event_type": "notification.deleted", "notification_id": notification_id},
    )
    return {"message": "Notification deleted successfully", "deleted": True}


def delete_for_user(notification_id: int, requester: Requester) -> dict:
    """Delete one of the requester's own notifications."""
    notif = get_for_user(notification_id, requester.id)
    db.session.delete(notif)
    _commit_or_raise("notification.delete", f"delete notification {notification_id}",
                     notification_id=notification_id, user_id=requester.id)
    logger.info(
        "Notification deleted by owner id=%s user=%s", notification_id, requester.id,
        extra={"event_type": "notification.deleted", "notification_id": notification_id,
               "user_id": requester.id},
    )
    return {"message": "Notification deleted successfully", "deleted": True}


def delete_all_for_user(requester: Requester, user_id: int | None = None) -> dict:
    target = requester.id if user_id is None else user_id
    policy.check_notification_target(requester, target, "delete")

    count = _commit_or_raise(
        "notification.delete_all", f"delete all notifications of user {target}",
        write=lambda: Notification.query.filter_by(user_id=target).delete(synchronize_session=False),
        user_id=target,
    )
    logger.info(
        "All notifications deleted user=%s count=%d", target, count,
        extra={"event_type": "notification.deleted", "user_id": target},
    )
    if count:
        return {"message": f"{count} notifications deleted successfully", "count": count}
    return {"message": "No notifications found for user", "count": 0}
