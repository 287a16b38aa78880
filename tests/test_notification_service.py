"""Notification dispatcher: fan-out, broadcast isolation, inbox reads and read-state."""

import logging
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from agencyflow.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from agencyflow.core.requester import Requester
from agencyflow.models import db as _db
from agencyflow.models.notification import Notification
from agencyflow.models.user import ROLE_ADMIN, User
from agencyflow.services import notification_service
from agencyflow.services.notification_service import ProjectEvent


def _req(user):
    return Requester(id=user.id, role=user.role)


def _seed(user, count=1, title="Hello", is_read=False):
    return [
        notification_service.create_notification(
            user_id=user.id, title=f"{title} {i}" if count > 1 else title, message="body", is_read=is_read,
        )
        for i in range(count)
    ]


def _db_error():
    return OperationalError("SQL", {}, Exception("db down"))


# ═════════════════════════════════════════════════════════════════════════
# Fan-out
# ═════════════════════════════════════════════════════════════════════════


def test_create_notification_defaults(client_user):
    notif = notification_service.create_notification(user_id=client_user.id, title="Hi")

    assert notif.id is not None
    assert notif.is_read is False
    assert notif.type == "system"
    assert notif.read_at is None


def test_send_to_admin_reaches_every_admin(admin, client_user):
    second = User(email="admin2@test.local", role=ROLE_ADMIN)
    _db.session.add(second)
    _db.session.commit()

    delivered = notification_service.send_to("admin", title="Heads up", message="m")

    assert delivered == 2
    assert Notification.query.filter_by(user_id=admin.id).count() == 1
    assert Notification.query.filter_by(user_id=second.id).count() == 1
    assert Notification.query.filter_by(user_id=client_user.id).count() == 0
    assert Notification.query.first().type == "project_update"


def test_send_to_admin_without_admins_is_noop(client_user):
    assert notification_service.send_to("admin", title="Nobody home") == 0
    assert Notification.query.count() == 0


def test_send_to_single_recipient(client_user, controller):
    assert notification_service.send_to("client", title="C", user_id=client_user.id) == 1
    assert notification_service.send_to("controller", title="K", user_id=controller.id) == 1
    assert notification_service.send_to("controller", title="K", user_id=None) == 0


def test_unknown_recipient_class(client_user):
    with pytest.raises(ValueError):
        notification_service.resolve_recipients("everyone")
    assert notification_service.send_to("everyone", title="x") == 0


def test_dispatch_without_controller_notifies_admins_and_client(admin, client_user):
    event = ProjectEvent(kind="deleted", project_id=7, project_title="Old Site", client_id=client_user.id)

    delivered = notification_service.dispatch_project_event(event)

    assert delivered == 2
    client_notif = Notification.query.filter_by(user_id=client_user.id).one()
    assert client_notif.title == "Project Deleted"
    assert client_notif.message == 'Your project "Old Site" has been deleted.'


def test_dispatch_survives_one_failed_recipient(admin, client_user, controller):
    real_create = notification_service.create_notification

    def flaky(**kwargs):
        if kwargs["user_id"] == client_user.id:
            raise _db_error()
        return real_create(**kwargs)

    event = ProjectEvent(kind="progress", project_id=1, project_title="App",
                         client_id=client_user.id, controller_id=controller.id)
    with patch.object(notification_service, "create_notification", side_effect=flaky):
        delivered = notification_service.dispatch_project_event(event)

    assert delivered == 2
    assert Notification.query.filter_by(user_id=client_user.id).count() == 0
    assert Notification.query.filter_by(user_id=controller.id).count() == 1


# ═════════════════════════════════════════════════════════════════════════
# Broadcast
# ═════════════════════════════════════════════════════════════════════════


def test_broadcast_to_all_active_users(admin, controller, client_user):
    inactive = User(email="gone@test.local", role="client", is_active=False)
    _db.session.add(inactive)
    _db.session.commit()

    result = notification_service.broadcast(title="Maintenance", message="Tonight")

    assert result == {
        "message": "Broadcast notification sent successfully",
        "delivered": 3,
        "failed": 0,
        "broadcast_to_all": True,
    }
    assert Notification.query.filter_by(user_id=inactive.id).count() == 0
    assert {n.type for n in Notification.query.all()} == {"announcement"}


def test_broadcast_to_explicit_targets_deduplicates(client_user, other_client, controller):
    result = notification_service.broadcast(
        title="Targeted", target_users=[client_user.id, other_client.id, client_user.id],
    )

    assert result["delivered"] == 2
    assert result["broadcast_to_all"] is False
    assert Notification.query.filter_by(user_id=controller.id).count() == 0


def test_broadcast_isolates_per_recipient_failures(client_user, other_client, controller):
    real_create = notification_service.create_notification

    def flaky(**kwargs):
        if kwargs["user_id"] == other_client.id:
            raise _db_error()
        return real_create(**kwargs)

    with patch.object(notification_service, "create_notification", side_effect=flaky):
        result = notification_service.broadcast(
            title="News", target_users=[client_user.id, other_client.id, controller.id],
        )

    assert result["delivered"] == 2
    assert result["failed"] == 1
    assert Notification.query.filter_by(user_id=client_user.id).count() == 1
    assert Notification.query.filter_by(user_id=controller.id).count() == 1
    assert Notification.query.filter_by(user_id=other_client.id).count() == 0


def test_broadcast_audience_failure_propagates(admin):
    with patch.object(notification_service, "active_user_ids", side_effect=_db_error()):
        with pytest.raises(OperationalError):
            notification_service.broadcast(title="x")


def test_broadcast_for_rejects_clients(client_user, controller):
    with pytest.raises(ForbiddenError, match="Clients cannot broadcast notifications"):
        notification_service.broadcast_for(_req(client_user), title="x")

    result = notification_service.broadcast_for(_req(controller), title="x", target_users=[controller.id])
    assert result["delivered"] == 1


# ═════════════════════════════════════════════════════════════════════════
# Targeted send
# ═════════════════════════════════════════════════════════════════════════


def test_send_to_user_rules(admin, controller, client_user, other_client, make_project):
    make_project(client_user, controller)

    with pytest.raises(ForbiddenError, match="Clients cannot send notifications"):
        notification_service.send_to_user(_req(client_user), user_id=client_user.id, title="x")
    with pytest.raises(ForbiddenError, match="Controllers can only send notifications"):
        notification_service.send_to_user(_req(controller), user_id=other_client.id, title="x")
    with pytest.raises(ValidationError, match="User ID is required"):
        notification_service.send_to_user(_req(admin), user_id=None, title="x")

    notif = notification_service.send_to_user(_req(controller), user_id=client_user.id, title="Review ready")
    assert notif.user_id == client_user.id
    assert notif.title == "Review ready"


# ═════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════


def test_list_for_user_newest_first(client_user, other_client):
    first, second = _seed(client_user, count=2)
    _seed(other_client)

    items = notification_service.list_for_user(client_user.id)

    assert [n.id for n in items] == [second.id, first.id]


def test_list_for_user_degrades_on_storage_error(client_user):
    _seed(client_user)
    with patch("sqlalchemy.orm.Query.all", side_effect=_db_error()):
        assert notification_service.list_for_user(client_user.id) == []


def test_paginate_for_user(client_user):
    _seed(client_user, count=15)

    page2 = notification_service.paginate_for_user(client_user.id, page=2, limit=10)

    assert page2["page"] == 2
    assert page2["limit"] == 10
    assert page2["total"] == 15
    assert page2["total_pages"] == 2
    assert len(page2["data"]) == 5
    assert page2["data"][0]["title"] == "Hello 4"


def test_paginate_empty_inbox(client_user):
    result = notification_service.paginate_for_user(client_user.id)

    assert result == {"data": [], "page": 1, "limit": 10, "total": 0, "total_pages": 0}


def test_get_for_user_is_owner_scoped(client_user, other_client):
    (notif,) = _seed(client_user)

    assert notification_service.get_for_user(notif.id, client_user.id).id == notif.id
    with pytest.raises(NotFoundError):
        notification_service.get_for_user(notif.id, other_client.id)


def test_unread_count_and_stats(client_user):
    _seed(client_user, count=3)
    _seed(client_user, count=2, title="Old", is_read=True)

    assert notification_service.unread_count(client_user.id) == 3
    assert notification_service.unread_count_for(_req(client_user), client_user.id) == {"unread_count": 3}
    assert notification_service.notification_stats(client_user.id) == {"total": 5, "unread": 3, "read": 2}


def test_stats_for_empty_inbox(client_user):
    assert notification_service.notification_stats(client_user.id) == {"total": 0, "unread": 0, "read": 0}


def test_unread_count_degrades_to_zero(client_user):
    _seed(client_user)
    with patch("sqlalchemy.orm.Query.count", side_effect=_db_error()):
        assert notification_service.unread_count(client_user.id) == 0


def test_notifications_for_applies_target_rules(admin, controller, client_user, other_client, make_project):
    make_project(client_user, controller)
    _seed(client_user)

    assert len(notification_service.notifications_for(_req(admin), client_user.id)) == 1
    assert len(notification_service.notifications_for(_req(controller), client_user.id)) == 1
    with pytest.raises(ForbiddenError):
        notification_service.notifications_for(_req(controller), other_client.id)
    with pytest.raises(ForbiddenError, match="Clients can only view their own notifications"):
        notification_service.notifications_for(_req(other_client), client_user.id)


def test_list_all_is_admin_only(admin, controller, client_user):
    _seed(client_user)
    _seed(controller)

    assert len(notification_service.list_all(_req(admin))) == 2
    with pytest.raises(ForbiddenError, match="Only admins can view all notifications"):
        notification_service.list_all(_req(controller))


# ═════════════════════════════════════════════════════════════════════════
# Read-state and deletion
# ═════════════════════════════════════════════════════════════════════════


def test_mark_read_manager_path(admin, controller, client_user, other_client, make_project):
    make_project(client_user, controller)
    (mine,) = _seed(client_user)
    (theirs,) = _seed(other_client)

    updated = notification_service.mark_read(mine.id, _req(controller))
    assert updated.is_read is True
    assert updated.read_at is not None

    with pytest.raises(ForbiddenError):
        notification_service.mark_read(theirs.id, _req(controller))
    with pytest.raises(NotFoundError):
        notification_service.mark_read(9999, _req(admin))


def test_client_acknowledgement_is_logged_for_admins(client_user, caplog):
    (notif,) = _seed(client_user)

    with caplog.at_level(logging.INFO, logger="agencyflow.services.notification_service"):
        notification_service.mark_read_for_user(notif.id, _req(client_user))

    assert any(
        r.getMessage().startswith(f"Admin notification: user={client_user.id}") for r in caplog.records
    )


def test_mark_read_for_user_rejects_foreign_notification(client_user, other_client):
    (notif,) = _seed(other_client)
    with pytest.raises(NotFoundError):
        notification_service.mark_read_for_user(notif.id, _req(client_user))


def test_mark_all_read(admin, client_user, other_client):
    _seed(client_user, count=3)
    _seed(other_client)

    result = notification_service.mark_all_read(_req(client_user))

    assert result == {"message": "Marked 3 notifications as read", "count": 3}
    assert notification_service.unread_count(client_user.id) == 0
    assert notification_service.unread_count(other_client.id) == 1
    assert notification_service.mark_all_read(_req(client_user))["count"] == 0

    with pytest.raises(ForbiddenError):
        notification_service.mark_all_read(_req(client_user), user_id=other_client.id)
    assert notification_service.mark_all_read(_req(admin), user_id=other_client.id)["count"] == 1


def test_delete_notification_manager_path(admin, client_user):
    (notif,) = _seed(client_user)

    assert notification_service.delete_notification(notif.id, _req(admin)) == {
        "message": "Notification deleted successfully", "deleted": True,
    }
    assert notification_service.delete_notification(notif.id, _req(admin)) == {
        "message": "Notification not found", "deleted": False,
    }


def test_delete_for_user(client_user, other_client):
    (notif,) = _seed(client_user)

    with pytest.raises(NotFoundError):
        notification_service.delete_for_user(notif.id, _req(other_client))
    assert notification_service.delete_for_user(notif.id, _req(client_user))["deleted"] is True
    assert _db.session.get(Notification, notif.id) is None


def test_delete_all_for_user(admin, client_user, other_client):
    _seed(client_user, count=4)
    _seed(other_client)

    assert notification_service.delete_all_for_user(_req(client_user)) == {
        "message": "4 notifications deleted successfully", "count": 4,
    }
    assert notification_service.delete_all_for_user(_req(client_user)) == {
        "message": "No notifications found for user", "count": 0,
    }
    assert Notification.query.filter_by(user_id=other_client.id).count() == 1
    with pytest.raises(ForbiddenError, match="Clients cannot delete other users' notifications"):
        notification_service.delete_all_for_user(_req(client_user), user_id=other_client.id)


@pytest.mark.parametrize("operation, target, event_type", [
    (notification_service.mark_all_read, "sqlalchemy.orm.Query.update", "notification.mark_all_read_failed"),
    (notification_service.delete_all_for_user, "sqlalchemy.orm.Query.delete", "notification.delete_all_failed"),
])
def test_bulk_write_failure_rolls_back_and_logs(client_user, caplog, operation, target, event_type):
    _seed(client_user, count=2)

    with caplog.at_level(logging.ERROR, logger="agencyflow.services.notification_service"):
        with patch(target, side_effect=_db_error()):
            with pytest.raises(OperationalError):
                operation(_req(client_user))

    assert any(getattr(r, "event_type", None) == event_type for r in caplog.records)
    assert Notification.query.filter_by(user_id=client_user.id, is_read=False).count() == 2
