"""HTTP surface of the notification blueprint."""

from agencyflow.models.notification import Notification
from agencyflow.services import notification_service


def _h(user):
    return {"X-User-Id": str(user.id), "X-User-Role": user.role}


def _seed(user, count=1, is_read=False):
    return [
        notification_service.create_notification(user_id=user.id, title=f"N{i}", is_read=is_read)
        for i in range(count)
    ]


# ── Own inbox ────────────────────────────────────────────────────────────


def test_inbox_requires_identity(client):
    assert client.get("/api/v1/notifications").status_code == 401


def test_paginated_inbox(client, client_user, other_client):
    _seed(client_user, count=12)
    _seed(other_client, count=3)

    body = client.get("/api/v1/notifications?page=2&limit=5", headers=_h(client_user)).get_json()

    assert body["page"] == 2
    assert body["limit"] == 5
    assert body["total"] == 12
    assert body["total_pages"] == 3
    assert len(body["data"]) == 5
    assert all(n["user_id"] == client_user.id for n in body["data"])


def test_bad_pagination_args_fall_back(client, client_user):
    _seed(client_user, count=2)

    body = client.get("/api/v1/notifications?page=abc&limit=0", headers=_h(client_user)).get_json()

    assert body["page"] == 1
    assert body["limit"] == 1


def test_get_foreign_notification_is_404(client, client_user, other_client):
    (notif,) = _seed(other_client)

    res = client.get(f"/api/v1/notifications/{notif.id}", headers=_h(client_user))

    assert res.status_code == 404


def test_unread_count_and_stats(client, client_user):
    _seed(client_user, count=2)
    _seed(client_user, count=1, is_read=True)

    assert client.get("/api/v1/notifications/unread-count", headers=_h(client_user)).get_json() == {
        "unread_count": 2,
    }
    assert client.get("/api/v1/notifications/stats", headers=_h(client_user)).get_json() == {
        "total": 3, "unread": 2, "read": 1,
    }


def test_mark_read_and_read_all(client, client_user):
    first, _second, _third = _seed(client_user, count=3)

    res = client.patch(f"/api/v1/notifications/{first.id}/read", headers=_h(client_user))
    assert res.status_code == 200
    assert res.get_json()["is_read"] is True

    res = client.patch("/api/v1/notifications/read-all", headers=_h(client_user))
    assert res.get_json() == {"message": "Marked 2 notifications as read", "count": 2}


def test_client_cannot_read_all_for_someone_else(client, client_user, other_client):
    _seed(other_client)

    res = client.patch(
        "/api/v1/notifications/read-all", json={"user_id": other_client.id}, headers=_h(client_user),
    )

    assert res.status_code == 403
    assert res.get_json()["error"] == "Clients cannot mark other users' notifications as read"


def test_delete_own_and_delete_all(client, client_user):
    first, _second, _third = _seed(client_user, count=3)

    res = client.delete(f"/api/v1/notifications/{first.id}", headers=_h(client_user))
    assert res.get_json() == {"message": "Notification deleted successfully", "deleted": True}

    res = client.delete("/api/v1/notifications", headers=_h(client_user))
    assert res.get_json() == {"message": "2 notifications deleted successfully", "count": 2}
    assert Notification.query.count() == 0


# ── Manager endpoints ────────────────────────────────────────────────────


def test_list_all_is_admin_only(client, admin, controller, client_user):
    _seed(client_user)

    assert client.get("/api/v1/notifications/all", headers=_h(admin)).get_json()["total"] == 1
    assert client.get("/api/v1/notifications/all", headers=_h(controller)).status_code == 403


def test_controller_reads_related_user_only(client, controller, client_user, other_client, make_project):
    make_project(client_user, controller)
    _seed(client_user)
    _seed(other_client)

    related = client.get(f"/api/v1/notifications/user/{client_user.id}", headers=_h(controller))
    unrelated = client.get(f"/api/v1/notifications/user/{other_client.id}", headers=_h(controller))

    assert related.status_code == 200
    assert related.get_json()["total"] == 1
    assert unrelated.status_code == 403
    assert unrelated.get_json()["error"] == (
        "Controllers can only view notifications for users related to their projects"
    )


def test_manager_unread_count(client, admin, client_user):
    _seed(client_user, count=2)

    res = client.get(f"/api/v1/notifications/user/{client_user.id}/unread-count", headers=_h(admin))

    assert res.get_json() == {"unread_count": 2}


def test_manage_mark_read_and_delete(client, admin, client_user):
    (notif,) = _seed(client_user)

    res = client.patch(f"/api/v1/notifications/manage/{notif.id}/read", headers=_h(admin))
    assert res.status_code == 200
    assert res.get_json()["is_read"] is True

    res = client.delete(f"/api/v1/notifications/manage/{notif.id}", headers=_h(admin))
    assert res.get_json()["deleted"] is True

    res = client.delete(f"/api/v1/notifications/manage/{notif.id}", headers=_h(admin))
    assert res.status_code == 200
    assert res.get_json() == {"message": "Notification not found", "deleted": False}


def test_manage_mark_read_missing_is_404(client, admin):
    assert client.patch("/api/v1/notifications/manage/999/read", headers=_h(admin)).status_code == 404


# ── Send / broadcast ─────────────────────────────────────────────────────


def test_send_rules(client, admin, client_user):
    res = client.post(
        "/api/v1/notifications/send", json={"user_id": admin.id, "title": "Hi"}, headers=_h(client_user),
    )
    assert res.status_code == 403
    assert res.get_json()["error"] == "Clients cannot send notifications"

    res = client.post("/api/v1/notifications/send", json={"user_id": client_user.id}, headers=_h(admin))
    assert res.status_code == 400

    res = client.post("/api/v1/notifications/send", json={"title": "Hi"}, headers=_h(admin))
    assert res.status_code == 422

    res = client.post(
        "/api/v1/notifications/send",
        json={"user_id": client_user.id, "title": "Invoice ready", "message": "See portal"},
        headers=_h(admin),
    )
    assert res.status_code == 201
    assert res.get_json()["user_id"] == client_user.id
    assert res.get_json()["type"] == "system"

    res = client.post(
        "/api/v1/notifications/send",
        json={"user_id": client_user.id, "title": "Hi", "type": "spam"},
        headers=_h(admin),
    )
    assert res.status_code == 422
    assert "announcement" in res.get_json()["details"]["allowed"]


def test_broadcast(client, admin, controller, client_user):
    res = client.post("/api/v1/notifications/broadcast", json={"title": "x"}, headers=_h(client_user))
    assert res.status_code == 403

    res = client.post(
        "/api/v1/notifications/broadcast",
        json={"title": "x", "target_users": client_user.id},
        headers=_h(admin),
    )
    assert res.status_code == 400

    res = client.post(
        "/api/v1/notifications/broadcast", json={"title": "Release 2.0", "message": "Live"}, headers=_h(admin),
    )
    assert res.status_code == 201
    assert res.get_json() == {
        "message": "Broadcast notification sent successfully",
        "delivered": 3,
        "failed": 0,
        "broadcast_to_all": True,
    }
