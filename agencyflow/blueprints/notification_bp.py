"""
AgencyFlow Project Management Platform
Notification Blueprint: inbox, read-state and manager endpoints.

Own inbox (any authenticated user):
    GET     /api/v1/notifications                      paginated inbox (?page=&limit=)
    GET     /api/v1/notifications/<nid>                single notification
    GET     /api/v1/notifications/unread-count         own unread count
    GET     /api/v1/notifications/stats                own total/unread/read
    PATCH   /api/v1/notifications/<nid>/read           mark own as read
    PATCH   /api/v1/notifications/read-all             mark all read (own, or body.user_id)
    DELETE  /api/v1/notifications/<nid>                delete own
    DELETE  /api/v1/notifications                      delete all (own, or ?user_id=)

Manager endpoints (admin / controller, target rule applies):
    GET     /api/v1/notifications/all                  every notification (admin)
    GET     /api/v1/notifications/user/<uid>           a user's notifications
    GET     /api/v1/notifications/user/<uid>/unread-count
    PATCH   /api/v1/notifications/manage/<nid>/read    mark any permitted notification read
    DELETE  /api/v1/notifications/manage/<nid>         delete any permitted notification
    POST    /api/v1/notifications/send                 targeted send
    POST    /api/v1/notifications/broadcast            broadcast (rate limited)
"""

from flask import Blueprint, current_app, jsonify, request

from agencyflow import limiter
from agencyflow.blueprints import requester_required
from agencyflow.models.notification import (
    NOTIFICATION_TYPE_ANNOUNCEMENT,
    NOTIFICATION_TYPE_SYSTEM,
    NOTIFICATION_TYPES,
)
from agencyflow.services import notification_service
from agencyflow.utils.errors import E, api_error, register_service_error_handlers
from agencyflow.utils.helpers import parse_int, parse_pagination

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1/notifications")
register_service_error_handlers(notification_bp)


def _broadcast_limit():
    return current_app.config.get("BROADCAST_RATE_LIMIT", "10 per minute")


def _type_error(notification_type):
    if notification_type not in NOTIFICATION_TYPES:
        return api_error(
            E.VALIDATION_INVALID,
            f"Unknown notification type '{notification_type}'",
            details={"allowed": sorted(NOTIFICATION_TYPES)},
        )
    return None


# ═════════════════════════════════════════════════════════════════════════
# Own inbox
# ═════════════════════════════════════════════════════════════════════════


@notification_bp.route("", methods=["GET"])
def list_notifications():
    requester, err = requester_required()
    if err:
        return err
    page, limit = parse_pagination(
        request.args, default_limit=current_app.config.get("NOTIFICATION_PAGE_SIZE", 10),
    )
    return jsonify(notification_service.paginate_for_user(requester.id, page, limit))


@notification_bp.route("/<int:nid>", methods=["GET"])
def get_notification(nid):
    requester, err = requester_required()
    if err:
        return err
    return jsonify(notification_service.get_for_user(nid, requester.id).to_dict())


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    requester, err = requester_required()
    if err:
        return err
    return jsonify(notification_service.unread_count_for(requester, requester.id))


@notification_bp.route("/stats", methods=["GET"])
def stats():
    requester, err = requester_required()
    if err:
        return err
    return jsonify(notification_service.notification_stats(requester.id))


@notification_bp.route("/<int:nid>/read", methods=["PATCH"])
def mark_read(nid):
    requester, err = requester_required()
    if err:
        return err
    notif = notification_service.mark_read_for_user(nid, requester)
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["PATCH"])
def mark_all_read():
    requester, err = requester_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    user_id = parse_int(data.get("user_id"), "user_id")
    return jsonify(notification_service.mark_all_read(requester, user_id))


@notification_bp.route("/<int:nid>", methods=["DELETE"])
def delete_notification(nid):
    requester, err = requester_required()
    if err:
        return err
    return jsonify(notification_service.delete_for_user(nid, requester))


@notification_bp.route("", methods=["DELETE"])
def delete_all_notifications():
    requester, err = requester_required()
    if err:
        return err
    user_id = parse_int(request.args.get("user_id"), "user_id")
    return jsonify(notification_service.delete_all_for_user(requester, user_id))


# ═════════════════════════════════════════════════════════════════════════
# Manager endpoints
# ═════════════════════════════════════════════════════════════════════════


@notification_bp.route("/all", methods=["GET"])
def list_all_notifications():
    requester, err = requester_required()
    if err:
        return err
    items = notification_service.list_all(requester)
    return jsonify({"items": [n.to_dict() for n in items], "total": len(items)})


@notification_bp.route("/user/<int:uid>", methods=["GET"])
def list_user_notifications(uid):
    requester, err = requester_required()
    if err:
        return err
    items = notification_service.notifications_for(requester, uid)
    return jsonify({"items": [n.to_dict() for n in items], "total": len(items)})


@notification_bp.route("/user/<int:uid>/unread-count", methods=["GET"])
def user_unread_count(uid):
    requester, err = requester_required()
    if err:
        return err
    return jsonify(notification_service.unread_count_for(requester, uid))


@notification_bp.route("/manage/<int:nid>/read", methods=["PATCH"])
def manage_mark_read(nid):
    requester, err = requester_required()
    if err:
        return err
    return jsonify(notification_service.mark_read(nid, requester).to_dict())


@notification_bp.route("/manage/<int:nid>", methods=["DELETE"])
def manage_delete(nid):
    requester, err = requester_required()
    if err:
        return err
    return jsonify(notification_service.delete_notification(nid, requester))


@notification_bp.route("/send", methods=["POST"])
def send_notification():
    """Body: {user_id, title, message?, type?}"""
    requester, err = requester_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}

    title = (data.get("title") or "").strip()
    if not title:
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    notification_type = data.get("type") or NOTIFICATION_TYPE_SYSTEM
    type_err = _type_error(notification_type)
    if type_err:
        return type_err

    notif = notification_service.send_to_user(
        requester,
        user_id=parse_int(data.get("user_id"), "user_id"),
        title=title,
        message=data.get("message", ""),
        notification_type=notification_type,
    )
    return jsonify(notif.to_dict()), 201


@notification_bp.route("/broadcast", methods=["POST"])
@limiter.limit(_broadcast_limit)
def broadcast_notification():
    """Body: {title, message?, type?, target_users?: [user_id, ...]}"""
    requester, err = requester_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}

    title = (data.get("title") or "").strip()
    if not title:
        return api_error(E.VALIDATION_REQUIRED, "title is required")

    target_users = data.get("target_users")
    if target_users is not None and not isinstance(target_users, list):
        return api_error(E.VALIDATION_REQUIRED, "target_users must be a list of user ids")
    notification_type = data.get("type") or NOTIFICATION_TYPE_ANNOUNCEMENT
    type_err = _type_error(notification_type)
    if type_err:
        return type_err

    result = notification_service.broadcast_for(
        requester,
        title=title,
        message=data.get("message", ""),
        notification_type=notification_type,
        target_users=[parse_int(uid, "target_users") for uid in target_users] if target_users else None,
    )
    return jsonify(result), 201
