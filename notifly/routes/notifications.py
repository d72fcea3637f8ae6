import logging

from flask import Blueprint, request, jsonify

from notifly import state
from notifly.broadcast import channel_for
from notifly.models import MissingFieldError, Notification
from notifly.notifications import broadcast, close_notification, push_live, send_to_session
from notifly.session import current_session_id, current_session_queue

log = logging.getLogger("notifly.routes.notifications")

bp = Blueprint("notifications", __name__)

DELIVERY_MODES = ("session", "live", "broadcast")


def current_principal():
    if state.principal_loader is None:
        return None
    return state.principal_loader(request)


@bp.route("/notifications/pull", methods=["POST"])
def pull_notifications():
    records = current_session_queue().drain()
    return jsonify({"notifications": records})


@bp.route("/notifications", methods=["POST"])
def send_notification():
    data = request.get_json(silent=True) or {}
    delivery = data.get("delivery", "session")
    if delivery not in DELIVERY_MODES:
        return jsonify({"error": f"delivery must be one of {DELIVERY_MODES}"}), 400

    try:
        notification = Notification.from_dict(data.get("notification"))
    except (MissingFieldError, TypeError, ValueError, OverflowError) as exc:
        return jsonify({"error": str(exc)}), 400

    sid = current_session_id()
    if delivery == "session":
        delivered = send_to_session(notification, sid)
    elif delivery == "live":
        delivered = push_live(notification, sid)
    else:
        channel = channel_for(current_principal())
        if not channel:
            return jsonify({"error": "broadcast needs an authenticated user"}), 400
        requested = data.get("channel")
        if requested and requested != channel:
            log.warning("Refused broadcast to %r from principal channel %r", requested, channel)
            return jsonify({"error": "broadcast is limited to the caller's own channel"}), 403
        delivered = broadcast(notification, channel)

    return jsonify({"id": notification.id, "delivery": delivery, "delivered": delivered})


@bp.route("/notifications/<notification_id>", methods=["DELETE"])
def delete_notification(notification_id):
    delivered = close_notification(notification_id, current_session_id())
    return jsonify({"ok": True, "delivered": delivered})


@bp.route("/notifications/channel")
def broadcast_channel():
    return jsonify({"channel": channel_for(current_principal())})
