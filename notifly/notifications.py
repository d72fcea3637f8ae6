"""
Backend helpers for sending notifications.

Any server module can call one of these to surface a toast:

  send_to_session()   queue for the session, announce with notificationsSent
  push_live()         deliver one record straight to the session's open channel
  broadcast()         deliver to every connection listening on a principal channel
  close_notification() tell the session's clients to drop a toast

Only send_to_session() survives a page load; the others reach clients that
are connected right now or not at all.
"""
import logging

from notifly import state
from notifly.broadcast import hub, session_channel
from notifly.models import Notification
from notifly.session import session_queue

log = logging.getLogger("notifly.notifications")


def make_notification(status: str, title: str, body: str = "", **kwargs) -> Notification:
    """
    Build a Notification.

    status: "success" | "warning" | "danger" | "info"
    """
    return Notification(status=status, title=title, body=body or None, **kwargs)


def send_to_session(notification: Notification, sid: str) -> int:
    """Queue for sid and nudge any live channel to pull. Returns channels nudged."""
    session_queue(sid).push(notification.to_dict())
    log.info("Queued notification %s for session %s", notification.id, sid)
    return hub.publish(session_channel(sid), "notificationsSent", {})


def push_live(notification: Notification, sid: str) -> int:
    delivered = hub.publish(session_channel(sid), "notificationSent", notification.to_dict())
    if not delivered:
        log.info("No live channel for session %s; notification %s dropped",
                 sid, notification.id)
    return delivered


def to_broadcast(notification: Notification) -> dict:
    record = notification.to_dict()
    record["format"] = state.BROADCAST_FORMAT
    return record


def broadcast(notification: Notification, channel: str) -> int:
    delivered = hub.publish(channel, "broadcast", to_broadcast(notification))
    log.info("Broadcast notification %s on %s to %d connection(s)",
             notification.id, channel, delivered)
    return delivered


def close_notification(notification_id: str, sid: str) -> int:
    return hub.publish(session_channel(sid), "notificationClosed", {"id": notification_id})
