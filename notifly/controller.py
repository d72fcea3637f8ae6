"""
Client-side coordinator for the toast stack.

NotificationDeliveryController owns the NotificationCollection a client
renders. Notifications reach it three ways:

  initial pull       mount() drains the session queue once
  live events        notificationSent (one record), notificationsSent (re-drain)
  broadcast          handle_broadcast_notification(), filtered on "format"

and leave it through notificationClosed or an action with should_close.

Inbound callbacks run on the channel's receive thread while render() and
trigger_action() are called from the application thread. The collection only
uses single dict operations and reads through snapshots, so no lock is held.
"""
import logging
from typing import Callable

from notifly import state
from notifly.broadcast import channel_for
from notifly.collection import NotificationCollection
from notifly.models import (
    EMIT, MARK_AS_READ, MARK_AS_UNREAD,
    InteractionHandler, MissingFieldError, Notification,
)
from notifly.session import SessionQueue

log = logging.getLogger("notifly.controller")

# outbound event name, payload
Emitter = Callable[[str, dict], None]


class NotificationDeliveryController:

    # wire event name -> method
    listeners = {
        "notificationSent":   "push_notification_from_event",
        "notificationsSent":  "pull_notifications_from_session",
        "notificationClosed": "remove_notification",
    }

    def __init__(self, session: SessionQueue, principal=None,
                 emit: Emitter | None = None, broadcast_format: str | None = None):
        self.session = session
        self.principal = principal
        self.broadcast_format = broadcast_format or state.BROADCAST_FORMAT
        self.notifications = NotificationCollection()
        self._emit = emit

    def mount(self):
        """Start from an empty stack and take whatever the session has queued."""
        self.notifications = NotificationCollection()
        self.pull_notifications_from_session()

    # ── Inbound ───────────────────────────────────────────────

    def pull_notifications_from_session(self):
        for record in self.session.drain():
            self._push_record(record, source="session")

    def push_notification_from_event(self, record: dict):
        self._push_record(record, source="event")

    def handle_broadcast_notification(self, message: dict):
        if not isinstance(message, dict) or message.get("format") != self.broadcast_format:
            log.debug("Ignoring broadcast in foreign format %r",
                      message.get("format") if isinstance(message, dict) else None)
            return
        self._push_record(message, source="broadcast")

    def remove_notification(self, notification_id: str):
        if not self.notifications.has(notification_id):
            return
        self.notifications.forget(notification_id)
        log.debug("Removed notification %s", notification_id)

    def dispatch(self, event: str, payload=None) -> bool:
        """
        Route a named inbound event to its listener.
        Returns False for events this controller doesn't listen to.
        """
        method = self.listeners.get(event)
        if method is None:
            log.debug("No listener for event %r", event)
            return False
        handler = getattr(self, method)
        if event == "notificationsSent":
            handler()
        elif event == "notificationClosed":
            notification_id = payload.get("id") if isinstance(payload, dict) else payload
            if notification_id:
                handler(str(notification_id))
        else:
            handler(payload)
        return True

    def push_notification(self, notification: Notification):
        self.notifications.put(notification.id, notification)

    def _push_record(self, record, source: str):
        try:
            notification = Notification.from_dict(record)
        except (MissingFieldError, TypeError, ValueError, OverflowError) as exc:
            log.warning("Rejected malformed notification from %s: %s", source, exc)
            return
        self.push_notification(notification)
        log.debug("Added notification %s from %s", notification.id, source)

    # ── Outbound ──────────────────────────────────────────────

    def trigger_action(self, notification_id: str, action_name: str) -> InteractionHandler | None:
        """
        Run what a click on action_name does for the given notification.

        Read/unread marks and emitted events are sent outbound; should_close
        then removes the notification. Returns the resolved handler so the
        caller can perform client-only behavior (opening a URL).
        """
        notification = self.notifications.get(notification_id)
        if notification is None:
            log.debug("Action %r on unknown notification %s", action_name, notification_id)
            return None
        action = notification.find_action(action_name)
        if action is None:
            log.warning("Notification %s has no action %r", notification_id, action_name)
            return None

        handler = action.get_interaction_handler()
        if handler is None:
            return None

        if handler.kind == MARK_AS_READ:
            self._send("markedNotificationAsRead", {"id": notification_id})
        elif handler.kind == MARK_AS_UNREAD:
            self._send("markedNotificationAsUnread", {"id": notification_id})
        elif handler.kind == EMIT:
            self._send("actionEmitted", {
                "notification": notification_id,
                "action": action.name,
                "event": handler.event,
                "data": handler.event_data,
                "direction": handler.emit_direction,
                "component": handler.emit_to_component,
            })

        if action.should_close:
            self.remove_notification(notification_id)
        return handler

    def close(self, notification_id: str):
        self.remove_notification(notification_id)

    def _send(self, event: str, payload: dict):
        if self._emit is None:
            log.debug("No outbound emitter; dropping %s", event)
            return
        try:
            self._emit(event, payload)
        except RuntimeError as exc:
            log.warning("Could not send %s: %s", event, exc)

    # ── Derived state ─────────────────────────────────────────

    def get_broadcast_channel(self) -> str | None:
        return channel_for(self.principal)

    def render(self) -> dict:
        return {
            "notifications": self.notifications.to_list(),
            "horizontalAlignment": state.alignment.horizontal,
            "verticalAlignment": state.alignment.vertical,
            "broadcastChannel": self.get_broadcast_channel(),
        }
