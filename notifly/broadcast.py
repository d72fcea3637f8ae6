"""
Broadcast channels: naming and in-process fan-out.

A principal listens on one channel. Objects may name their own channel by
defining receives_broadcast_notifications_on(); otherwise the name is the
principal's dotted class path plus its key, e.g. "notifly.models.User.42".

BroadcastHub fans a frame out to every subscriber of a channel name.
Subscribers are anything with push(msg_type, payload, channel=...), in
practice channel.ServerConnection.
"""
import logging
import threading

log = logging.getLogger("notifly.broadcast")


def principal_key(principal) -> str:
    if hasattr(principal, "get_key"):
        return str(principal.get_key())
    return str(getattr(principal, "id"))


def channel_for(principal) -> str | None:
    """Broadcast channel name for principal, or None when unauthenticated."""
    if principal is None:
        return None
    custom = getattr(principal, "receives_broadcast_notifications_on", None)
    if callable(custom):
        return custom()
    cls = type(principal)
    return f"{cls.__module__}.{cls.__qualname__}.{principal_key(principal)}"


def session_channel(sid: str) -> str:
    """Private channel for live events addressed to one session."""
    return f"session.{sid}"


class BroadcastHub:

    def __init__(self):
        self._subscribers: dict[str, list] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str, subscriber):
        with self._lock:
            subs = self._subscribers.setdefault(channel, [])
            if subscriber not in subs:
                subs.append(subscriber)
        log.debug("Subscribed to %s", channel)

    def unsubscribe(self, channel: str, subscriber):
        with self._lock:
            subs = self._subscribers.get(channel, [])
            if subscriber in subs:
                subs.remove(subscriber)
            if not subs:
                self._subscribers.pop(channel, None)

    def unsubscribe_all(self, subscriber):
        with self._lock:
            channels = list(self._subscribers)
        for channel in channels:
            self.unsubscribe(channel, subscriber)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))

    def publish(self, channel: str, msg_type: str, payload: dict) -> int:
        """Push a frame to every subscriber of channel. Returns how many accepted it."""
        with self._lock:
            subs = list(self._subscribers.get(channel, []))
        delivered = 0
        for sub in subs:
            try:
                sub.push(msg_type, payload, channel=channel)
                delivered += 1
            except RuntimeError as exc:
                log.warning("Dropping %s on %s for a dead subscriber: %s", msg_type, channel, exc)
                self.unsubscribe(channel, sub)
        log.debug("Published %s on %s to %d subscriber(s)", msg_type, channel, delivered)
        return delivered


hub = BroadcastHub()
