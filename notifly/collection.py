"""
Ordered, id-keyed store of the notifications currently on screen.

Backed by a plain dict, so iteration follows first-insertion order and
lookup/insert/removal are O(1). put() on an existing id replaces the value
where it already sits; the toast does not jump to the end of the stack.

Iteration and to_list() walk a snapshot, so the channel thread may put or
forget while another thread renders.
"""
import logging
from typing import Iterator

from notifly.models import Notification

log = logging.getLogger("notifly.collection")


class NotificationCollection:

    def __init__(self):
        self._items: dict[str, Notification] = {}

    def put(self, notification_id: str, notification: Notification):
        """Insert, or overwrite in place if the id is already present."""
        if notification_id in self._items:
            log.debug("Replacing notification %s", notification_id)
        self._items[notification_id] = notification

    def has(self, notification_id: str) -> bool:
        return notification_id in self._items

    def get(self, notification_id: str) -> Notification | None:
        return self._items.get(notification_id)

    def forget(self, notification_id: str):
        """Remove by id. Unknown ids are ignored."""
        self._items.pop(notification_id, None)

    def clear(self):
        self._items.clear()

    def ids(self) -> list[str]:
        return list(self._items)

    def values(self) -> list[Notification]:
        return list(self._items.values())

    def to_list(self) -> list[dict]:
        return [n.to_dict() for n in self.values()]

    def __contains__(self, notification_id) -> bool:
        return notification_id in self._items

    def __iter__(self) -> Iterator[Notification]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)
