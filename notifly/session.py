"""
Session-scoped notification queues.

A notification sent during a request is parked in the sender's session until
the client drains it. drain() is an atomic read-and-clear: a second drain
with no push in between returns [].

  MemorySessionQueue  server side, one per session id (see session_queue())
  HttpSessionQueue    client side, drains the server queue over HTTP
"""
import logging
import threading
import uuid
from typing import Protocol

import requests

log = logging.getLogger("notifly.session")

SESSION_ID_KEY = "notifly.sid"


class SessionQueue(Protocol):
    def push(self, record: dict) -> None: ...

    def drain(self) -> list[dict]: ...


class MemorySessionQueue:
    """Thread-safe FIFO of serialized notifications."""

    def __init__(self):
        self._records: list[dict] = []
        self._lock = threading.Lock()

    def push(self, record: dict):
        with self._lock:
            self._records.append(record)

    def drain(self) -> list[dict]:
        with self._lock:
            records, self._records = self._records, []
        return records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


# ── Server-side registry ──────────────────────────────────────

_queues: dict[str, MemorySessionQueue] = {}
_queues_lock = threading.Lock()


def session_queue(sid: str) -> MemorySessionQueue:
    """Return (creating on first use) the queue for session id sid."""
    with _queues_lock:
        queue = _queues.get(sid)
        if queue is None:
            queue = _queues[sid] = MemorySessionQueue()
        return queue


def discard_session_queue(sid: str):
    with _queues_lock:
        _queues.pop(sid, None)


def current_session_id() -> str:
    """Session id of the current Flask request, assigned on first use."""
    from flask import session
    sid = session.get(SESSION_ID_KEY)
    if not sid:
        sid = uuid.uuid4().hex
        session[SESSION_ID_KEY] = sid
    return sid


def current_session_queue() -> MemorySessionQueue:
    return session_queue(current_session_id())


# ── Client side ───────────────────────────────────────────────

class HttpSessionQueue:
    """
    Drains the caller's server-side queue via POST /notifications/pull.

    The requests.Session carries the session cookie, so it must be the same
    session the WebSocket channel authenticates with.
    """

    def __init__(self, base_url: str, http: requests.Session | None = None,
                 timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout

    def push(self, record: dict):
        resp = self._post("/notifications",
                          json={"notification": record, "delivery": "session"})
        log.debug("Queued notification %s on server", resp.get("id"))

    def drain(self) -> list[dict]:
        records = self._post("/notifications/pull").get("notifications") or []
        if not isinstance(records, list):
            raise RuntimeError("pull returned a malformed notification list")
        log.debug("Drained %d notification(s) from session", len(records))
        return records

    def _post(self, path: str, **kwargs) -> dict:
        try:
            resp = self.http.post(f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise RuntimeError(f"session request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise RuntimeError(f"session request failed: HTTP {resp.status_code}")
        return resp.json() or {}
