"""
Live WebSocket channel between the notifly server and a client session.

The client opens one WebSocket to the server's /ws endpoint after its first
HTTP pull (which assigns the session cookie). The server subscribes the
connection to the session's private channel and, when the client is
authenticated, to the principal's broadcast channel.

Message framing (JSON text frames):

  {"type": "<event>", "payload": {...}}                         live event
  {"type": "broadcast", "channel": "<name>", "payload": {...}}  broadcast

Server -> client types:
  notificationSent        payload is one notification record
  notificationsSent       re-drain the session queue over HTTP
  notificationClosed      payload {"id": "<notification id>"}
  broadcast               payload is an arbitrary message, filtered by "format"
  ping                    keepalive

Client -> server types:
  markedNotificationAsRead / markedNotificationAsUnread   {"id"}
  actionEmitted           {"notification", "action", "event", "data", ...}
  ping                    keepalive
"""
import json
import logging
import threading
import time

import requests
import websocket  # websocket-client
from simple_websocket import ConnectionClosed

log = logging.getLogger("notifly.channel")

_CONNECT_TIMEOUT = 5      # seconds for WS handshake
_RECONNECT_DELAY = (2, 4, 8, 16, 30)   # backoff steps in seconds
_PING_INTERVAL   = 20     # seconds between keepalive pings


def encode_frame(msg_type: str, payload: dict | None = None, channel: str | None = None) -> str:
    msg: dict = {"type": msg_type, "payload": payload or {}}
    if channel:
        msg["channel"] = channel
    return json.dumps(msg)


def decode_frame(raw) -> dict | None:
    """Parse one text frame; None for anything that isn't a JSON object."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not raw:
        return None
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return msg if isinstance(msg, dict) else None


# ── Server side ───────────────────────────────────────────────

class ServerConnection:
    """
    One accepted client WebSocket (a simple_websocket server socket from
    flask-sock). push() may be called from any request thread; run() must
    stay on the flask-sock handler thread, because simple_websocket does not
    support receive() from a different thread.
    """

    def __init__(self, sock, sid: str):
        self._sock = sock
        self.sid = sid
        self._lock = threading.Lock()
        self._open = True

    def push(self, msg_type: str, payload: dict | None = None, channel: str | None = None):
        frame = encode_frame(msg_type, payload, channel)
        with self._lock:
            if not self._open:
                raise RuntimeError(f"connection for session {self.sid} is closed")
            try:
                self._sock.send(frame)
            except Exception as exc:
                self._open = False
                raise RuntimeError(f"send failed: {exc}") from exc

    def close(self, message: str = ""):
        with self._lock:
            self._open = False
        try:
            self._sock.close(message=message or None)
        except Exception as exc:
            log.debug("Close on session %s failed: %s", self.sid, exc)

    def run(self, on_message):
        """Receive until the client disconnects, passing (type, payload) to on_message."""
        while self._open:
            try:
                raw = self._sock.receive()
            except ConnectionClosed as exc:
                log.info("Client channel for session %s closed: %s", self.sid, exc)
                break
            except Exception as exc:
                log.info("Client channel recv error for session %s: %s", self.sid, exc)
                break
            msg = decode_frame(raw)
            if msg is None:
                if raw:
                    log.warning("Channel: bad frame from session %s", self.sid)
                continue
            msg_type = msg.get("type", "")
            if msg_type == "ping":
                continue
            try:
                on_message(msg_type, msg.get("payload") or {})
            except Exception as exc:
                log.warning("Client frame %s raised: %s", msg_type, exc)
        with self._lock:
            self._open = False


# ── Client side ───────────────────────────────────────────────

class NotificationChannel:
    """
    Client end of the live channel: connects to <base_url>/ws, keeps the
    connection alive, reconnects with backoff, and hands every inbound frame
    to the handler registered for its type.

    Inbound handlers all run on the connect_and_maintain() thread.
    """

    def __init__(self, base_url: str, http: requests.Session | None = None,
                 headers: dict | None = None):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.headers = dict(headers or {})
        self.on_connect = None   # called on the channel thread after every (re)connect
        self._ws: websocket.WebSocket | None = None
        self._lock = threading.Lock()
        self._running = True
        self._handlers: dict[str, "callable"] = {}
        self.connected_event = threading.Event()

    # ── Public API ────────────────────────────────────────────

    def register(self, msg_type: str, handler):
        """Register a handler for an incoming message type."""
        self._handlers[msg_type] = handler

    def push(self, msg_type: str, payload: dict):
        """Send a fire-and-forget frame to the server."""
        self._send_raw(encode_frame(msg_type, payload))

    def close(self):
        self._running = False
        with self._lock:
            if self._ws:
                try:
                    self._ws.close()
                except Exception as exc:
                    log.debug("Channel close failed: %s", exc)
                self._ws = None
        self.connected_event.clear()

    def is_connected(self) -> bool:
        return self.connected_event.is_set()

    def connect_and_maintain(self):
        """
        Blocking loop: connect and keep the connection alive, reconnecting on
        failure. Run in a daemon thread.
        """
        attempt = 0
        while self._running:
            try:
                self._connect()
            except Exception as exc:
                if not self._running:
                    return
                delay = _RECONNECT_DELAY[min(attempt, len(_RECONNECT_DELAY) - 1)]
                log.warning("Channel to %s: connect failed (%s), retrying in %ds",
                            self.base_url, exc, delay)
                attempt += 1
                time.sleep(delay)
                continue

            attempt = 0
            if self.on_connect:
                try:
                    self.on_connect()
                except Exception as exc:
                    log.warning("on_connect hook raised: %s", exc)
            self._recv_loop()

            if not self._running:
                return
            delay = _RECONNECT_DELAY[0]
            log.info("Channel to %s dropped, reconnecting in %ds", self.base_url, delay)
            time.sleep(delay)

    # ── Internals ─────────────────────────────────────────────

    def ws_url(self) -> str:
        url = self.base_url.replace("https://", "wss://").replace("http://", "ws://")
        return url + "/ws"

    def _cookie_header(self) -> str:
        return "; ".join(f"{c.name}={c.value}" for c in self.http.cookies)

    def _connect(self):
        ws = websocket.WebSocket()
        ws.connect(self.ws_url(), timeout=_CONNECT_TIMEOUT,
                   header=self.headers, cookie=self._cookie_header())
        # Clear the handshake timeout or recv() would time out on idle channels.
        ws.settimeout(None)
        with self._lock:
            self._ws = ws
        self.connected_event.set()
        log.info("Notification channel connected to %s", self.base_url)
        threading.Thread(target=self._ping_loop, args=(ws,), daemon=True).start()

    def _recv_loop(self):
        while self._running:
            ws = self._ws
            if ws is None:
                break
            try:
                raw = ws.recv()
            except Exception as exc:
                if self._running:
                    log.info("Channel to %s closed: %s", self.base_url, exc)
                break
            if raw == "":
                # websocket-client returns "" on clean close
                break
            msg = decode_frame(raw)
            if msg is None:
                log.warning("Channel: bad frame from %s", self.base_url)
                continue
            self._dispatch(msg)

        with self._lock:
            self._ws = None
        self.connected_event.clear()

    def _dispatch(self, msg: dict):
        msg_type = msg.get("type", "")
        payload  = msg.get("payload")
        if msg_type == "ping":
            return
        handler = self._handlers.get(msg_type)
        if handler is None:
            log.debug("No handler for frame type %r", msg_type)
            return
        try:
            handler(payload)
        except Exception as exc:
            log.warning("Handler %s raised: %s", msg_type, exc)

    def _send_raw(self, frame: str):
        with self._lock:
            ws = self._ws
        if ws is None:
            raise RuntimeError(f"channel to {self.base_url} is not connected")
        try:
            ws.send(frame)
        except Exception as exc:
            with self._lock:
                self._ws = None
            raise RuntimeError(f"channel send failed: {exc}") from exc

    def _ping_loop(self, ws):
        """Keep one connection alive; exits once that connection is replaced or dropped."""
        while self._running and self._ws is ws:
            time.sleep(_PING_INTERVAL)
            if not self._running or self._ws is not ws:
                break
            try:
                self.push("ping", {})
            except RuntimeError:
                break


# ── Wiring ────────────────────────────────────────────────────

def register_controller(ch: NotificationChannel, controller):
    """Route every inbound frame type to the controller."""
    for event in controller.listeners:
        ch.register(event, lambda payload, _event=event: controller.dispatch(_event, payload))
    ch.register("broadcast", controller.handle_broadcast_notification)


def open_client(base_url: str, user_id: str | None = None,
                http: requests.Session | None = None):
    """
    Build a client session: drain queued notifications once, then start the
    live channel in a daemon thread. Returns (controller, channel).
    """
    from notifly.controller import NotificationDeliveryController
    from notifly.models import User
    from notifly.session import HttpSessionQueue

    http = http or requests.Session()
    headers = {"X-User-Id": user_id} if user_id else {}
    http.headers.update(headers)

    ch = NotificationChannel(base_url, http=http, headers=headers)
    controller = NotificationDeliveryController(
        HttpSessionQueue(base_url, http=http),
        principal=User(user_id) if user_id else None,
        emit=ch.push,
    )
    controller.mount()
    register_controller(ch, controller)
    ch.on_connect = controller.pull_notifications_from_session

    t = threading.Thread(target=ch.connect_and_maintain, daemon=True,
                         name="notifly-channel")
    t.start()
    return controller, ch
