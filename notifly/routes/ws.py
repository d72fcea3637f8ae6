"""
WebSocket endpoint for live notification channels.

The client connects to /ws with the session cookie it got from its first
pull. The connection is subscribed to the session's private channel (live
events) and, if the request resolves to a principal, to that principal's
broadcast channel. Frames the client sends back (read/unread marks, emitted
action events) are logged and passed to state.client_event_hook.
"""
import logging

from flask import session
from flask_sock import Sock

from notifly import state
from notifly.broadcast import channel_for, hub, session_channel
from notifly.channel import ServerConnection
from notifly.routes.notifications import current_principal
from notifly.session import SESSION_ID_KEY

log = logging.getLogger("notifly.routes.ws")

sock = Sock()   # bound to the Flask app in server.py


def handle_client_event(sid: str, msg_type: str, payload: dict):
    log.info("Session %s sent %s %s", sid, msg_type, payload.get("id") or payload.get("event") or "")
    if state.client_event_hook:
        state.client_event_hook(sid, msg_type, payload)


def serve_connection(ws, sid: str, principal=None):
    """Subscribe ws to its channels and block until it disconnects."""
    conn = ServerConnection(ws, sid)
    channels = [session_channel(sid)]
    broadcast_channel = channel_for(principal)
    if broadcast_channel:
        channels.append(broadcast_channel)
    for ch in channels:
        hub.subscribe(ch, conn)
    log.info("Channel opened for session %s (%s)", sid, ", ".join(channels))
    try:
        conn.run(lambda msg_type, payload: handle_client_event(sid, msg_type, payload))
    finally:
        hub.unsubscribe_all(conn)
        log.info("Channel closed for session %s", sid)


@sock.route("/ws")
def notifications_ws(ws):
    sid = session.get(SESSION_ID_KEY)
    if not sid:
        log.warning("WS connect rejected: no session (pull before connecting)")
        try:
            ws.close(reason=1008, message="no session")
        except Exception as exc:
            log.debug("Close failed: %s", exc)
        return
    serve_connection(ws, sid, principal=current_principal())
