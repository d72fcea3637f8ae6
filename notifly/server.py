"""
notifly server entrypoint.

bootstrap() reads env vars into the shared state module (once per process);
create_app() builds the Flask app, registers blueprints and binds the
WebSocket endpoint.

Environment:
  NOTIFLY_SECRET_KEY            Flask session signing key (random if unset)
  NOTIFLY_BROADCAST_FORMAT      format tag broadcast messages must carry
  NOTIFLY_HORIZONTAL_ALIGNMENT  left | center | right
  NOTIFLY_VERTICAL_ALIGNMENT    top | bottom
  NOTIFLY_LOG_LEVEL             DEBUG | INFO | WARNING | ERROR
  NOTIFLY_PORT                  HTTP port (default 8000)
"""
import logging
import os
import secrets

from flask import Flask

from notifly import state
from notifly.models import User
from notifly.routes import notifications as notifications_bp
from notifly.routes import settings as settings_bp
from notifly.routes import ws as ws_bp

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
log = logging.getLogger("notifly.server")


def header_principal(request):
    """Default principal loader: trust an X-User-Id header set by the auth proxy."""
    user_id = request.headers.get("X-User-Id", "").strip()
    return User(user_id) if user_id else None


def bootstrap():
    """Load runtime config from the environment into state. Call once at startup."""
    state.BROADCAST_FORMAT = os.environ.get("NOTIFLY_BROADCAST_FORMAT", "filament")
    state.LOG_LEVEL = os.environ.get("NOTIFLY_LOG_LEVEL", "INFO").upper()
    state.settings.log_level = state.LOG_LEVEL
    state.configure_alignment(
        os.environ.get("NOTIFLY_HORIZONTAL_ALIGNMENT", "right"),
        os.environ.get("NOTIFLY_VERTICAL_ALIGNMENT", "top"),
    )
    if state.principal_loader is None:
        state.principal_loader = header_principal
    settings_bp.apply_log_level(state.LOG_LEVEL)
    log.info("Alignment %s/%s, broadcast format %r",
             state.alignment.horizontal, state.alignment.vertical, state.BROADCAST_FORMAT)


def create_app(secret_key: str | None = None) -> Flask:
    app = Flask(__name__)

    key = secret_key or os.environ.get("NOTIFLY_SECRET_KEY", "")
    if not key:
        key = secrets.token_hex(32)
        log.warning("NOTIFLY_SECRET_KEY not set; sessions will not survive a restart")
    app.secret_key = key

    app.register_blueprint(notifications_bp.bp)
    app.register_blueprint(settings_bp.bp)
    ws_bp.sock.init_app(app)
    return app


# ── Main ──────────────────────────────────────────────────────

if __name__ == "__main__":
    bootstrap()
    port = int(os.environ.get("NOTIFLY_PORT", "8000"))
    log.info("Starting notifly on port %d", port)
    create_app().run(host="0.0.0.0", port=port)
