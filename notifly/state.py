"""
Shared runtime state for the notifly server.

Config constants are set once at startup by notifly/server.py and read by
routes at call time. Toast alignment is process-wide and write-once: call
configure_alignment() during startup, read state.alignment afterwards.
"""
import threading
from dataclasses import dataclass
from typing import Any, Callable

# ── Runtime config (set by server.py at startup) ─────────────
BROADCAST_FORMAT: str = "filament"
LOG_LEVEL:        str = "INFO"

# request -> principal (or None when unauthenticated); replaced by server.py
principal_loader: Callable[[Any], Any] | None = None

# (session id, event type, payload) -> None; called for frames clients send back
client_event_hook: Callable[[str, str, dict], None] | None = None


@dataclass
class Settings:
    """Runtime-adjustable settings (exposed on /settings)."""
    log_level: str = "INFO"

    def to_dict(self):
        return {
            "log_level": self.log_level,
            "broadcast_format": BROADCAST_FORMAT,
            "horizontal_alignment": alignment.horizontal,
            "vertical_alignment": alignment.vertical,
        }


settings: Settings = Settings()


# ── Alignment ─────────────────────────────────────────────────

HORIZONTAL_ALIGNMENTS = ("left", "center", "right")
VERTICAL_ALIGNMENTS   = ("top", "bottom")


@dataclass(frozen=True)
class Alignment:
    horizontal: str = "right"
    vertical: str = "top"


alignment: Alignment = Alignment()
_alignment_configured = False
_alignment_lock = threading.Lock()


def configure_alignment(horizontal: str = "right", vertical: str = "top") -> Alignment:
    """Set where toasts stack on screen. Allowed once per process."""
    global alignment, _alignment_configured
    if horizontal not in HORIZONTAL_ALIGNMENTS:
        raise ValueError(f"horizontal alignment must be one of {HORIZONTAL_ALIGNMENTS}")
    if vertical not in VERTICAL_ALIGNMENTS:
        raise ValueError(f"vertical alignment must be one of {VERTICAL_ALIGNMENTS}")
    with _alignment_lock:
        if _alignment_configured:
            raise RuntimeError("alignment is already configured")
        alignment = Alignment(horizontal, vertical)
        _alignment_configured = True
    return alignment
