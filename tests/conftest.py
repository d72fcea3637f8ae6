import pytest

from notifly import session as session_mod
from notifly import state
from notifly.broadcast import hub
from notifly.server import create_app


class RecordingSubscriber:
    """Stands in for a live ServerConnection on the hub."""

    def __init__(self):
        self.frames = []

    def push(self, msg_type, payload=None, channel=None):
        self.frames.append((msg_type, payload, channel))


@pytest.fixture(autouse=True)
def _reset_state(monkeypatch):
    monkeypatch.setattr(state, "alignment", state.Alignment())
    monkeypatch.setattr(state, "_alignment_configured", False)
    monkeypatch.setattr(state, "BROADCAST_FORMAT", "filament")
    monkeypatch.setattr(state, "principal_loader", None)
    monkeypatch.setattr(state, "client_event_hook", None)
    monkeypatch.setattr(state, "settings", state.Settings())
    monkeypatch.setattr(hub, "_subscribers", {})
    monkeypatch.setattr(session_mod, "_queues", {})


@pytest.fixture
def app():
    return create_app(secret_key="test-secret")


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def subscriber():
    return RecordingSubscriber()
