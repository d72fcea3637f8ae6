import logging

import pytest

from notifly import state
from notifly.broadcast import hub, session_channel
from notifly.models import Notification
from notifly.server import header_principal
from notifly.session import SESSION_ID_KEY


def _sid(client) -> str:
    with client.session_transaction() as sess:
        return sess[SESSION_ID_KEY]


def _send(client, delivery="session", **extra):
    notification = Notification(id="n1", title="Saved", status="success").to_dict()
    return client.post("/notifications", json={"notification": notification, "delivery": delivery, **extra})


def test_pull_starts_empty_and_assigns_session(client) -> None:
    resp = client.post("/notifications/pull")

    assert resp.status_code == 200
    assert resp.get_json() == {"notifications": []}
    assert _sid(client)


def test_session_delivery_is_drained_once(client) -> None:
    resp = _send(client)
    assert resp.status_code == 200
    assert resp.get_json() == {"id": "n1", "delivery": "session", "delivered": 0}

    first = client.post("/notifications/pull").get_json()["notifications"]
    second = client.post("/notifications/pull").get_json()["notifications"]

    assert [n["id"] for n in first] == ["n1"]
    assert second == []


def test_session_queues_are_isolated(app, client) -> None:
    _send(client)
    other = app.test_client()

    assert other.post("/notifications/pull").get_json()["notifications"] == []


def test_session_delivery_nudges_live_channel(client, subscriber) -> None:
    client.post("/notifications/pull")
    sid = _sid(client)
    hub.subscribe(session_channel(sid), subscriber)

    resp = _send(client)

    assert resp.get_json()["delivered"] == 1
    assert subscriber.frames == [("notificationsSent", {}, f"session.{sid}")]


def test_live_delivery_pushes_record(client, subscriber) -> None:
    client.post("/notifications/pull")
    hub.subscribe(session_channel(_sid(client)), subscriber)

    _send(client, delivery="live")

    msg_type, payload, _ = subscriber.frames[0]
    assert msg_type == "notificationSent"
    assert payload["id"] == "n1"
    assert payload["title"] == "Saved"


def test_broadcast_to_authenticated_user(client, subscriber, monkeypatch) -> None:
    monkeypatch.setattr(state, "principal_loader", header_principal)
    hub.subscribe("notifly.models.User.7", subscriber)

    resp = _send(client, delivery="broadcast")
    assert resp.status_code == 400

    resp = client.post("/notifications", headers={"X-User-Id": "7"}, json={
        "notification": {"id": "n2", "title": "Hello"}, "delivery": "broadcast"})

    assert resp.get_json()["delivered"] == 1
    msg_type, payload, channel = subscriber.frames[0]
    assert (msg_type, channel) == ("broadcast", "notifly.models.User.7")
    assert payload["format"] == "filament"
    assert payload["id"] == "n2"


def test_broadcast_uses_configured_format(client, subscriber, monkeypatch) -> None:
    monkeypatch.setattr(state, "BROADCAST_FORMAT", "native")
    monkeypatch.setattr(state, "principal_loader", header_principal)
    hub.subscribe("notifly.models.User.3", subscriber)

    resp = client.post("/notifications", headers={"X-User-Id": "3"}, json={
        "notification": {"id": "n1"}, "delivery": "broadcast", "channel": "notifly.models.User.3"})

    assert resp.status_code == 200
    assert subscriber.frames[0][1]["format"] == "native"


@pytest.mark.parametrize("target", ["session.victim", "notifly.models.User.8"])
def test_broadcast_cannot_target_other_channels(client, subscriber, monkeypatch, target) -> None:
    monkeypatch.setattr(state, "principal_loader", header_principal)
    hub.subscribe(target, subscriber)

    resp = client.post("/notifications", headers={"X-User-Id": "7"}, json={
        "notification": {"id": "n1", "title": "Reset your password"},
        "delivery": "broadcast", "channel": target})

    assert resp.status_code == 403
    assert subscriber.frames == []


def test_broadcast_without_principal_ignores_channel(client, subscriber) -> None:
    hub.subscribe("session.victim", subscriber)

    resp = _send(client, delivery="broadcast", channel="session.victim")

    assert resp.status_code == 400
    assert subscriber.frames == []


def test_out_of_range_duration_falls_back(client) -> None:
    resp = client.post("/notifications", data='{"notification": {"id": "x", "duration": 1e999}}',
                       content_type="application/json")

    assert resp.status_code == 200
    assert client.post("/notifications/pull").get_json()["notifications"][0]["duration"] == 6000


@pytest.mark.parametrize("body", [
    {"notification": {"id": "n1", "actions": [{"label": "no name"}]}},
    {"notification": "not a record"},
    {"notification": {"id": "n1"}, "delivery": "carrier-pigeon"},
])
def test_send_rejects_bad_requests(client, body) -> None:
    resp = client.post("/notifications", json=body)

    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_delete_pushes_close_event(client, subscriber) -> None:
    client.post("/notifications/pull")
    hub.subscribe(session_channel(_sid(client)), subscriber)

    resp = client.delete("/notifications/n1")

    assert resp.get_json() == {"ok": True, "delivered": 1}
    assert subscriber.frames[0][:2] == ("notificationClosed", {"id": "n1"})


def test_channel_endpoint(client, monkeypatch) -> None:
    assert client.get("/notifications/channel").get_json() == {"channel": None}

    monkeypatch.setattr(state, "principal_loader", header_principal)
    resp = client.get("/notifications/channel", headers={"X-User-Id": "42"})

    assert resp.get_json() == {"channel": "notifly.models.User.42"}


def test_settings_round_trip(client) -> None:
    root = logging.getLogger()
    previous = root.level
    try:
        resp = client.post("/settings", json={"log_level": "debug"})
    finally:
        root.setLevel(previous)

    assert resp.status_code == 200
    data = client.get("/settings").get_json()
    assert data["log_level"] == "DEBUG"
    assert data["horizontal_alignment"] == "right"
    assert data["broadcast_format"] == "filament"


@pytest.mark.parametrize("body", [
    {"log_level": "chatty"},
    {"horizontal_alignment": "left"},
])
def test_settings_rejects_invalid_updates(client, body) -> None:
    assert client.post("/settings", json=body).status_code == 400
