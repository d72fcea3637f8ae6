import pytest
import requests

from notifly.session import HttpSessionQueue, MemorySessionQueue, discard_session_queue, session_queue


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body


class FakeHttp:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, timeout=None, **kwargs):
        self.calls.append((url, kwargs))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def test_drain_returns_records_in_order_then_empty() -> None:
    queue = MemorySessionQueue()
    queue.push({"id": "a"})
    queue.push({"id": "b"})

    assert [r["id"] for r in queue.drain()] == ["a", "b"]
    assert queue.drain() == []
    assert len(queue) == 0


def test_push_after_drain_is_kept() -> None:
    queue = MemorySessionQueue()
    queue.push({"id": "a"})
    queue.drain()
    queue.push({"id": "b"})

    assert queue.drain() == [{"id": "b"}]


def test_session_queue_is_per_session() -> None:
    assert session_queue("s1") is session_queue("s1")
    assert session_queue("s1") is not session_queue("s2")

    session_queue("s1").push({"id": "a"})
    assert session_queue("s2").drain() == []

    discard_session_queue("s1")
    assert session_queue("s1").drain() == []


def test_http_drain_posts_to_pull() -> None:
    http = FakeHttp(FakeResponse(body={"notifications": [{"id": "a"}, {"id": "b"}]}))
    queue = HttpSessionQueue("http://notifly.local/", http=http)

    assert [r["id"] for r in queue.drain()] == ["a", "b"]
    assert http.calls[0][0] == "http://notifly.local/notifications/pull"


def test_http_push_sends_session_delivery() -> None:
    http = FakeHttp(FakeResponse(body={"id": "a", "delivery": "session", "delivered": 0}))
    HttpSessionQueue("http://notifly.local", http=http).push({"id": "a"})

    url, kwargs = http.calls[0]
    assert url == "http://notifly.local/notifications"
    assert kwargs["json"] == {"notification": {"id": "a"}, "delivery": "session"}


@pytest.mark.parametrize("response", [
    FakeResponse(status_code=500, body={"error": "boom"}),
    FakeResponse(body={"notifications": "nope"}),
    requests.ConnectionError("refused"),
])
def test_http_drain_failures_raise_runtime_error(response) -> None:
    queue = HttpSessionQueue("http://notifly.local", http=FakeHttp(response))

    with pytest.raises(RuntimeError):
        queue.drain()
