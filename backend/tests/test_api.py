import asyncio
import json
import time

from fastapi.testclient import TestClient

from main import EventStreamResponse, create_app
from models import ChannelBroker
from schemas import ChannelMessage
from utilities import Settings


def build_client() -> TestClient:
    return TestClient(create_app(Settings(broker_name="test")))


def wait_for_messages(client: TestClient, count: int) -> dict:
    for _ in range(100):
        health = client.get("/health").json()
        if health["messages"] >= count:
            return health
        time.sleep(0.01)
    raise AssertionError("message never reached the broker")


def test_post_message_is_published():
    with build_client() as client:
        res = client.post(
            "/post/",
            json={"content": "hi", "author": "ann", "time": "2024-05-01T12:00:00Z"},
        )
        assert res.status_code == 200
        assert res.text == "ok"

        health = wait_for_messages(client, 1)
        assert health["channel"] == "test"
        assert health["subscribers"] == 0


def test_post_without_time_is_accepted():
    with build_client() as client:
        res = client.post("/post/", json={"content": "hi", "author": "ann"})
        assert res.status_code == 200


def test_post_invalid_json_is_rejected():
    with build_client() as client:
        res = client.post(
            "/post/", content="not json", headers={"Content-Type": "application/json"}
        )
        assert res.status_code == 400
        assert "json" in res.text.lower()


def test_post_missing_fields_is_rejected():
    with build_client() as client:
        res = client.post("/post/", json={"content": "hi"})
        assert res.status_code == 400
        assert "author" in res.text


def test_post_requires_post_method():
    with build_client() as client:
        assert client.get("/post/").status_code == 400
        assert client.put("/post/", json={"content": "hi", "author": "ann"}).status_code == 400


def test_post_requires_json_content_type():
    with build_client() as client:
        res = client.post(
            "/post/",
            content=json.dumps({"content": "hi", "author": "ann"}),
            headers={"Content-Type": "text/plain"},
        )
        assert res.status_code == 400


class NoFlushTransport:
    supports_flush = False

    def __init__(self, receive, send):
        self.send = send


async def call_events(broker, sent, disconnect, transport_factory=None):
    async def receive():
        await disconnect.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)

    if transport_factory is None:
        response = EventStreamResponse(broker)
    else:
        response = EventStreamResponse(broker, transport_factory=transport_factory)
    await response({"type": "http", "method": "GET", "path": "/events/"}, receive, send)


async def eventually(predicate, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not reached")


def test_event_stream_headers_and_units():
    async def scenario():
        broker = ChannelBroker("test")
        broker.start()
        sent, disconnect = [], asyncio.Event()
        task = asyncio.create_task(call_events(broker, sent, disconnect))
        await eventually(lambda: broker.subscriber_count == 1)

        await broker.publish(ChannelMessage(content="x", author="u"))
        await eventually(lambda: len(sent) == 2)

        start, body = sent
        assert start["status"] == 200
        headers = {k.decode(): v.decode() for k, v in start["headers"]}
        assert headers["content-type"].startswith("text/event-stream")
        assert headers["cache-control"] == "no-cache"
        assert headers["connection"] == "keep-alive"
        assert "content-length" not in headers

        assert body["more_body"] is True
        assert body["body"].endswith(b"\n\n")
        payload = json.loads(body["body"])
        assert (payload["content"], payload["author"]) == ("x", "u")

        disconnect.set()
        await task
        await eventually(lambda: broker.subscriber_count == 0)
        await broker.publish(ChannelMessage(content="after", author="u"))
        await broker.shutdown()
        assert len(sent) == 2

    asyncio.run(asyncio.wait_for(scenario(), timeout=5))


def test_event_stream_closes_on_shutdown():
    async def scenario():
        broker = ChannelBroker("test")
        broker.start()
        sent, disconnect = [], asyncio.Event()
        task = asyncio.create_task(call_events(broker, sent, disconnect))
        await eventually(lambda: broker.subscriber_count == 1)

        await broker.shutdown()
        await task
        assert sent[-1] == {"type": "http.response.body", "body": b"", "more_body": False}

    asyncio.run(asyncio.wait_for(scenario(), timeout=5))


def test_event_stream_without_flush_support_is_500():
    async def scenario():
        broker = ChannelBroker("test")
        broker.start()
        sent, disconnect = [], asyncio.Event()
        await call_events(broker, sent, disconnect, transport_factory=NoFlushTransport)

        assert sent[0]["status"] == 500
        assert sent[1]["body"] == b"Streaming not supported"
        assert broker.subscriber_count == 0
        await broker.shutdown()

    asyncio.run(asyncio.wait_for(scenario(), timeout=5))
