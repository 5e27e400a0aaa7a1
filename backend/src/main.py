import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from pydantic import ValidationError

from models import ChannelBroker, EventTransport, SessionEnd
from models import StreamingNotSupportedError, StreamingSession
from schemas import ChannelMessage
from utilities import Settings, configure_logging, get_settings

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

EVENT_STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# -------------- Event stream transport --------------
class AsgiEventTransport:
    """ASGI http transport: every body message is flushed to the client as sent."""

    supports_flush = True

    def __init__(self, receive, send):
        self._receive = receive
        self._send = send

    async def send(self, chunk: bytes) -> None:
        await self._send({"type": "http.response.body", "body": chunk, "more_body": True})

    async def wait_disconnected(self) -> None:
        while True:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                return


class EventStreamResponse(Response):
    media_type = "text/event-stream"

    def __init__(
        self,
        broker: ChannelBroker,
        transport_factory: Callable[..., EventTransport] = AsgiEventTransport,
        status_code: int = 200,
        headers: Optional[dict] = None,
    ):
        self.broker = broker
        self.transport_factory = transport_factory
        self.status_code = status_code
        self.background = None
        self.init_headers({**EVENT_STREAM_HEADERS, **(headers or {})})

    async def __call__(self, scope, receive, send) -> None:
        transport = self.transport_factory(receive, send)
        try:
            session = StreamingSession(self.broker, transport)
        except StreamingNotSupportedError as exc:
            response = PlainTextResponse(str(exc), status_code=500)
            await response(scope, receive, send)
            return

        await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
        reason = await session.run()
        if reason is SessionEnd.CLOSED:
            await send({"type": "http.response.body", "body": b"", "more_body": False})


# -------------- App --------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    broker = ChannelBroker(
        settings.broker_name,
        queue_size=settings.subscriber_queue_size,
        overflow_policy=settings.overflow_policy,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        broker.start()
        try:
            yield
        finally:
            await broker.shutdown()

    app = FastAPI(title="In-memory channel hub", lifespan=lifespan)
    app.state.broker = broker
    app.state.started_at = datetime.now(timezone.utc)

    @app.api_route("/post/", methods=ALL_METHODS)
    async def post_message(request: Request):
        if request.method != "POST":
            return Response(status_code=400)
        content_type = request.headers.get("content-type", "")
        if content_type.split(";")[0].strip().lower() != "application/json":
            return PlainTextResponse("Content-Type must be application/json", status_code=400)
        body = await request.body()
        try:
            message = ChannelMessage.model_validate_json(body)
        except ValidationError as exc:
            return PlainTextResponse(str(exc), status_code=400)
        await broker.publish(message)
        return PlainTextResponse("ok")

    @app.api_route("/events/", methods=ALL_METHODS)
    async def events():
        return EventStreamResponse(broker)

    @app.get("/health")
    async def health():
        now = datetime.now(timezone.utc)
        uptime_sec = int((now - app.state.started_at).total_seconds())
        return {
            "uptime_sec": uptime_sec,
            "channel": broker.name,
            "subscribers": broker.subscriber_count,
            "messages": broker.messages_published,
        }

    return app


app = create_app()


# -------------- Server --------------
class HubServer(uvicorn.Server):
    """
    uvicorn waits for open connections before running lifespan teardown, and an
    event stream never closes by itself. Closing the broker first ends every
    session so those connections can finish.
    """

    def __init__(self, config: uvicorn.Config, broker: ChannelBroker):
        super().__init__(config)
        self.broker = broker

    async def shutdown(self, sockets=None) -> None:
        await self.broker.shutdown()
        await super().shutdown(sockets=sockets)


def main():
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting http server")
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    HubServer(config, app.state.broker).run()
    logger.info("Closed http server")


if __name__ == "__main__":
    main()
