import asyncio
import logging
from enum import Enum
from typing import Protocol

from utilities import encode_event

from .models import ChannelBroker

logger = logging.getLogger(__name__)


class StreamingNotSupportedError(Exception):
    """The transport cannot flush each unit as it is written."""


class EventTransport(Protocol):
    """What a subscriber connection must offer to carry an event stream."""

    supports_flush: bool

    async def send(self, chunk: bytes) -> None:
        """Write and flush one unit."""

    async def wait_disconnected(self) -> None:
        """Return once the peer has gone away."""


class SessionEnd(str, Enum):
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class StreamingSession:
    ''' Bridges one subscriber connection to the broker for its lifetime.'''

    def __init__(self, broker: ChannelBroker, transport: EventTransport):
        if not getattr(transport, "supports_flush", False):
            raise StreamingNotSupportedError("Streaming not supported")
        self.broker = broker
        self.transport = transport

    async def run(self) -> SessionEnd:
        subscriber = self.broker.create_subscriber()
        await self.broker.register(subscriber)
        disconnect = asyncio.create_task(self.transport.wait_disconnected())
        receive = None
        try:
            while True:
                receive = asyncio.create_task(subscriber.next_message())
                done, _ = await asyncio.wait(
                    {receive, disconnect}, return_when=asyncio.FIRST_COMPLETED
                )
                if disconnect in done:
                    return SessionEnd.DISCONNECTED
                message = receive.result()
                if message is None:
                    return SessionEnd.CLOSED
                try:
                    await self.transport.send(encode_event(message))
                except OSError as exc:
                    # (broken pipe / closed) -> stop
                    logger.info("Client %s went away: %s", subscriber.subscriber_id, exc)
                    return SessionEnd.DISCONNECTED
        finally:
            if receive is not None:
                receive.cancel()
            disconnect.cancel()
            await self.broker.unregister(subscriber)
