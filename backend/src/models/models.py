import asyncio
import logging
import uuid
from enum import Enum
from typing import Dict, Optional, Tuple

from schemas import ChannelMessage
from utilities import OVERFLOW_DISCONNECT, OVERFLOW_DROP_OLDEST
from utilities import SUBSCRIBER_QUEUE_SIZE, BROKER_NAME

logger = logging.getLogger(__name__)


# ------------ In-memory structures ------------
class Subscriber:
    ''' Handle for one subscriber's private delivery queue.'''

    def __init__(self, maxsize: int = SUBSCRIBER_QUEUE_SIZE):

        # diagnostic only, never used for lookups
        self.subscriber_id = uuid.uuid4().hex[:8]

        # per subscriber message buffer
        # the broker never waits for a slow subscriber: when the queue is full
        # the broker applies its overflow policy instead of blocking
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def offer(self, message: ChannelMessage) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def drop_oldest(self) -> None:
        try:
            self.queue.get_nowait()
        except asyncio.QueueEmpty:
            return
        self.dropped += 1

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # wake a consumer blocked on an empty queue; a full queue needs no wake-up
        if not self.queue.full():
            self.queue.put_nowait(None)

    async def next_message(self) -> Optional[ChannelMessage]:
        """Next queued message, or None once the handle is closed and drained."""
        if self.closed and self.queue.empty():
            return None
        return await self.queue.get()

    def __repr__(self) -> str:
        return f"Subscriber({self.subscriber_id})"


class _Command(Enum):
    REGISTER = "register"
    UNREGISTER = "unregister"
    PUBLISH = "publish"
    SHUTDOWN = "shutdown"


class ChannelBroker:
    """
    Owns the subscriber set of one channel.

    register, unregister, publish and shutdown are all handed to a single
    command loop through one FIFO queue, so they are applied one at a time in
    the order they were called. Fan-out therefore always sees a consistent
    subscriber set.
    """

    def __init__(
        self,
        name: str = BROKER_NAME,
        queue_size: int = SUBSCRIBER_QUEUE_SIZE,
        overflow_policy: str = OVERFLOW_DROP_OLDEST,
    ):
        if overflow_policy not in (OVERFLOW_DROP_OLDEST, OVERFLOW_DISCONNECT):
            raise ValueError(f"unknown overflow policy: {overflow_policy}")
        if queue_size < 1:
            # asyncio.Queue treats 0 as unbounded
            raise ValueError(f"queue_size must be at least 1, got {queue_size}")
        self._name = name
        self.queue_size = queue_size
        self.overflow_policy = overflow_policy
        self._subscribers: Dict[Subscriber, bool] = {}
        self._commands: asyncio.Queue[Tuple[_Command, object]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        # stats
        self.messages_published = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"broker-{self._name}")
        return self._task

    def create_subscriber(self) -> Subscriber:
        return Subscriber(maxsize=self.queue_size)

    async def register(self, subscriber: Subscriber) -> None:
        if self._closing:
            # nothing will ever be delivered; end the session straight away
            subscriber.close()
            return
        logger.info("Client %s added", subscriber.subscriber_id)
        self._commands.put_nowait((_Command.REGISTER, subscriber))

    async def unregister(self, subscriber: Subscriber) -> None:
        if self._closing:
            # shutdown already emptied the set
            return
        logger.info("Client %s removed", subscriber.subscriber_id)
        self._commands.put_nowait((_Command.UNREGISTER, subscriber))

    async def publish(self, message: ChannelMessage) -> None:
        if self._closing:
            logger.warning("Channel %s is closed, dropping message from %s", self._name, message.author)
            return
        self._commands.put_nowait((_Command.PUBLISH, message))

    async def shutdown(self) -> None:
        """Close every registered subscriber. Later calls are no-ops."""
        if self._closing:
            return
        self._closing = True
        if not self.running:
            self._close_all()
            return
        self._commands.put_nowait((_Command.SHUTDOWN, None))
        await self._task

    async def _run(self) -> None:
        logger.info("Start channel broker for channel %s", self._name)
        try:
            while True:
                command, payload = await self._commands.get()
                if command is _Command.REGISTER:
                    self._subscribers[payload] = True
                elif command is _Command.UNREGISTER:
                    self._subscribers.pop(payload, None)
                elif command is _Command.PUBLISH:
                    self._fan_out(payload)
                elif command is _Command.SHUTDOWN:
                    self._close_all()
                    return
        except asyncio.CancelledError:
            self._close_all()
            raise

    def _fan_out(self, message: ChannelMessage) -> None:
        self.messages_published += 1
        subscribers = list(self._subscribers)
        logger.debug("Pushing message from %s to %d clients.", message.author, len(subscribers))
        for sub in subscribers:
            if sub.closed:
                self._subscribers.pop(sub, None)
                continue
            if sub.queue.full():
                if self.overflow_policy == OVERFLOW_DISCONNECT:
                    logger.warning("Client %s is too slow, disconnecting", sub.subscriber_id)
                    sub.close()
                    self._subscribers.pop(sub, None)
                    continue
                sub.drop_oldest()
                logger.warning("Client %s queue overflow; oldest message dropped", sub.subscriber_id)
            sub.offer(message)

    def _close_all(self) -> None:
        subscribers = list(self._subscribers)
        self._subscribers.clear()
        for sub in subscribers:
            sub.close()
        logger.info("Channel %s closed.", self._name)
