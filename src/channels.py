"""Single-writer published values with non-blocking fan-out to subscribers."""

import asyncio
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class Subscription(Generic[T]):
    """Async iterator over values sent to one subscriber."""

    def __init__(self, channel: "Broadcast[T]", maxsize: int):
        self._channel = channel
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def _offer(self, value: T) -> None:
        # Drop the oldest item rather than block the writer
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(value)

    async def get(self) -> T:
        return await self._queue.get()

    def get_nowait(self) -> T:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._channel.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        return await self._queue.get()


class Broadcast(Generic[T]):
    """Fan-out event channel. Sending never blocks and never raises."""

    def __init__(self, name: str = "channel", subscriber_buffer: int = 16):
        self.name = name
        self._buffer = subscriber_buffer
        self._subscribers: list[Subscription[T]] = []

    def subscribe(self, maxsize: int | None = None) -> Subscription[T]:
        sub: Subscription[T] = Subscription(self, maxsize or self._buffer)
        self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription[T]) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def send(self, value: T) -> None:
        for sub in list(self._subscribers):
            sub._offer(value)
        if self._subscribers:
            logger.debug("channel_send", channel=self.name, subscribers=len(self._subscribers))


class Published(Broadcast[T]):
    """Broadcast channel that also holds the latest value.

    Only the owning component calls publish(); readers use .value or subscribe().
    Values are expected to be immutable (frozen dataclasses, tuples).
    """

    def __init__(self, initial: T, name: str = "published", subscriber_buffer: int = 16):
        super().__init__(name=name, subscriber_buffer=subscriber_buffer)
        self._value = initial
        self.version = 0

    @property
    def value(self) -> T:
        return self._value

    def publish(self, value: T) -> None:
        self._value = value
        self.version += 1
        self.send(value)
