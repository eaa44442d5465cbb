"""
Event streams drained by the connection supervisor.
"""

import asyncio
from typing import Generic, Optional, TypeVar

T = TypeVar('T')

_END = object()


class EventStream(Generic[T]):
    """
    A single-consumer stream of events that ends when closed.

    ``next()`` returns ``None`` exactly once the stream is exhausted.
    Events put after ``close()`` are dropped.
    """

    def __init__(self, name: str):
        self.name = name
        self._queue: 'asyncio.Queue[object]' = asyncio.Queue()
        self._closed = False
        self._exhausted = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item: T) -> bool:
        if self._closed:
            return False
        self._queue.put_nowait(item)
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    async def next(self) -> Optional[T]:
        if self._exhausted:
            return None
        item = await self._queue.get()
        if item is _END:
            self._exhausted = True
            return None
        return item  # type: ignore[return-value]
