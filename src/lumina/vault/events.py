"""Progress events for vault indexing.

Progress flows from the indexer through an asyncio.Queue to whoever is
watching (an SSE route, the CLI), decoupling indexing from display.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any


@dataclass
class IndexProgress:
    """Emitted after each batch of files."""

    processed_count: int
    total_count: int
    chunk_count: int
    indexed_count: int = 0

    @property
    def progress(self) -> float:
        """Percentage of files processed."""
        if self.total_count <= 0:
            return 100.0
        return self.processed_count / self.total_count * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "processedCount": self.processed_count,
            "totalCount": self.total_count,
            "chunkCount": self.chunk_count,
            "indexedCount": self.indexed_count,
            "progress": self.progress,
        }


class ProgressStream:
    """Single-consumer channel of IndexProgress events.

    Iterating yields events until the producer closes the stream or the
    consumer cancels it. Cancelling only stops delivery; the indexing run
    carries on.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._cancelled = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def publish(self, event: IndexProgress) -> None:
        if self._closed or self._cancelled:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._CLOSED)

    def cancel(self) -> None:
        """Unsubscribe: drop pending and future events."""
        self._cancelled = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[IndexProgress]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[IndexProgress]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item
